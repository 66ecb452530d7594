"""Shared type definitions and collaborator interfaces."""

from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import NamedTuple, Protocol

from plnstage.domain.models import ScanReport

# Returns the current time; injected so runs can be replayed in tests
Clock = Callable[[], datetime]

# Progress hook for stage runs (deposit uuid, outcome label). Labels are
# StageOutcome values plus "faulted" and "cancelled".
StageProgressHook = Callable[[str, str], None]


class DiskUsage(NamedTuple):
    """Byte counts for the filesystem holding harvested files."""

    total: int
    used: int
    free: int


# Same shape as shutil.disk_usage
DiskUsageReader = Callable[[Path], DiskUsage]


class Scanner(Protocol):
    """Virus scanner collaborator."""

    def scan(self, path: Path) -> ScanReport: ...


class Notifier(Protocol):
    """Outbound notification collaborator."""

    def send(self, recipients: list[str], message: str) -> None: ...
