"""Virus scanning through ClamAV's clamdscan client."""

import logging
import subprocess
from pathlib import Path

from plnstage.domain.errors import ScannerError
from plnstage.domain.models import ScanDetection, ScanReport

logger = logging.getLogger(__name__)


def parse_clamdscan_output(output: str) -> list[ScanDetection]:
    """Extract detections from clamdscan's ``<path>: <signature> FOUND`` lines."""
    detections = []
    for line in output.splitlines():
        line = line.strip()
        if not line.endswith(" FOUND"):
            continue
        path, _, signature = line[: -len(" FOUND")].rpartition(": ")
        detections.append(ScanDetection(path=path, description=signature))
    return detections


class ClamdscanScanner:
    """Scanner that shells out to clamdscan.

    clamdscan exits 0 for clean files, 1 when a virus was found and 2 on error.
    """

    def __init__(self, executable: str = "/usr/bin/clamdscan", timeout: float = 600):
        self.executable = executable
        self.timeout = timeout

    def scan(self, path: Path) -> ScanReport:
        """Scan one file."""
        try:
            proc = subprocess.run(
                [self.executable, "--no-summary", "--stdout", "--fdpass", str(path)],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ScannerError(f"Cannot run {self.executable}: {e}") from e

        if proc.returncode == 0:
            return ScanReport(infected=False)
        if proc.returncode == 1:
            return ScanReport(infected=True, detections=parse_clamdscan_output(proc.stdout))

        raise ScannerError(
            f"{self.executable} exited {proc.returncode}: {proc.stderr.strip() or proc.stdout.strip()}"
        )
