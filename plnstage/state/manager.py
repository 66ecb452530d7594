"""State persistence for deposits, providers and archival units."""

import fcntl
import logging
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import orjson
from atomicwrites import atomic_write

from plnstage.domain.models import (
    AccessListEntry,
    AccessListKind,
    AuContainer,
    Deposit,
    DepositState,
    PipelineState,
    Provider,
)

logger = logging.getLogger(__name__)

_SECTIONS = ("providers", "deposits", "containers", "allow_list", "deny_list")


class StateManager:
    """Transactional repository backed by a single JSON file.

    Each ``with`` block is one transaction: entering takes an in-process lock
    plus an exclusive file lock and loads the file, leaving without an
    exception writes it back atomically if anything was stored. Leaving with
    an exception discards whatever was changed inside the block. Blocks may
    nest within one thread; only the outermost one loads and saves.

    Lookups return copies and persists store copies, so callers can work on a
    deposit outside a transaction without racing other workers.

    Example:
        with StateManager("state.json") as state:
            deposit = state.find_deposit(uuid)
            deposit.state = DepositState.HARVESTED
            state.persist_deposit(deposit)
    """

    def __init__(self, path: str | Path):
        """Initialize the state manager.

        Args:
            path: Path to the state JSON file
        """
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.data: PipelineState = PipelineState()
        self._lock = threading.RLock()
        self._depth = 0
        self._lock_file = None
        self._dirty = False

    def __enter__(self) -> "StateManager":
        """Enter a transaction, loading the current state from disk."""
        self._lock.acquire()
        self._depth += 1
        if self._depth > 1:
            return self

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._lock_file = open(self.lock_path, "a+b")
            fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_EX)
            self._load()
        except BaseException:
            self._release()
            raise
        return self

    def __exit__(self, exc_type, _exc_value, _traceback) -> bool:
        """Leave a transaction, saving state if no exception occurred.

        Returns:
            False to propagate any exceptions
        """
        try:
            if self._depth == 1:
                if exc_type is None:
                    if self._dirty:
                        self.flush()
                else:
                    # Drop uncommitted changes; the next transaction reloads.
                    self.data = PipelineState()
                    self._dirty = False
        finally:
            self._release()
        return False

    def _release(self) -> None:
        self._depth -= 1
        if self._depth == 0 and self._lock_file is not None:
            fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_UN)
            self._lock_file.close()
            self._lock_file = None
        self._lock.release()

    def _load(self) -> None:
        self._dirty = False
        if not self.path.exists():
            logger.debug(f"No existing state file at {self.path}, starting fresh")
            self.data = PipelineState()
            return

        try:
            content = self.path.read_bytes()
            json_data = orjson.loads(content) if content.strip() else {}
        except orjson.JSONDecodeError as e:
            logger.error(f"Failed to parse state file {self.path}: {e}")
            raise
        except OSError as e:
            logger.error(f"Failed to read state file {self.path}: {e}")
            raise
        self.data = PipelineState.model_validate(self._sanitize_raw_state(json_data))

    def flush(self) -> None:
        """Write the in-memory state to disk atomically."""
        try:
            payload = orjson.dumps(
                self.data.model_dump(mode="json"),
                option=orjson.OPT_INDENT_2,
            )
            with atomic_write(self.path, mode="wb", overwrite=True) as f:
                f.write(payload)
                f.write(b"\n")
            self._dirty = False
        except OSError as e:
            logger.error(f"Failed to write state file {self.path}: {e}")
            raise

    @classmethod
    def _sanitize_raw_state(_cls, payload: Any) -> dict[str, Any]:
        """Ensure schema-compatibility of state data."""
        if not isinstance(payload, dict):
            return {}

        sanitized_payload = dict(payload)
        for section in _SECTIONS:
            if not isinstance(sanitized_payload.get(section), dict):
                sanitized_payload[section] = {}
        if not isinstance(sanitized_payload.get("sequence"), int):
            sanitized_payload["sequence"] = 0
        return sanitized_payload

    # Deposits

    def find_deposit(self, uuid: str) -> Deposit | None:
        """Return a copy of the deposit with ``uuid``, or None."""
        deposit = self.data.deposits.get(uuid)
        return deposit.model_copy(deep=True) if deposit else None

    def find_deposits_by_state(
        self, state: DepositState, limit: int | None = None
    ) -> list[Deposit]:
        """Return deposits in ``state``, oldest entry into that state first."""
        matches = sorted(
            (d for d in self.data.deposits.values() if d.state == state),
            key=lambda d: d.sequence,
        )
        if limit:
            matches = matches[:limit]
        return [d.model_copy(deep=True) for d in matches]

    def find_deposits_by_provider(self, provider_uuid: str) -> list[Deposit]:
        """Return all deposits owned by a provider."""
        return [
            d.model_copy(deep=True)
            for d in self.data.deposits.values()
            if d.provider_uuid == provider_uuid
        ]

    def all_deposits(self) -> list[Deposit]:
        """Return every deposit."""
        return [d.model_copy(deep=True) for d in self.data.deposits.values()]

    def persist_deposit(self, deposit: Deposit) -> None:
        """Store a deposit, bumping its revision and stamping state-entry order."""
        stored = self.data.deposits.get(deposit.uuid)
        if stored is None or stored.state != deposit.state:
            self.data.sequence += 1
            deposit.sequence = self.data.sequence
        deposit.revision = (stored.revision if stored else 0) + 1
        self.data.deposits[deposit.uuid] = deposit.model_copy(deep=True)
        self._dirty = True

    # Providers

    def find_provider(self, uuid: str) -> Provider | None:
        """Return a copy of the provider with ``uuid``, or None."""
        provider = self.data.providers.get(uuid)
        return provider.model_copy(deep=True) if provider else None

    def all_providers(self) -> list[Provider]:
        """Return every provider."""
        return [p.model_copy(deep=True) for p in self.data.providers.values()]

    def find_silent_providers(self, days: int, now: datetime) -> list[Provider]:
        """Return providers not contacted within ``days`` of ``now``."""
        cutoff = now - timedelta(days=days)
        return [
            p.model_copy(deep=True)
            for p in self.data.providers.values()
            if p.contacted is not None and p.contacted < cutoff
        ]

    def persist_provider(self, provider: Provider) -> None:
        """Store a provider."""
        self.data.providers[provider.uuid] = provider.model_copy(deep=True)
        self._dirty = True

    # Archival units

    def find_open_container(self) -> AuContainer | None:
        """Return the single open archival unit, if any."""
        for container in self.data.containers.values():
            if container.open:
                return container.model_copy(deep=True)
        return None

    def find_container(self, container_id: int) -> AuContainer | None:
        """Return a copy of an archival unit by id."""
        container = self.data.containers.get(str(container_id))
        return container.model_copy(deep=True) if container else None

    def create_container(self, created: datetime | None = None) -> AuContainer:
        """Create and store a new open archival unit."""
        next_id = max((c.id for c in self.data.containers.values()), default=0) + 1
        container = AuContainer(id=next_id, created=created)
        self.persist_container(container)
        return container

    def persist_container(self, container: AuContainer) -> None:
        """Store an archival unit. Closed units are never reopened."""
        stored = self.data.containers.get(str(container.id))
        if stored is not None and not stored.open and container.open:
            raise ValueError(f"Archival unit {container.id} is closed and cannot reopen")
        self.data.containers[str(container.id)] = container.model_copy(deep=True)
        self._dirty = True

    # Access lists

    def _access_list(self, kind: AccessListKind) -> dict[str, AccessListEntry]:
        return self.data.allow_list if kind == AccessListKind.ALLOW else self.data.deny_list

    def find_access_entry(self, kind: AccessListKind, uuid: str) -> AccessListEntry | None:
        """Return the allow- or deny-list entry for ``uuid``."""
        entry = self._access_list(kind).get(uuid)
        return entry.model_copy() if entry else None

    def access_entries(self, kind: AccessListKind) -> list[AccessListEntry]:
        """Return all entries of one list, oldest first."""
        entries = self._access_list(kind).values()
        return sorted(
            (e.model_copy() for e in entries),
            key=lambda e: (e.created.timestamp() if e.created else 0.0, e.uuid),
        )

    def add_access_entry(self, entry: AccessListEntry) -> bool:
        """Add an entry. Existing entries are immutable, so this returns False for them."""
        entries = self._access_list(entry.kind)
        if entry.uuid in entries:
            return False
        entries[entry.uuid] = entry.model_copy()
        self._dirty = True
        return True

    def remove_access_entry(self, kind: AccessListKind, uuid: str) -> bool:
        """Delete an entry, returning True if one existed."""
        removed = self._access_list(kind).pop(uuid, None) is not None
        self._dirty = self._dirty or removed
        return removed
