"""Business logic services for the pipeline."""

import logging
import shutil
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path

from plnstage.domain.models import (
    ERROR_RECOVERY,
    AccessDecision,
    AccessListKind,
    Deposit,
    DepositState,
    PipelineState,
)
from plnstage.state.manager import StateManager

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)


def normalize_token(token: str | None) -> str:
    """Canonical form of a provider or deposit token."""
    return (token or "").strip().upper()


def compare_versions(left: str, right: str) -> int:
    """Compare dotted version strings, returning -1, 0 or 1.

    Non-numeric parts sort before numeric ones and missing parts count as zero,
    so "3.1" == "3.1.0.0" and "3.1.0-beta" < "3.1.0.1".
    """

    def parts(version: str) -> list[tuple[int, int | str]]:
        result: list[tuple[int, int | str]] = []
        for piece in version.replace("-", ".").split("."):
            if piece.isdigit():
                result.append((1, int(piece)))
            elif piece:
                result.append((0, piece))
        return result

    a, b = parts(left), parts(right)
    length = max(len(a), len(b))
    a += [(1, 0)] * (length - len(a))
    b += [(1, 0)] * (length - len(b))
    return (a > b) - (a < b)


class AccessGate:
    """Decide whether a provider may submit deposits.

    Allow-list wins over deny-list, which wins over the network's global
    default. An empty token is always denied.
    """

    def __init__(self, state: StateManager, default_accepting: bool):
        self.state = state
        self.default_accepting = default_accepting

    def check(self, token: str | None) -> AccessDecision:
        """Return the access decision for a provider token."""
        uuid = normalize_token(token)
        if not uuid:
            return AccessDecision.DENY

        with self.state as state:
            if state.find_access_entry(AccessListKind.ALLOW, uuid) is not None:
                logger.info(f"allow-listed {uuid}")
                return AccessDecision.ALLOW
            if state.find_access_entry(AccessListKind.DENY, uuid) is not None:
                logger.info(f"deny-listed {uuid}")
                return AccessDecision.DENY

        return AccessDecision.ALLOW if self.default_accepting else AccessDecision.DENY

    def is_listed(self, token: str | None) -> bool:
        """Return True if the token is on either list."""
        uuid = normalize_token(token)
        with self.state as state:
            return (
                state.find_access_entry(AccessListKind.ALLOW, uuid) is not None
                or state.find_access_entry(AccessListKind.DENY, uuid) is not None
            )


class DepositQueryService:
    """Service for querying deposits in pipeline state."""

    @staticmethod
    def get_deposits_by_filter(
        state: PipelineState,
        deposit_state: str | None = None,
        provider: str | None = None,
        limit: int | None = None,
    ) -> list[Deposit]:
        """Query deposits with optional filters.

        Args:
            state: State to query
            deposit_state: Filter by state value, or "error" for any error state
            provider: Filter by provider uuid (prefix match)
            limit: Maximum number of results to return

        Returns:
            Matching deposits, oldest state entry first
        """
        results = []
        for deposit in sorted(state.deposits.values(), key=lambda d: d.sequence):
            if provider and not deposit.provider_uuid.startswith(normalize_token(provider)):
                continue
            if deposit_state:
                if deposit_state == "error":
                    if not deposit.state.is_error:
                        continue
                elif deposit.state.value != deposit_state:
                    continue
            results.append(deposit)

        if limit:
            results = results[:limit]
        return results

    @staticmethod
    def get_state_statistics(state: PipelineState) -> dict[str, dict[str, int]]:
        """Count deposits per state for each provider.

        Returns:
            Dictionary mapping provider uuids to a state -> count mapping with
            an extra "total" key
        """
        stats: dict[str, Counter] = {}
        for deposit in state.deposits.values():
            counter = stats.setdefault(deposit.provider_uuid, Counter())
            counter[deposit.state.value] += 1
            counter["total"] += 1
        return {uuid: dict(counter) for uuid, counter in stats.items()}


class DepositManagementService:
    """Operator interventions on deposits and their files."""

    @staticmethod
    def reset_deposit(state: StateManager, uuid: str) -> Deposit:
        """Move a deposit out of an error state so the failed stage retries it.

        Raises:
            KeyError: Unknown deposit
            ValueError: Deposit is not in an error state
        """
        deposit = state.find_deposit(normalize_token(uuid))
        if deposit is None:
            raise KeyError(uuid)
        if not deposit.state.is_error:
            raise ValueError(f"Deposit {deposit.uuid} is {deposit.state.value}, not in an error state")

        previous = deposit.state
        deposit.state = ERROR_RECOVERY[previous]
        deposit.add_error_log(f"Reset by operator from {previous.value} to {deposit.state.value}.")
        state.persist_deposit(deposit)
        logger.info(f"reset - {deposit.uuid} - {previous.value} -> {deposit.state.value}")
        return deposit

    @staticmethod
    def clean_acknowledged(state: StateManager, files, dry_run: bool = False) -> dict:
        """Delete on-disk artifacts of deposits the preservation network acknowledged.

        Args:
            state: Open state manager
            files: FilePaths used to locate harvested payloads
            dry_run: If True, only report what would be deleted

        Returns:
            Dictionary with:
                - deposits: uuids of acknowledged deposits that had files
                - deleted: number of paths actually removed
        """
        cleaned = []
        deleted = 0
        for deposit in state.find_deposits_by_state(DepositState.ACKNOWLEDGED):
            paths = [p for p in files.artifacts(deposit) if p.exists()]
            if not paths:
                continue
            cleaned.append(deposit.uuid)
            for path in paths:
                logger.info(f"{'would delete' if dry_run else 'deleting'} {path}")
                if dry_run:
                    continue
                _remove_path(path)
                deleted += 1

        return {"deposits": cleaned, "deleted": deleted}


def _remove_path(path: Path) -> None:
    if path.is_dir():
        shutil.rmtree(path)
    else:
        path.unlink()
