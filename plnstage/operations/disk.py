"""Free disk space preflight for harvest runs."""

import logging
import shutil
from pathlib import Path

from plnstage.domain.errors import DiskBudgetExceeded
from plnstage.domain.types import DiskUsage, DiskUsageReader

logger = logging.getLogger(__name__)


def _shutil_usage(path: Path) -> DiskUsage:
    total, used, free = shutil.disk_usage(path)
    return DiskUsage(total, used, free)


class DiskBudget:
    """Reject a batch before it starts if it would exhaust the harvest volume."""

    def __init__(
        self,
        path: Path,
        min_free_fraction: float = 0.10,
        usage: DiskUsageReader | None = None,
    ):
        self.path = Path(path)
        self.min_free_fraction = min_free_fraction
        self.usage = usage or _shutil_usage

    def remaining_fraction(self, pending_bytes: int) -> float:
        """Fraction of the volume left free after writing ``pending_bytes``."""
        usage = self.usage(self.path)
        return (usage.free - pending_bytes) / usage.total

    def check(self, pending_bytes: int) -> float:
        """Raise if the pending bytes would leave too little free space.

        Returns:
            The remaining fraction when the budget allows the batch

        Raises:
            DiskBudgetExceeded: If less than ``min_free_fraction`` would remain
        """
        logger.info(f"Harvest expected to consume {pending_bytes} bytes.")
        remaining = self.remaining_fraction(pending_bytes)
        if remaining < self.min_free_fraction:
            error = DiskBudgetExceeded(remaining, self.min_free_fraction)
            logger.critical(f"Harvest - {error}")
            raise error
        return remaining
