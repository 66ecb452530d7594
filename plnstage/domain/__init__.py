"""Domain models and business logic."""

from plnstage.domain.models import (
    AccessDecision,
    AccessListEntry,
    AccessListKind,
    AuContainer,
    Deposit,
    DepositState,
    PingResult,
    PipelineState,
    Provider,
    ProviderStatus,
    ScanDetection,
    ScanReport,
    StageOutcome,
    StageReport,
)
from plnstage.domain.types import Clock, Notifier, Scanner, StageProgressHook

__all__ = [
    "AccessDecision",
    "AccessListEntry",
    "AccessListKind",
    "AuContainer",
    "Deposit",
    "DepositState",
    "PingResult",
    "PipelineState",
    "Provider",
    "ProviderStatus",
    "ScanDetection",
    "ScanReport",
    "StageOutcome",
    "StageReport",
    "Clock",
    "Notifier",
    "Scanner",
    "StageProgressHook",
]
