"""Orchestration layer.

This module contains the deposit-processing stages, the pipeline that chains
them, and the provider health monitor.
"""

from plnstage.orchestrators.base import PipelineStage
from plnstage.orchestrators.health import HealthMonitor
from plnstage.orchestrators.pipeline import RUN_ALL, Pipeline
from plnstage.orchestrators.stages import (
    ConfirmStatusStage,
    DepositStage,
    HarvestStage,
    OrganizeStage,
    ScanVirusesStage,
    ValidateChecksumsStage,
)

__all__ = [
    "PipelineStage",
    "Pipeline",
    "RUN_ALL",
    "HarvestStage",
    "ValidateChecksumsStage",
    "ScanVirusesStage",
    "OrganizeStage",
    "DepositStage",
    "ConfirmStatusStage",
    "HealthMonitor",
]
