"""PLN Staging SDK.

A Python library for receiving deposits from content providers, moving them
through harvest, validation, scanning and packaging, and handing them to a
preservation network.

Quick Start (High-Level API):
    >>> from plnstage import run_all
    >>> run_all()  # Runs every stage once over the current state

Quick Start (SDK API):
    >>> from plnstage import Pipeline, Settings
    >>> config = Settings(max_harvest_attempts=3)
    >>> with Pipeline.build(config) as pipeline:
    ...     report = pipeline.run_stage("harvest", limit=10)

Configuration:
    >>> from plnstage import Settings
    >>> import os
    >>> os.environ["PLN_ACCEPTING"] = "false"
    >>> config = Settings()  # Loads from environment

Public API:
    High-level functions:
        - run_all: Run the full stage chain once

    Orchestrators:
        - Pipeline: Stage wiring and chained runs
        - PipelineStage: Base class for deposit-processing stages
        - HealthMonitor: Silent-provider checks and allow-list sweeps

    Configuration:
        - Settings: Configuration model

    Domain Models:
        - Deposit, DepositState: Deposits and their lifecycle
        - Provider, ProviderStatus: Content providers
        - AuContainer: Archival units
        - StageReport: Outcome of one stage run

    State Management:
        - StateManager: Transactional state repository

    Reporters (for custom UIs):
        - Reporter: Progress reporter (use silent=True for headless mode)
"""

from plnstage.config import Settings
from plnstage.domain import (
    AuContainer,
    Deposit,
    DepositState,
    PipelineState,
    Provider,
    ProviderStatus,
    StageReport,
)
from plnstage.orchestrators import HealthMonitor, Pipeline, PipelineStage
from plnstage.state.manager import StateManager
from plnstage.ui import Reporter

__all__ = [
    # High-level functions
    "run_all",
    # Orchestrators
    "Pipeline",
    "PipelineStage",
    "HealthMonitor",
    # Configuration
    "Settings",
    # Domain models
    "Deposit",
    "DepositState",
    "Provider",
    "ProviderStatus",
    "AuContainer",
    "PipelineState",
    "StageReport",
    # State management
    "StateManager",
    # Reporters
    "Reporter",
]

# Version
__version__ = "0.1.0"


def run_all(
    config: Settings | None = None,
    force: bool = False,
    dry_run: bool = False,
) -> list[StageReport]:
    """Run harvest through deposit once (high-level convenience function).

    Args:
        config: Pipeline configuration. If None, loads Settings() from environment.
        force: Override skip rules such as the harvest attempt limit.
        dry_run: Process deposits but save nothing.

    Returns:
        One report per stage, in run order

    Example:
        >>> from plnstage import run_all, Settings
        >>> reports = run_all(Settings(state_file="data/state.json"))
    """
    with Pipeline.build(config) as pipeline:
        return pipeline.run_all(force=force, dry_run=dry_run)
