"""Stage wiring and whole-pipeline runs."""

import logging

import httpx

from plnstage.config import Settings
from plnstage.domain.errors import StageConfigurationError
from plnstage.domain.models import Deposit, StageReport
from plnstage.domain.services import utcnow
from plnstage.domain.types import Clock, Scanner, StageProgressHook
from plnstage.operations.checksum import ChecksumValidator
from plnstage.operations.disk import DiskBudget
from plnstage.operations.harvest import Harvester, create_client
from plnstage.operations.paths import FilePaths
from plnstage.operations.scan import ClamdscanScanner
from plnstage.operations.transmit import DepositTransmitter
from plnstage.orchestrators.base import PipelineStage
from plnstage.orchestrators.stages import (
    ConfirmStatusStage,
    DepositStage,
    HarvestStage,
    OrganizeStage,
    ScanVirusesStage,
    ValidateChecksumsStage,
)
from plnstage.state.manager import StateManager

logger = logging.getLogger(__name__)

# Stages chained by a full run. "status" is polled separately.
RUN_ALL = ("harvest", "validate-checksums", "scan-viruses", "organize", "deposit")


def validate_order(stages: list[PipelineStage]) -> None:
    """Check that each stage consumes what the previous one produces.

    Raises:
        StageConfigurationError: If two adjacent stages do not chain
    """
    for previous, current in zip(stages, stages[1:]):
        if previous.success_state != current.input_state:
            raise StageConfigurationError(
                f"Stage {current.name} reads {current.input_state.value} but "
                f"{previous.name} produces {previous.success_state.value}"
            )


class Pipeline:
    """Named stages plus the ordered chain a full run executes.

    Example:
        with Pipeline.build(Settings()) as pipeline:
            pipeline.run_stage("harvest", limit=10)
            pipeline.run_all()
    """

    def __init__(
        self,
        stages: list[PipelineStage],
        chain: tuple[str, ...] = RUN_ALL,
        client: httpx.Client | None = None,
    ):
        """Initialize the pipeline.

        Args:
            stages: Every stage the pipeline can run
            chain: Names of the stages a full run executes, in order
            client: HTTP client to close with the pipeline

        Raises:
            StageConfigurationError: Duplicate names, unknown chain entries, or a
                chain whose stages do not follow the deposit lifecycle
        """
        self.stages: dict[str, PipelineStage] = {}
        for stage in stages:
            if stage.name in self.stages:
                raise StageConfigurationError(f"Duplicate stage {stage.name}")
            self.stages[stage.name] = stage

        missing = [name for name in chain if name not in self.stages]
        if missing:
            raise StageConfigurationError(f"Unknown stages in chain: {', '.join(missing)}")
        self.chain = chain
        validate_order([self.stages[name] for name in chain])
        self._client = client

    @classmethod
    def build(
        cls,
        config: Settings | None = None,
        state: StateManager | None = None,
        scanner: Scanner | None = None,
        client: httpx.Client | None = None,
        clock: Clock = utcnow,
    ) -> "Pipeline":
        """Wire every stage from settings.

        Args:
            config: Settings. If None, creates new Settings() from environment.
            state: State repository. Defaults to one on ``config.state_file``.
            scanner: Virus scanner. Defaults to clamdscan.
            client: HTTP client for harvest and deposit. Created if None.
            clock: Time source
        """
        config = config if config is not None else Settings()
        state = state if state is not None else StateManager(config.state_file)
        owned_client = client is None
        client = client or create_client(config.http_timeout, config.user_agent)

        files = FilePaths(config.data_dir)
        key = config.checksum_key.encode() if config.checksum_key else None
        transmitter = DepositTransmitter(
            client, config.downstream_col_iri, config.downstream_on_behalf_of
        )
        prefix = config.public_url.rstrip("/") + config.sword_prefix

        def content_url(deposit: Deposit) -> str:
            return f"{prefix}/fetch/{deposit.provider_uuid}/{deposit.uuid}"

        common = {"max_workers": config.max_workers, "clock": clock}
        stages: list[PipelineStage] = [
            HarvestStage(
                state,
                harvester=Harvester(client, size_tolerance=config.size_tolerance),
                files=files,
                disk_budget=DiskBudget(config.data_dir, config.min_free_fraction),
                max_attempts=config.max_harvest_attempts,
                **common,
            ),
            ValidateChecksumsStage(
                state, files=files, validator=ChecksumValidator(key=key), **common
            ),
            ScanVirusesStage(
                state,
                files=files,
                scanner=scanner or ClamdscanScanner(config.clamdscan_path),
                **common,
            ),
            OrganizeStage(state, max_au_size=config.max_au_size, **common),
            DepositStage(state, transmitter=transmitter, content_url=content_url, **common),
            ConfirmStatusStage(state, transmitter=transmitter, **common),
        ]
        return cls(stages, client=client if owned_client else None)

    def __enter__(self) -> "Pipeline":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def close(self) -> None:
        """Release the HTTP client if the pipeline created it."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def stage(self, name: str) -> PipelineStage:
        """Return a stage by name.

        Raises:
            KeyError: Unknown stage
        """
        return self.stages[name]

    def stop(self) -> None:
        """Ask every stage to stop after in-flight deposits."""
        for stage in self.stages.values():
            stage.stop()

    def resume(self) -> None:
        """Clear stop requests left over from an earlier run."""
        for stage in self.stages.values():
            stage.resume()

    def run_stage(
        self,
        name: str,
        force: bool = False,
        dry_run: bool = False,
        limit: int | None = None,
        progress_hook: StageProgressHook | None = None,
    ) -> StageReport:
        """Run one stage by name."""
        stage = self.stage(name)
        stage.resume()
        return stage.run(force=force, dry_run=dry_run, limit=limit, progress_hook=progress_hook)

    def run_all(
        self,
        force: bool = False,
        dry_run: bool = False,
        limit: int | None = None,
        progress_hook: StageProgressHook | None = None,
    ) -> list[StageReport]:
        """Run the chained stages in order.

        A stage that faults on individual deposits does not stop the chain;
        an exception from a stage as a whole (for example a disk budget abort)
        does. A stop request ends the run after the current stage, and one
        that arrives between stages keeps the next stage from starting.
        """
        self.resume()
        reports = []
        for name in self.chain:
            stage = self.stages[name]
            if stage.stopping:
                logger.warning(f"Run stopped before {name}")
                break
            reports.append(
                stage.run(force=force, dry_run=dry_run, limit=limit, progress_hook=progress_hook)
            )
            if stage.stopping:
                logger.warning(f"Run stopped after {name}")
                break
        return reports
