"""Shared machinery for deposit-processing stages.

A stage selects deposits in its input state, processes each one on a worker
thread and commits the result as either its success state or its error state.
Processing happens on a private copy outside any state transaction; the
commit re-reads the deposit and drops the result if anything else stored the
deposit in the meantime.
"""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor

from plnstage.domain.errors import StageConfigurationError
from plnstage.domain.models import (
    Deposit,
    DepositState,
    StageOutcome,
    StageReport,
    allowed_transitions,
)
from plnstage.domain.services import utcnow
from plnstage.domain.types import Clock, StageProgressHook
from plnstage.state.manager import StateManager

logger = logging.getLogger(__name__)

FAULTED = "faulted"
CANCELLED = "cancelled"


class PipelineStage(ABC):
    """One step of the deposit lifecycle.

    Subclasses declare their wiring as class attributes and implement
    ``process``. Wiring is checked when the subclass is defined, so a stage
    that would move deposits outside the lifecycle cannot be built.

    Attributes:
        name: Stage name used in logs and reports
        input_state: State the stage selects deposits in
        success_state: State a succeeded deposit is committed to
        error_state: State a failed deposit is committed to, or None if the
            stage never fails deposits
        success_message: Log line prefix on success
        failure_message: Log line prefix on failure
    """

    name: str
    input_state: DepositState
    success_state: DepositState
    error_state: DepositState | None = None
    success_message: str = "Deposit processed."
    failure_message: str = "Deposit processing failed."

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if getattr(cls, "input_state", None) is None:
            return
        validate_wiring(cls.name, cls.input_state, cls.success_state, cls.error_state)

    def __init__(
        self,
        state: StateManager,
        max_workers: int = 1,
        clock: Clock = utcnow,
    ):
        """Initialize the stage.

        Args:
            state: Shared state repository
            max_workers: Deposits processed concurrently
            clock: Time source
        """
        self.state = state
        self.max_workers = max(1, max_workers)
        self.clock = clock
        self._stop_event = threading.Event()

    def stop(self) -> None:
        """Ask a running stage to finish in-flight deposits and start no more."""
        self._stop_event.set()

    def resume(self) -> None:
        """Clear an earlier stop request so the next run processes deposits again."""
        self._stop_event.clear()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def prepare(self, deposits: list[Deposit], force: bool) -> list[Deposit]:
        """Filter or preflight a selected batch before any deposit is processed.

        Deposits left out of the returned list are reported as skipped.
        """
        return deposits

    @abstractmethod
    def process(self, deposit: Deposit) -> StageOutcome:
        """Do the stage's work on a private copy of one deposit."""

    def apply(self, deposit: Deposit, state: StateManager) -> None:
        """Extra writes made inside the commit transaction of a succeeded deposit."""

    def discard(self, deposit: Deposit) -> None:
        """Undo side effects of a result that will not be committed."""

    def run(
        self,
        force: bool = False,
        dry_run: bool = False,
        limit: int | None = None,
        progress_hook: StageProgressHook | None = None,
    ) -> StageReport:
        """Process every deposit currently in the input state.

        Args:
            force: Passed to ``prepare``; stages use it to override skip rules
            dry_run: Process deposits but commit nothing
            limit: Maximum number of deposits to select
            progress_hook: Called with (deposit uuid, outcome label) per deposit

        Returns:
            Report of what happened to each selected deposit
        """
        report = StageReport(stage=self.name, dry_run=dry_run)

        with self.state as state:
            selected = state.find_deposits_by_state(self.input_state, limit=limit)
        logger.info(f"{self.name} - {len(selected)} deposits in {self.input_state.value}")

        ready = self.prepare(selected, force)
        ready_ids = {d.uuid for d in ready}
        for deposit in selected:
            if deposit.uuid not in ready_ids:
                report.record(deposit.uuid, StageOutcome.SKIPPED)
                if progress_hook:
                    progress_hook(deposit.uuid, StageOutcome.SKIPPED.value)

        if ready:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [executor.submit(self._run_one, d, dry_run) for d in ready]
                for deposit, future in zip(ready, futures):
                    label = future.result()
                    self._record(report, deposit.uuid, label)
                    if progress_hook:
                        progress_hook(deposit.uuid, label)

        logger.info(f"{self.name} - {report!r}")
        return report

    @staticmethod
    def _record(report: StageReport, uuid: str, label: str) -> None:
        if label == FAULTED:
            report.faulted.append(uuid)
        elif label == CANCELLED:
            report.cancelled.append(uuid)
        else:
            report.record(uuid, StageOutcome(label))

    def _run_one(self, deposit: Deposit, dry_run: bool) -> str:
        if self._stop_event.is_set():
            return CANCELLED

        try:
            outcome = self.process(deposit)
        except Exception:
            logger.exception(
                f"{self.name} - {deposit.uuid} - unexpected error, "
                f"deposit left in {self.input_state.value}"
            )
            self._discard(deposit)
            return FAULTED

        if outcome == StageOutcome.SKIPPED:
            return outcome.value

        if dry_run:
            logger.info(f"{self.name} - {deposit.uuid} - dry run, would be {outcome.value}")
            self._discard(deposit)
            return outcome.value

        try:
            committed = self._commit(deposit, outcome)
        except Exception:
            logger.exception(f"{self.name} - {deposit.uuid} - cannot save result")
            self._discard(deposit)
            return FAULTED

        if not committed:
            self._discard(deposit)
            return StageOutcome.SKIPPED.value
        return outcome.value

    def _discard(self, deposit: Deposit) -> None:
        try:
            self.discard(deposit)
        except Exception:
            logger.exception(f"{self.name} - {deposit.uuid} - cannot clean up discarded result")

    def _commit(self, deposit: Deposit, outcome: StageOutcome) -> bool:
        if outcome == StageOutcome.FAILED and self.error_state is None:
            logger.warning(f"{self.name} - {deposit.uuid} - failed, no error state to record")
            return False

        with self.state as state:
            current = state.find_deposit(deposit.uuid)
            if (
                current is None
                or current.state != self.input_state
                or current.revision != deposit.revision
            ):
                logger.warning(
                    f"{self.name} - {deposit.uuid} - changed while processing, result dropped"
                )
                return False

            if outcome == StageOutcome.SUCCEEDED:
                deposit.state = self.success_state
                self.apply(deposit, state)
                logger.info(f"{self.success_message} {deposit.uuid}")
            else:
                deposit.state = self.error_state
                logger.warning(f"{self.failure_message} {deposit.uuid}")
            state.persist_deposit(deposit)
        return True


def validate_wiring(
    name: str,
    input_state: DepositState,
    success_state: DepositState,
    error_state: DepositState | None,
) -> None:
    """Check a stage's states against the deposit lifecycle.

    Raises:
        StageConfigurationError: If a target state is not reachable from the input
    """
    allowed = allowed_transitions(input_state)
    if success_state not in allowed or success_state.is_error:
        raise StageConfigurationError(
            f"Stage {name}: {input_state.value} cannot move to {success_state.value}"
        )
    if error_state is not None and (error_state not in allowed or not error_state.is_error):
        raise StageConfigurationError(
            f"Stage {name}: {input_state.value} cannot fail to {error_state.value}"
        )
