"""The deposit-processing stages, in lifecycle order."""

import logging
from collections.abc import Callable

from plnstage.domain.errors import HarvestError, TransmitError
from plnstage.domain.models import Deposit, DepositState, StageOutcome
from plnstage.domain.types import Scanner
from plnstage.operations.checksum import ChecksumValidator
from plnstage.operations.disk import DiskBudget
from plnstage.operations.harvest import Harvester
from plnstage.operations.paths import FilePaths
from plnstage.operations.transmit import AGREEMENT, DepositTransmitter
from plnstage.orchestrators.base import PipelineStage
from plnstage.state.manager import StateManager

logger = logging.getLogger(__name__)


class HarvestStage(PipelineStage):
    """Download submitted deposits from their providers."""

    name = "harvest"
    input_state = DepositState.SUBMITTED
    success_state = DepositState.HARVESTED
    error_state = DepositState.HARVEST_ERROR
    success_message = "Deposit harvest succeeded."
    failure_message = "Deposit harvest failed."

    def __init__(
        self,
        state: StateManager,
        harvester: Harvester,
        files: FilePaths,
        disk_budget: DiskBudget,
        max_attempts: int = 5,
        **kwargs,
    ):
        super().__init__(state, **kwargs)
        self.harvester = harvester
        self.files = files
        self.disk_budget = disk_budget
        self.max_attempts = max_attempts

    def prepare(self, deposits: list[Deposit], force: bool) -> list[Deposit]:
        """Drop deposits out of attempts, then check the batch fits on disk.

        Raises:
            DiskBudgetExceeded: The whole run is aborted before any download
        """
        ready = []
        for deposit in deposits:
            if not force and deposit.harvest_attempts >= self.max_attempts:
                logger.warning(
                    f"skipping - {deposit.uuid} - too many failed harvests "
                    f"({deposit.harvest_attempts})."
                )
                continue
            ready.append(deposit)

        if ready:
            self.disk_budget.check(sum(d.size for d in ready))
        return ready

    def process(self, deposit: Deposit) -> StageOutcome:
        deposit.harvest_attempts += 1
        partial = self.files.partial_file(deposit)
        try:
            warning = self.harvester.check_size(deposit)
            if warning:
                deposit.add_error_log(warning)
            deposit.content_type = self.harvester.fetch(deposit, partial)
        except HarvestError as e:
            partial.unlink(missing_ok=True)
            logger.error(f"{deposit.uuid} - {e}")
            deposit.add_error_log(str(e))
            return StageOutcome.FAILED
        except (ValueError, OSError) as e:
            # Unusable URLs and local write failures still count as an attempt.
            partial.unlink(missing_ok=True)
            logger.exception(f"{deposit.uuid} - harvest of {deposit.url} failed")
            deposit.add_error_log(f"Harvest - {deposit.url} - {e}")
            return StageOutcome.FAILED
        except BaseException:
            partial.unlink(missing_ok=True)
            raise

        partial.replace(self.files.harvest_file(deposit))
        return StageOutcome.SUCCEEDED

    def discard(self, deposit: Deposit) -> None:
        for path in self.files.artifacts(deposit):
            path.unlink(missing_ok=True)


class ValidateChecksumsStage(PipelineStage):
    """Compare harvested payloads with the checksum the provider declared."""

    name = "validate-checksums"
    input_state = DepositState.HARVESTED
    success_state = DepositState.PAYLOAD_VALIDATED
    error_state = DepositState.PAYLOAD_ERROR
    success_message = "Deposit checksum validated."
    failure_message = "Deposit checksum validation failed."

    def __init__(
        self,
        state: StateManager,
        files: FilePaths,
        validator: ChecksumValidator,
        **kwargs,
    ):
        super().__init__(state, **kwargs)
        self.files = files
        self.validator = validator

    def process(self, deposit: Deposit) -> StageOutcome:
        path = self.files.harvest_file(deposit)
        if not path.is_file():
            deposit.add_error_log(f"Cannot find deposit file {path}")
            return StageOutcome.FAILED

        try:
            result = self.validator.validate(path, deposit.checksum_type, deposit.checksum_value)
        except ValueError as e:
            deposit.add_error_log(str(e))
            return StageOutcome.FAILED

        if not result.matches:
            message = (
                f"Deposit checksum does not match. Expected {result.expected.upper()} "
                f"!= Actual {result.actual.upper()}"
            )
            logger.warning(f"{deposit.uuid} - {message}")
            deposit.add_error_log(message)
            return StageOutcome.FAILED
        return StageOutcome.SUCCEEDED


class ScanVirusesStage(PipelineStage):
    """Scan validated payloads for malware."""

    name = "scan-viruses"
    input_state = DepositState.PAYLOAD_VALIDATED
    success_state = DepositState.VIRUS_CHECKED
    error_state = DepositState.VIRUS_ERROR
    success_message = "Deposit virus scan passed."
    failure_message = "Deposit virus scan failed."

    def __init__(self, state: StateManager, files: FilePaths, scanner: Scanner, **kwargs):
        super().__init__(state, **kwargs)
        self.files = files
        self.scanner = scanner

    def process(self, deposit: Deposit) -> StageOutcome:
        path = self.files.harvest_file(deposit)
        if not path.is_file():
            deposit.add_error_log(f"Cannot find deposit file {path}")
            return StageOutcome.FAILED

        # ScannerError propagates: a broken scanner is not the deposit's fault.
        report = self.scanner.scan(path)
        if report.infected:
            lines = ["Virus infections found in file."]
            lines += [f"{d.path} - {d.description}" for d in report.detections]
            deposit.add_error_log("\n".join(lines))
            return StageOutcome.FAILED
        return StageOutcome.SUCCEEDED


class OrganizeStage(PipelineStage):
    """Place clean deposits into archival units."""

    name = "organize"
    input_state = DepositState.VIRUS_CHECKED
    success_state = DepositState.ORGANIZED
    error_state = DepositState.ORGANIZE_ERROR
    success_message = "Deposit organized."
    failure_message = "Deposit organization failed."

    def __init__(self, state: StateManager, max_au_size: int, **kwargs):
        super().__init__(state, **kwargs)
        self.max_au_size = max_au_size

    def process(self, deposit: Deposit) -> StageOutcome:
        return StageOutcome.SUCCEEDED

    def apply(self, deposit: Deposit, state: StateManager) -> None:
        """Add the deposit to the open archival unit, creating one if none is open.

        Runs inside the commit transaction, so only one worker at a time
        touches the open unit.
        """
        container = state.find_open_container()
        if container is None:
            container = state.create_container(created=self.clock())
            logger.info(f"Opened archival unit {container.id}")

        container.add_deposit(deposit)
        deposit.au_container_id = container.id
        if container.size > self.max_au_size:
            container.close()
            logger.info(f"Closed archival unit {container.id} at {container.size} bytes")
        state.persist_container(container)


class DepositStage(PipelineStage):
    """Send organized deposits to the preservation network."""

    name = "deposit"
    input_state = DepositState.ORGANIZED
    success_state = DepositState.DEPOSITED
    error_state = DepositState.DEPOSIT_ERROR
    success_message = "Deposit sent to the preservation network."
    failure_message = "Deposit transmission failed."

    def __init__(
        self,
        state: StateManager,
        transmitter: DepositTransmitter,
        content_url: Callable[[Deposit], str],
        **kwargs,
    ):
        """Initialize the stage.

        Args:
            state: Shared state repository
            transmitter: Downstream SWORD client
            content_url: Builds the URL the network fetches a deposit's payload from
        """
        super().__init__(state, **kwargs)
        self.transmitter = transmitter
        self.content_url = content_url

    def process(self, deposit: Deposit) -> StageOutcome:
        with self.state as state:
            provider = state.find_provider(deposit.provider_uuid)

        try:
            deposit.receipt_url = self.transmitter.send(
                deposit, provider, self.content_url(deposit)
            )
        except TransmitError as e:
            logger.error(f"{deposit.uuid} - {e}")
            deposit.add_error_log(str(e))
            return StageOutcome.FAILED
        return StageOutcome.SUCCEEDED


class ConfirmStatusStage(PipelineStage):
    """Mark deposits acknowledged once the network reports agreement."""

    name = "status"
    input_state = DepositState.DEPOSITED
    success_state = DepositState.ACKNOWLEDGED
    success_message = "Deposit acknowledged by the preservation network."

    def __init__(self, state: StateManager, transmitter: DepositTransmitter, **kwargs):
        super().__init__(state, **kwargs)
        self.transmitter = transmitter

    def process(self, deposit: Deposit) -> StageOutcome:
        try:
            term = self.transmitter.check_status(deposit)
        except TransmitError as e:
            logger.warning(f"{deposit.uuid} - {e}")
            return StageOutcome.SKIPPED

        if term == AGREEMENT:
            return StageOutcome.SUCCEEDED
        logger.info(f"{deposit.uuid} - downstream state is {term or 'unknown'}")
        return StageOutcome.SKIPPED
