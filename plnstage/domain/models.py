"""Domain models for the staging pipeline."""

from datetime import datetime
from enum import Enum
from pathlib import PurePosixPath
from urllib.parse import urlparse

from pydantic import BaseModel, Field


class DepositState(str, Enum):
    """Processing state of a deposit."""

    SUBMITTED = "submitted"
    HARVESTED = "harvested"
    PAYLOAD_VALIDATED = "payload-validated"
    VIRUS_CHECKED = "virus-checked"
    ORGANIZED = "organized"
    DEPOSITED = "deposited"
    ACKNOWLEDGED = "acknowledged"

    HARVEST_ERROR = "harvest-error"
    PAYLOAD_ERROR = "payload-error"
    VIRUS_ERROR = "virus-error"
    ORGANIZE_ERROR = "organize-error"
    DEPOSIT_ERROR = "deposit-error"

    @property
    def is_error(self) -> bool:
        """Return True for the terminal error states."""
        return self in ERROR_RECOVERY

    @property
    def description(self) -> str:
        """Human-readable explanation used in statements."""
        return STATE_DESCRIPTIONS[self]


# Normal forward order of a deposit through the pipeline.
PROGRESSION: tuple[DepositState, ...] = (
    DepositState.SUBMITTED,
    DepositState.HARVESTED,
    DepositState.PAYLOAD_VALIDATED,
    DepositState.VIRUS_CHECKED,
    DepositState.ORGANIZED,
    DepositState.DEPOSITED,
    DepositState.ACKNOWLEDGED,
)

# Error state -> state the failed stage selects on.
ERROR_RECOVERY: dict[DepositState, DepositState] = {
    DepositState.HARVEST_ERROR: DepositState.SUBMITTED,
    DepositState.PAYLOAD_ERROR: DepositState.HARVESTED,
    DepositState.VIRUS_ERROR: DepositState.PAYLOAD_VALIDATED,
    DepositState.ORGANIZE_ERROR: DepositState.VIRUS_CHECKED,
    DepositState.DEPOSIT_ERROR: DepositState.ORGANIZED,
}

STATE_DESCRIPTIONS: dict[DepositState, str] = {
    DepositState.SUBMITTED: "Deposit received; waiting to be harvested.",
    DepositState.HARVESTED: "Deposit content has been harvested from the provider.",
    DepositState.PAYLOAD_VALIDATED: "Deposit checksum has been validated.",
    DepositState.VIRUS_CHECKED: "Deposit content has been scanned for viruses.",
    DepositState.ORGANIZED: "Deposit has been placed in an archival unit.",
    DepositState.DEPOSITED: "Deposit has been sent to the preservation network.",
    DepositState.ACKNOWLEDGED: "Deposit has been preserved by the preservation network.",
    DepositState.HARVEST_ERROR: "Deposit content could not be harvested.",
    DepositState.PAYLOAD_ERROR: "Deposit checksum does not match the harvested content.",
    DepositState.VIRUS_ERROR: "Deposit content failed the virus scan.",
    DepositState.ORGANIZE_ERROR: "Deposit could not be placed in an archival unit.",
    DepositState.DEPOSIT_ERROR: "Deposit could not be sent to the preservation network.",
}


def allowed_transitions(state: DepositState) -> frozenset[DepositState]:
    """Return the states a pipeline stage may move a deposit to from ``state``."""
    if state.is_error or state == DepositState.ACKNOWLEDGED:
        return frozenset()
    index = PROGRESSION.index(state)
    following = {PROGRESSION[index + 1]}
    following.update(err for err, source in ERROR_RECOVERY.items() if source == state)
    return frozenset(following)


class ProviderStatus(str, Enum):
    """Health status of a provider."""

    NEW = "new"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    PING_ERROR = "ping-error"


class AccessDecision(str, Enum):
    """Result of an access gate check."""

    ALLOW = "allow"
    DENY = "deny"


class AccessListKind(str, Enum):
    """Which access list an entry belongs to."""

    ALLOW = "allow"
    DENY = "deny"


class StageOutcome(str, Enum):
    """Result of processing one deposit in a stage."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class Provider(BaseModel):
    """A registered content source."""

    uuid: str
    name: str = "unknown"
    url: str | None = None
    email: str | None = None
    issn: str | None = None
    publisher_name: str | None = None
    publisher_url: str | None = None
    status: ProviderStatus = ProviderStatus.NEW
    contacted: datetime | None = None
    notified: datetime | None = None
    software_version: str | None = None
    terms_accepted: bool = False

    @property
    def gateway_url(self) -> str | None:
        """URL of the provider's self-reporting gateway plugin."""
        if not self.url:
            return None
        return self.url.rstrip("/") + "/gateway/plugin/PLNGatewayPlugin"


class Deposit(BaseModel):
    """One submitted archival package and its processing record."""

    uuid: str
    provider_uuid: str
    url: str
    size: int  # Declared size in bytes
    checksum_type: str
    checksum_value: str
    content_type: str | None = None
    state: DepositState = DepositState.SUBMITTED
    harvest_attempts: int = 0
    error_log: list[str] = Field(default_factory=list)
    au_container_id: int | None = None
    volume: str | None = None
    issue: str | None = None
    pub_date: str | None = None
    license: dict[str, str] = Field(default_factory=dict)
    received: datetime | None = None
    receipt_url: str | None = None  # Downstream deposit receipt
    sequence: int = 0  # Order of entry into the current state
    revision: int = 0  # Bumped on every store

    def add_error_log(self, message: str) -> None:
        """Append a human-readable entry to the error log."""
        self.error_log.append(message)

    @property
    def file_name(self) -> str:
        """Local file name for the harvested payload."""
        try:
            path = urlparse(self.url).path
        except ValueError:
            path = ""
        suffix = PurePosixPath(path).suffix or ".zip"
        return f"{self.uuid}{suffix}"

    @property
    def locked(self) -> bool:
        """True once the deposit is packaged or accepted downstream."""
        return self.au_container_id is not None or self.state == DepositState.ACKNOWLEDGED


class AuContainer(BaseModel):
    """A batch of deposits transmitted downstream together."""

    id: int
    open: bool = True
    size: int = 0
    deposit_uuids: list[str] = Field(default_factory=list)
    created: datetime | None = None

    def add_deposit(self, deposit: Deposit) -> None:
        """Attach a deposit and grow the aggregate size."""
        if not self.open:
            raise ValueError(f"Archival unit {self.id} is closed")
        if deposit.uuid in self.deposit_uuids:
            return
        self.deposit_uuids.append(deposit.uuid)
        self.size += deposit.size

    def close(self) -> None:
        """Seal the container. Closing is irreversible."""
        self.open = False


class AccessListEntry(BaseModel):
    """Allow- or deny-list entry keyed by provider token."""

    uuid: str
    kind: AccessListKind
    comment: str = ""
    created: datetime | None = None


class PingResult(BaseModel):
    """What a provider reported about itself when pinged."""

    http_status: int | None = None
    parsed: bool = False
    software_version: str | None = None
    terms_accepted: str | None = None
    title: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        """True when the provider answered 200 with a readable payload."""
        return self.http_status == 200 and self.parsed

    @property
    def healthy(self) -> bool:
        """True when the ping succeeded and terms were accepted."""
        return self.succeeded and self.terms_accepted == "yes"


class ScanDetection(BaseModel):
    """One infection reported by the scanner."""

    path: str
    description: str


class ScanReport(BaseModel):
    """Result of scanning one file."""

    infected: bool = False
    detections: list[ScanDetection] = Field(default_factory=list)


class PipelineState(BaseModel):
    """Complete persisted state."""

    providers: dict[str, Provider] = Field(default_factory=dict)
    deposits: dict[str, Deposit] = Field(default_factory=dict)
    containers: dict[str, AuContainer] = Field(default_factory=dict)
    allow_list: dict[str, AccessListEntry] = Field(default_factory=dict)
    deny_list: dict[str, AccessListEntry] = Field(default_factory=dict)
    sequence: int = 0


class StageReport(BaseModel):
    """Summary of one stage run."""

    stage: str
    succeeded: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    faulted: list[str] = Field(default_factory=list)
    cancelled: list[str] = Field(default_factory=list)
    dry_run: bool = False

    @property
    def total(self) -> int:
        """Number of deposits the run looked at."""
        return (
            len(self.succeeded)
            + len(self.failed)
            + len(self.skipped)
            + len(self.faulted)
            + len(self.cancelled)
        )

    @property
    def has_failures(self) -> bool:
        """Return True if any deposit failed or faulted."""
        return bool(self.failed or self.faulted)

    def record(self, deposit_uuid: str, outcome: StageOutcome) -> None:
        """Record the outcome for one deposit."""
        if outcome == StageOutcome.SUCCEEDED:
            self.succeeded.append(deposit_uuid)
        elif outcome == StageOutcome.FAILED:
            self.failed.append(deposit_uuid)
        else:
            self.skipped.append(deposit_uuid)

    def __repr__(self) -> str:
        """Return string representation of the report."""
        return (
            f"StageReport({self.stage}, "
            f"succeeded={len(self.succeeded)}, "
            f"failed={len(self.failed)}, "
            f"skipped={len(self.skipped)}, "
            f"faulted={len(self.faulted)}, "
            f"cancelled={len(self.cancelled)})"
        )
