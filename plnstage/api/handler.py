"""Deposit protocol operations, independent of the web framework.

Every operation takes plain values (tokens, header values, the request body)
and either returns the document to send back or raises ``SwordError`` with
the status code for the remote party.
"""

import logging
from pathlib import Path

from plnstage.api import documents
from plnstage.config import Settings
from plnstage.domain.errors import EnvelopeError, SwordError
from plnstage.domain.models import (
    PROGRESSION,
    AccessDecision,
    Deposit,
    DepositState,
    Provider,
    ProviderStatus,
)
from plnstage.domain.services import AccessGate, compare_versions, normalize_token, utcnow
from plnstage.domain.types import Clock
from plnstage.operations.envelope import DepositEnvelope, parse_envelope
from plnstage.operations.paths import FilePaths
from plnstage.state.manager import StateManager

logger = logging.getLogger(__name__)

# Deposits the downstream network may fetch content for.
_FETCHABLE = frozenset(PROGRESSION[PROGRESSION.index(DepositState.ORGANIZED) :])


class SwordUrls:
    """Absolute URLs of the protocol endpoints."""

    def __init__(self, public_url: str, prefix: str):
        self.base = public_url.rstrip("/") + prefix

    def sd_iri(self) -> str:
        return f"{self.base}/sd-iri"

    def col_iri(self, provider_uuid: str) -> str:
        return f"{self.base}/col-iri/{provider_uuid}"

    def state_iri(self, provider_uuid: str, deposit_uuid: str) -> str:
        return f"{self.base}/cont-iri/{provider_uuid}/{deposit_uuid}/state"

    def edit_iri(self, provider_uuid: str, deposit_uuid: str) -> str:
        return f"{self.base}/cont-iri/{provider_uuid}/{deposit_uuid}/edit"

    def fetch_url(self, provider_uuid: str, deposit_uuid: str) -> str:
        return f"{self.base}/fetch/{provider_uuid}/{deposit_uuid}"


class IngestProtocolHandler:
    """Service document, create, statement, edit and fetch operations."""

    def __init__(
        self,
        config: Settings,
        state: StateManager,
        gate: AccessGate | None = None,
        clock: Clock = utcnow,
    ):
        self.config = config
        self.state = state
        self.gate = gate or AccessGate(state, config.accepting)
        self.clock = clock
        self.urls = SwordUrls(config.public_url, config.sword_prefix)
        self.files = FilePaths(config.data_dir)

    def _check_access(self, action: str, token: str, client_ip: str | None) -> bool:
        accepting = self.gate.check(token) == AccessDecision.ALLOW
        logger.info(
            f"{action} - {client_ip} - {token} - {'accepting' if accepting else 'not accepting'}"
        )
        return accepting

    def network_message(self, provider: Provider) -> str:
        """Pick the status message shown to a provider."""
        if provider.software_version is None:
            return self.config.network_default
        if compare_versions(provider.software_version, self.config.min_software_version) >= 0:
            return self.config.network_accepting
        return self.config.network_old_version

    def service_document(
        self,
        on_behalf_of: str | None,
        provider_url: str | None,
        client_ip: str | None = None,
    ) -> bytes:
        """Return the capability document and record the provider's contact.

        Raises:
            SwordError: 400 if either header is missing
        """
        token = normalize_token(on_behalf_of)
        accepting = self._check_access("service document", token, client_ip)
        if not token:
            raise SwordError(400, f"Missing On-Behalf-Of header for {provider_url}")
        if not provider_url:
            raise SwordError(400, f"Missing Institution-Url header for {token}")

        with self.state as state:
            provider = self._contact(state, token, provider_url)
            state.persist_provider(provider)

        return documents.service_document(
            on_behalf_of=token,
            accepting=accepting,
            message=self.network_message(provider),
            col_iri=self.urls.col_iri(token),
            terms=self.config.terms_of_use,
            max_upload_size=self.config.max_upload_size,
            checksum_type=self.config.upload_checksum_type,
        )

    def create_deposit(
        self, provider_token: str, body: bytes, client_ip: str | None = None
    ) -> tuple[bytes, str]:
        """Register a new deposit from an envelope.

        Returns:
            The statement document and the state IRI for the Location header

        Raises:
            SwordError: 400 when access is denied, the XML is malformed or the
                deposit already exists; 500 when required fields are missing
        """
        token = normalize_token(provider_token)
        if not self._check_access("create deposit", token, client_ip):
            raise SwordError(400, "Not authorized to create deposits.")

        envelope = self._parse(body)
        now = self.clock()
        with self.state as state:
            existing = state.find_deposit(envelope.deposit_uuid)
            if existing is not None:
                if existing.provider_uuid != token:
                    raise SwordError(400, "Deposit does not belong to provider.")
                raise SwordError(400, f"Deposit {existing.uuid} already exists; use the edit IRI.")

            provider = self._contact(state, token, envelope.provider_url)
            self._apply_provider_fields(provider, envelope)
            provider.status = ProviderStatus.HEALTHY
            state.persist_provider(provider)

            deposit = Deposit(
                uuid=envelope.deposit_uuid,
                provider_uuid=token,
                url=envelope.content_url,
                size=envelope.size,
                checksum_type=envelope.checksum_type,
                checksum_value=envelope.checksum_value,
                volume=envelope.volume,
                issue=envelope.issue,
                pub_date=envelope.pub_date,
                license=envelope.license,
                received=now,
            )
            state.persist_deposit(deposit)
            deposit = state.find_deposit(deposit.uuid)

        logger.info(f"create deposit - {token} - {deposit.uuid} - {deposit.url}")
        return self._statement(deposit, now), self.urls.state_iri(token, deposit.uuid)

    def statement(
        self,
        provider_token: str,
        deposit_id: str,
        client_ip: str | None = None,
        operator: bool = False,
    ) -> bytes:
        """Return the current state of a deposit.

        Args:
            provider_token: Provider the deposit is expected to belong to
            deposit_id: Deposit token
            client_ip: Remote address, for the log
            operator: The caller presented a valid operator key

        Raises:
            SwordError: 400 if not authorized, unknown or mismatched
        """
        token = normalize_token(provider_token)
        accepting = self._check_access("statement", token, client_ip)
        if not accepting and not operator:
            raise SwordError(400, "Not authorized to request statements.")

        now = self.clock()
        with self.state as state:
            provider, deposit = self._owned_deposit(state, token, deposit_id)
            provider.contacted = now
            provider.status = ProviderStatus.HEALTHY
            state.persist_provider(provider)
        return self._statement(deposit, now)

    def edit_deposit(
        self,
        provider_token: str,
        deposit_id: str,
        body: bytes,
        client_ip: str | None = None,
    ) -> tuple[bytes, str]:
        """Replace a deposit's content reference and restart it at submitted.

        Raises:
            SwordError: 400 if not authorized, unknown, mismatched, already
                packaged, or the envelope names another deposit; 400/500 on
                envelope errors as for create
        """
        token = normalize_token(provider_token)
        if not self._check_access("edit deposit", token, client_ip):
            raise SwordError(400, "Not authorized to edit deposits.")

        now = self.clock()
        with self.state as state:
            provider, deposit = self._owned_deposit(state, token, deposit_id)
            envelope = self._parse(body)
            if envelope.deposit_uuid != deposit.uuid:
                raise SwordError(
                    400, f"Envelope names deposit {envelope.deposit_uuid}, not {deposit.uuid}."
                )
            if deposit.locked:
                raise SwordError(
                    400, f"Deposit {deposit.uuid} is {deposit.state.value} and cannot be edited."
                )

            provider.contacted = now
            provider.status = ProviderStatus.HEALTHY
            self._apply_provider_fields(provider, envelope)
            state.persist_provider(provider)

            previous = deposit.state
            deposit.url = envelope.content_url
            deposit.size = envelope.size
            deposit.checksum_type = envelope.checksum_type
            deposit.checksum_value = envelope.checksum_value
            deposit.volume = envelope.volume
            deposit.issue = envelope.issue
            deposit.pub_date = envelope.pub_date
            deposit.license = envelope.license
            deposit.content_type = None
            deposit.state = DepositState.SUBMITTED
            deposit.add_error_log(
                f"Deposit edited by provider; restarted from {previous.value}."
            )
            state.persist_deposit(deposit)
            deposit = state.find_deposit(deposit.uuid)

        logger.info(f"edit deposit - {token} - {deposit.uuid} - {previous.value} -> submitted")
        return self._statement(deposit, now), self.urls.state_iri(token, deposit.uuid)

    def fetch_path(self, provider_token: str, deposit_id: str) -> tuple[Path, Deposit]:
        """Locate the harvested payload the downstream network asks for.

        Raises:
            SwordError: 404 unless the deposit is packaged and its file exists
        """
        token = normalize_token(provider_token)
        with self.state as state:
            deposit = state.find_deposit(normalize_token(deposit_id))
        if deposit is None or deposit.provider_uuid != token:
            raise SwordError(404, "Deposit not found.")
        if deposit.state not in _FETCHABLE:
            raise SwordError(404, f"Deposit {deposit.uuid} is not ready for transfer.")

        path = self.files.harvest_file(deposit)
        if not path.is_file():
            logger.error(f"fetch - {deposit.uuid} - missing file {path}")
            raise SwordError(404, "Deposit file not found.")
        return path, deposit

    def _parse(self, body: bytes) -> DepositEnvelope:
        try:
            return parse_envelope(body)
        except EnvelopeError as e:
            logger.warning(f"Cannot read deposit envelope: {e}")
            raise SwordError(400 if e.malformed else 500, str(e)) from e

    def _owned_deposit(
        self, state: StateManager, token: str, deposit_id: str
    ) -> tuple[Provider, Deposit]:
        provider = state.find_provider(token)
        if provider is None:
            raise SwordError(400, "Provider UUID not found.")
        deposit_uuid = normalize_token(deposit_id)
        deposit = state.find_deposit(deposit_uuid)
        if deposit is None:
            raise SwordError(400, f"Deposit UUID {deposit_uuid} not found.")
        if deposit.provider_uuid != provider.uuid:
            raise SwordError(400, "Provider and deposit mismatch.")
        return provider, deposit

    def _contact(self, state: StateManager, token: str, url: str | None) -> Provider:
        now = self.clock()
        provider = state.find_provider(token)
        if provider is None:
            logger.info(f"new provider - {token} - {url}")
            return Provider(uuid=token, url=url, status=ProviderStatus.NEW, contacted=now)

        provider.contacted = now
        if url and provider.url != url:
            logger.warning(f"provider URL mismatch - {token} - {provider.url} - {url}")
            provider.url = url
        if provider.status != ProviderStatus.NEW:
            provider.status = ProviderStatus.HEALTHY
        return provider

    @staticmethod
    def _apply_provider_fields(provider: Provider, envelope: DepositEnvelope) -> None:
        if envelope.title:
            provider.name = envelope.title
        if envelope.email:
            provider.email = envelope.email
        if envelope.issn:
            provider.issn = envelope.issn
        if envelope.publisher_name:
            provider.publisher_name = envelope.publisher_name
        if envelope.publisher_url:
            provider.publisher_url = envelope.publisher_url

    def _statement(self, deposit: Deposit, now) -> bytes:
        return documents.statement(
            deposit, self.urls.edit_iri(deposit.provider_uuid, deposit.uuid), now
        )
