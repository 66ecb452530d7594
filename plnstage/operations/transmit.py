"""Send packaged deposits to the downstream preservation service."""

import logging
from datetime import datetime, timezone

import httpx
from lxml import etree
from lxml.builder import ElementMaker

from plnstage.domain.errors import TransmitError
from plnstage.domain.models import Deposit, Provider

logger = logging.getLogger(__name__)

ATOM_NS = "http://www.w3.org/2005/Atom"
LOM_NS = "http://lockssomatic.info/SWORD2"
SWORD_STATE_SCHEME = "http://purl.org/net/sword/terms/state"

# Downstream state meaning every preservation box holds a matching copy.
AGREEMENT = "agreement"

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True)


class DepositTransmitter:
    """SWORD client for the downstream preservation service."""

    def __init__(
        self,
        client: httpx.Client,
        col_iri: str | None,
        on_behalf_of: str | None,
    ):
        self.client = client
        self.col_iri = col_iri
        self.on_behalf_of = on_behalf_of

    def build_entry(
        self,
        deposit: Deposit,
        provider: Provider | None,
        content_url: str,
        now: datetime | None = None,
    ) -> bytes:
        """Render the Atom entry describing one deposit."""
        atom = ElementMaker(namespace=ATOM_NS, nsmap={None: ATOM_NS, "lom": LOM_NS})
        lom = ElementMaker(namespace=LOM_NS, nsmap={"lom": LOM_NS})
        provider_name = provider.name if provider else "unknown provider"
        title = f"Deposit from {provider_name}"
        if deposit.volume or deposit.issue:
            title += f" volume {deposit.volume or '-'} issue {deposit.issue or '-'}"

        entry = atom.entry(
            atom.title(title),
            atom.id(f"urn:uuid:{deposit.uuid}"),
            atom.updated((now or datetime.now(timezone.utc)).isoformat()),
            atom.author(atom.name("PLN Staging Server")),
            atom.summary(f"Content deposited by {provider_name}", type="text"),
            lom.content(
                content_url,
                size=str(deposit.size),
                checksumType=deposit.checksum_type,
                checksumValue=deposit.checksum_value.upper(),
                auId=str(deposit.au_container_id or ""),
            ),
        )
        return etree.tostring(entry, xml_declaration=True, encoding="UTF-8")

    def send(self, deposit: Deposit, provider: Provider | None, content_url: str) -> str:
        """POST a deposit and return the receipt URL the service hands back.

        Raises:
            TransmitError: If the service is not configured, unreachable, or refuses
        """
        if not self.col_iri:
            raise TransmitError("No downstream collection IRI is configured")

        headers = {"Content-Type": "application/atom+xml;type=entry"}
        if self.on_behalf_of:
            headers["On-Behalf-Of"] = self.on_behalf_of

        try:
            response = self.client.post(
                self.col_iri,
                content=self.build_entry(deposit, provider, content_url),
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise TransmitError(f"Cannot reach {self.col_iri}: {e}") from e

        if response.status_code != 201:
            raise TransmitError(
                f"Downstream refused deposit {deposit.uuid}: HTTP {response.status_code} "
                f"{response.reason_phrase}"
            )

        receipt = response.headers.get("Location")
        if not receipt:
            raise TransmitError(f"Downstream accepted {deposit.uuid} without a Location header")
        logger.info(f"Deposit {deposit.uuid} sent downstream, receipt {receipt}")
        return receipt

    def check_status(self, deposit: Deposit) -> str | None:
        """Return the downstream state term for a previously sent deposit.

        Raises:
            TransmitError: If the statement cannot be fetched or read
        """
        if not deposit.receipt_url:
            raise TransmitError(f"Deposit {deposit.uuid} has no downstream receipt")

        headers = {"On-Behalf-Of": self.on_behalf_of} if self.on_behalf_of else {}
        try:
            response = self.client.get(deposit.receipt_url, headers=headers)
        except httpx.HTTPError as e:
            raise TransmitError(f"Cannot reach {deposit.receipt_url}: {e}") from e
        if response.status_code != 200:
            raise TransmitError(
                f"Statement for {deposit.uuid} returned HTTP {response.status_code}"
            )

        try:
            xml = etree.fromstring(response.content, parser=_PARSER)
        except etree.XMLSyntaxError as e:
            raise TransmitError(f"Cannot parse statement for {deposit.uuid}: {e}") from e

        terms = xml.xpath(
            "//atom:category[@scheme=$scheme]/@term",
            namespaces={"atom": ATOM_NS},
            scheme=SWORD_STATE_SCHEME,
        )
        return str(terms[0]).lower() if terms else None
