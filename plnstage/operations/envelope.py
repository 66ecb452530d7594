"""Parse deposit envelopes (Atom entries) submitted by providers."""

import httpx
from lxml import etree
from pydantic import BaseModel, Field

from plnstage.domain.errors import EnvelopeError

NAMESPACES = {
    "atom": "http://www.w3.org/2005/Atom",
    "dcterms": "http://purl.org/dc/terms/",
    "pkp": "http://pkp.sfu.ca/SWORD",
    "sword": "http://purl.org/net/sword/terms/",
    "app": "http://www.w3.org/2007/app",
}

# Providers have used several element names for their own URL.
_PROVIDER_URL_PATHS = ("//pkp:provider_url", "//pkp:journal_url", "//pkp:institution_url")

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, remove_blank_text=True)


class DepositEnvelope(BaseModel):
    """Provider and deposit fields carried by one envelope."""

    deposit_uuid: str
    email: str | None = None
    title: str | None = None
    provider_url: str | None = None
    publisher_name: str | None = None
    publisher_url: str | None = None
    issn: str | None = None
    content_url: str
    size: int
    volume: str | None = None
    issue: str | None = None
    pub_date: str | None = None
    checksum_type: str
    checksum_value: str
    license: dict[str, str] = Field(default_factory=dict)


def parse_xml(content: bytes | str) -> etree._Element:
    """Parse XML without resolving external entities.

    Raises:
        EnvelopeError: With ``malformed=True`` if the content is not XML
    """
    if isinstance(content, str):
        content = content.encode("utf-8")
    try:
        return etree.fromstring(content, parser=_PARSER)
    except etree.XMLSyntaxError as e:
        raise EnvelopeError(f"Cannot parse deposit XML: {e}", malformed=True) from e


def get_xml_value(xml: etree._Element, xpath: str) -> str | None:
    """Return the single text value at ``xpath``, or None if absent.

    Raises:
        EnvelopeError: If more than one element matches
    """
    data = xml.xpath(xpath, namespaces=NAMESPACES)
    if len(data) == 0:
        return None
    if len(data) > 1:
        raise EnvelopeError(f"Too many elements for '{xpath}'")
    value = data[0]
    text = value if isinstance(value, str) else value.text
    return text.strip() if text is not None else None


def _required(value: str | None, what: str) -> str:
    if not value:
        raise EnvelopeError(f"Deposit envelope is missing {what}")
    return value


def _content_url(value: str) -> str:
    """Return ``value`` if it is an absolute http(s) URL the harvester can fetch."""
    _required(value, "a content URL")
    try:
        url = httpx.URL(value)
    except httpx.InvalidURL as e:
        raise EnvelopeError(f"Content URL '{value}' is not valid: {e}") from e
    if url.scheme not in ("http", "https") or not url.host:
        raise EnvelopeError(f"Content URL '{value}' is not an absolute http(s) URL")
    return value


def parse_envelope(content: bytes | str) -> DepositEnvelope:
    """Turn a submitted Atom entry into a ``DepositEnvelope``.

    Raises:
        EnvelopeError: If the XML is malformed or required fields are missing
    """
    xml = parse_xml(content)

    deposit_id = _required(get_xml_value(xml, "/atom:entry/atom:id"), "an id")
    deposit_uuid = deposit_id.removeprefix("urn:uuid:").strip().upper()

    contents = xml.xpath("//pkp:content", namespaces=NAMESPACES)
    if len(contents) != 1:
        raise EnvelopeError(f"Expected one pkp:content element, found {len(contents)}")
    content_el = contents[0]

    size = _required(content_el.get("size"), "a content size")
    if not size.strip().isdigit():
        raise EnvelopeError(f"Content size '{size}' is not a number")

    provider_url = None
    for path in _PROVIDER_URL_PATHS:
        provider_url = get_xml_value(xml, path)
        if provider_url:
            break

    license_data = {}
    for el in xml.xpath("//pkp:license/*", namespaces=NAMESPACES):
        if el.text and el.text.strip():
            license_data[etree.QName(el).localname] = el.text.strip()

    return DepositEnvelope(
        deposit_uuid=_required(deposit_uuid, "a deposit uuid"),
        email=get_xml_value(xml, "//atom:email"),
        title=get_xml_value(xml, "//atom:title"),
        provider_url=provider_url,
        publisher_name=get_xml_value(xml, "//pkp:publisherName"),
        publisher_url=get_xml_value(xml, "//pkp:publisherUrl"),
        issn=get_xml_value(xml, "//pkp:issn"),
        content_url=_content_url((content_el.text or "").strip()),
        size=int(size),
        volume=content_el.get("volume"),
        issue=content_el.get("issue"),
        pub_date=content_el.get("pubdate"),
        checksum_type=_required(content_el.get("checksumType"), "a checksum type"),
        checksum_value=_required(content_el.get("checksumValue"), "a checksum value"),
        license=license_data,
    )
