"""XML documents returned by the deposit protocol."""

from datetime import datetime

from lxml import etree

from plnstage.domain.models import Deposit

ATOM_NS = "http://www.w3.org/2005/Atom"
APP_NS = "http://www.w3.org/2007/app"
SWORD_NS = "http://purl.org/net/sword/terms/"
DCTERMS_NS = "http://purl.org/dc/terms/"
PKP_NS = "http://pkp.sfu.ca/SWORD"

SWORD_STATE_SCHEME = "http://purl.org/net/sword/terms/state"
SWORD_ERROR_URI = "http://purl.org/net/sword/error/"

ATOM = "{%s}" % ATOM_NS
APP = "{%s}" % APP_NS
SWORD = "{%s}" % SWORD_NS
PKP = "{%s}" % PKP_NS

_SD_MAP = {None: APP_NS, "atom": ATOM_NS, "sword": SWORD_NS, "dcterms": DCTERMS_NS, "pkp": PKP_NS}
_FEED_MAP = {None: ATOM_NS, "sword": SWORD_NS, "pkp": PKP_NS}
_ERROR_MAP = {"sword": SWORD_NS, "atom": ATOM_NS}

ENTRY_CONTENT_TYPE = "application/atom+xml;type=entry"


def _tostring(element: etree._Element) -> bytes:
    return etree.tostring(element, xml_declaration=True, encoding="UTF-8", pretty_print=True)


def service_document(
    on_behalf_of: str,
    accepting: bool,
    message: str,
    col_iri: str,
    terms: list[str],
    max_upload_size: int,
    checksum_type: str,
) -> bytes:
    """Capability document telling a provider whether and where it may deposit."""
    service = etree.Element(APP + "service", nsmap=_SD_MAP)
    etree.SubElement(service, SWORD + "version").text = "2.0"
    etree.SubElement(service, SWORD + "maxUploadSize").text = str(max_upload_size)
    etree.SubElement(service, PKP + "uploadChecksumType").text = checksum_type

    pln_accepting = etree.SubElement(service, PKP + "pln_accepting")
    pln_accepting.set("is_accepting", "Yes" if accepting else "No")
    pln_accepting.text = message

    terms_el = etree.SubElement(service, PKP + "terms_of_use")
    for index, text in enumerate(terms, start=1):
        term = etree.SubElement(terms_el, PKP + "term")
        term.set("id", str(index))
        term.text = text

    workspace = etree.SubElement(service, APP + "workspace")
    etree.SubElement(workspace, ATOM + "title").text = f"PLN deposits for {on_behalf_of}"
    collection = etree.SubElement(workspace, APP + "collection")
    collection.set("href", col_iri)
    etree.SubElement(collection, ATOM + "title").text = "Preservation network deposits"
    etree.SubElement(collection, APP + "accept").text = ENTRY_CONTENT_TYPE
    etree.SubElement(collection, SWORD + "mediation").text = "true"
    return _tostring(service)


def statement(deposit: Deposit, edit_iri: str, updated: datetime) -> bytes:
    """Atom feed describing the current processing state of one deposit."""
    feed = etree.Element(ATOM + "feed", nsmap=_FEED_MAP)
    etree.SubElement(feed, ATOM + "id").text = f"urn:uuid:{deposit.uuid}"
    etree.SubElement(feed, ATOM + "title").text = f"Deposit {deposit.uuid}"
    etree.SubElement(feed, ATOM + "updated").text = updated.isoformat()

    category = etree.SubElement(feed, ATOM + "category")
    category.set("scheme", SWORD_STATE_SCHEME)
    category.set("term", deposit.state.value)
    category.set("label", "State")
    category.text = deposit.state.description

    entry = etree.SubElement(feed, ATOM + "entry")
    etree.SubElement(entry, ATOM + "id").text = f"urn:uuid:{deposit.uuid}"
    link = etree.SubElement(entry, ATOM + "link")
    link.set("rel", "edit")
    link.set("href", edit_iri)
    content = etree.SubElement(entry, ATOM + "content")
    content.set("src", deposit.url)
    etree.SubElement(entry, SWORD + "originalDeposit").set("href", deposit.url)

    attempts = etree.SubElement(feed, PKP + "harvest_attempts")
    attempts.text = str(deposit.harvest_attempts)
    return _tostring(feed)


def error_document(status_code: int, summary: str, now: datetime) -> bytes:
    """SWORD error document."""
    error = etree.Element(SWORD + "error", nsmap=_ERROR_MAP)
    error.set("href", SWORD_ERROR_URI + ("ErrorBadRequest" if status_code < 500 else "ErrorContent"))
    author = etree.SubElement(error, ATOM + "author")
    etree.SubElement(author, ATOM + "name").text = "PLN Staging Server"
    etree.SubElement(error, ATOM + "title").text = f"ERROR {status_code}"
    etree.SubElement(error, ATOM + "updated").text = now.isoformat()
    summary_el = etree.SubElement(error, ATOM + "summary")
    summary_el.set("type", "text")
    summary_el.text = summary
    etree.SubElement(error, SWORD + "treatment").text = "processing failed"
    return _tostring(error)
