"""Tests for the downstream SWORD client."""

import httpx
import pytest
import respx
from lxml import etree

from conftest import FIXED_NOW
from plnstage.domain.errors import TransmitError
from plnstage.operations.transmit import ATOM_NS, LOM_NS, DepositTransmitter

COL_IRI = "http://lom.test/api/sword/2.0/col-iri/1"


@pytest.fixture
def transmitter():
    with httpx.Client() as client:
        yield DepositTransmitter(client, COL_IRI, "PLN-1")


def test_entry_describes_deposit(transmitter, make_deposit, provider):
    deposit = make_deposit(volume="4", issue="2", au_container_id=3, checksum_value="abc")

    xml = etree.fromstring(
        transmitter.build_entry(deposit, provider, "http://staging.test/fetch/x", now=FIXED_NOW)
    )

    ns = {"atom": ATOM_NS, "lom": LOM_NS}
    assert xml.findtext("atom:title", namespaces=ns) == (
        "Deposit from Journal of Tests volume 4 issue 2"
    )
    assert xml.findtext("atom:id", namespaces=ns) == f"urn:uuid:{deposit.uuid}"
    content = xml.find("lom:content", namespaces=ns)
    assert content.text == "http://staging.test/fetch/x"
    assert content.get("size") == str(deposit.size)
    assert content.get("checksumValue") == "ABC"
    assert content.get("auId") == "3"


def test_send_without_collection_iri(make_deposit):
    with httpx.Client() as client:
        with pytest.raises(TransmitError, match="No downstream collection IRI"):
            DepositTransmitter(client, None, None).send(make_deposit(), None, "http://x")


@respx.mock
def test_send_requires_location(transmitter, make_deposit):
    respx.post(COL_IRI).mock(return_value=httpx.Response(201))

    with pytest.raises(TransmitError, match="without a Location header"):
        transmitter.send(make_deposit(), None, "http://x")


@respx.mock
def test_send_unreachable(transmitter, make_deposit):
    respx.post(COL_IRI).mock(side_effect=httpx.ConnectError)

    with pytest.raises(TransmitError, match="Cannot reach"):
        transmitter.send(make_deposit(), None, "http://x")


def test_status_needs_receipt(transmitter, make_deposit):
    with pytest.raises(TransmitError, match="no downstream receipt"):
        transmitter.check_status(make_deposit())


@respx.mock
def test_status_term_is_lower_cased(transmitter, make_deposit):
    receipt = "http://lom.test/statement/1"
    respx.get(receipt).mock(
        return_value=httpx.Response(
            200,
            content=(
                b'<feed xmlns="http://www.w3.org/2005/Atom">'
                b'<category scheme="http://purl.org/net/sword/terms/state" term="Agreement"/>'
                b"</feed>"
            ),
        )
    )

    assert transmitter.check_status(make_deposit(receipt_url=receipt)) == "agreement"


@respx.mock
def test_status_unparsable(transmitter, make_deposit):
    receipt = "http://lom.test/statement/1"
    respx.get(receipt).mock(return_value=httpx.Response(200, content=b"<feed"))

    with pytest.raises(TransmitError, match="Cannot parse statement"):
        transmitter.check_status(make_deposit(receipt_url=receipt))
