"""Configure tests."""

import hashlib
from datetime import datetime, timezone
from pathlib import Path

import pytest

from plnstage.config import Settings
from plnstage.domain.models import Deposit, DepositState, Provider, ScanDetection, ScanReport
from plnstage.operations.paths import FilePaths
from plnstage.state.manager import StateManager

FIXED_NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

PROVIDER_UUID = "7AD045C9-89E6-4ACA-8687-A47E3A5A4BC8"
DEPOSIT_UUID = "F9A1F34B-7B05-4C38-9A0E-6AC7A7E8DA5B"


class FakeScanner:
    """Scanner that reports an infection for files containing the word 'virus'."""

    def __init__(self):
        self.scanned: list[Path] = []

    def scan(self, path: Path) -> ScanReport:
        self.scanned.append(path)
        if "virus" in path.read_bytes().decode(errors="ignore"):
            return ScanReport(
                infected=True,
                detections=[ScanDetection(path=str(path), description="Eicar-Test-Signature")],
            )
        return ScanReport(infected=False)


def make_envelope(
    deposit_uuid: str = DEPOSIT_UUID,
    content_url: str = "http://provider.test/content/1.zip",
    size: int = 1000,
    checksum_type: str = "SHA-1",
    checksum_value: str = "abc123",
    title: str = "Journal of Tests",
    provider_url: str = "http://provider.test",
) -> bytes:
    """Render a deposit envelope the way providers submit it."""
    return f"""<?xml version="1.0" encoding="utf-8"?>
<entry xmlns="http://www.w3.org/2005/Atom"
       xmlns:dcterms="http://purl.org/dc/terms/"
       xmlns:pkp="http://pkp.sfu.ca/SWORD">
    <email>editor@provider.test</email>
    <title>{title}</title>
    <pkp:journal_url>{provider_url}</pkp:journal_url>
    <pkp:publisherName>Test Press</pkp:publisherName>
    <pkp:publisherUrl>http://press.test</pkp:publisherUrl>
    <pkp:issn>1234-5678</pkp:issn>
    <id>urn:uuid:{deposit_uuid.lower()}</id>
    <updated>2024-01-01T00:00:00Z</updated>
    <pkp:content size="{size}" volume="4" issue="2" pubdate="2024-01-01"
        checksumType="{checksum_type}" checksumValue="{checksum_value}">{content_url}</pkp:content>
    <pkp:license>
        <pkp:openAccessPolicy>Yes</pkp:openAccessPolicy>
        <pkp:licenseURL>http://creativecommons.org/licenses/by/4.0</pkp:licenseURL>
    </pkp:license>
</entry>
""".encode()


@pytest.fixture
def clock():
    """Clock frozen at FIXED_NOW."""
    return lambda: FIXED_NOW


@pytest.fixture
def tmp_state_file(tmp_path):
    """Create a temporary state file path."""
    return tmp_path / "state.json"


@pytest.fixture
def state(tmp_state_file):
    """State manager on a temporary file."""
    return StateManager(tmp_state_file)


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at temporary directories."""
    return Settings(
        _env_file=None,
        data_dir=tmp_path / "files",
        state_file=tmp_path / "state.json",
        public_url="http://staging.test",
        downstream_col_iri="http://lom.test/api/sword/2.0/col-iri/1",
        downstream_on_behalf_of="PLN-1",
        max_workers=2,
    )


@pytest.fixture
def files(tmp_path):
    """File layout under a temporary data directory."""
    return FilePaths(tmp_path / "files")


@pytest.fixture
def make_deposit():
    """Factory for deposits whose checksum matches ``content``."""

    def factory(
        uuid: str = DEPOSIT_UUID,
        provider_uuid: str = PROVIDER_UUID,
        content: bytes = b"deposit payload",
        state: DepositState = DepositState.SUBMITTED,
        **kwargs,
    ) -> Deposit:
        fields = {
            "url": f"http://provider.test/content/{uuid}.zip",
            "size": len(content),
            "checksum_type": "SHA-1",
            "checksum_value": hashlib.sha1(content).hexdigest().upper(),
            "received": FIXED_NOW,
        }
        fields.update(kwargs)
        return Deposit(uuid=uuid, provider_uuid=provider_uuid, state=state, **fields)

    return factory


@pytest.fixture
def provider():
    """A known, healthy provider."""
    return Provider(
        uuid=PROVIDER_UUID,
        name="Journal of Tests",
        url="http://provider.test",
        contacted=FIXED_NOW,
    )
