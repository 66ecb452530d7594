"""Tests for provider health monitoring."""

from datetime import timedelta

import pytest

from conftest import FIXED_NOW
from plnstage.domain.models import (
    AccessListEntry,
    AccessListKind,
    PingResult,
    Provider,
    ProviderStatus,
)
from plnstage.orchestrators.health import HealthMonitor


class FakePinger:
    """Pinger answering from a table keyed by provider uuid."""

    def __init__(self, results):
        self.results = results
        self.pinged = []

    def ping(self, provider):
        self.pinged.append(provider.uuid)
        return self.results.get(provider.uuid, PingResult(error="unreachable"))


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send(self, recipients, message):
        self.sent.append((recipients, message))


def _ok(version="3.3.0.0", terms="yes", title="Journal"):
    return PingResult(
        http_status=200, parsed=True, software_version=version, terms_accepted=terms, title=title
    )


def _providers(state, *providers):
    with state as s:
        for provider in providers:
            s.persist_provider(provider)


def _provider(state, uuid):
    with state as s:
        return s.find_provider(uuid)


@pytest.fixture
def silent(state):
    old = FIXED_NOW - timedelta(days=120)
    _providers(
        state,
        Provider(uuid="UP", url="http://up.test", contacted=old),
        Provider(uuid="DOWN", url="http://down.test", contacted=old),
        Provider(uuid="FRESH", url="http://fresh.test", contacted=FIXED_NOW),
    )


class TestCheckSilent:
    """Test silent provider detection."""

    def test_notifies_and_updates_status(self, state, silent, clock):
        notifier = RecordingNotifier()
        pinger = FakePinger({"UP": _ok()})
        monitor = HealthMonitor(state, pinger, notifier, recipients=["ops@pln.test"], clock=clock)

        results = monitor.check_silent()

        assert results == {"UP": ProviderStatus.HEALTHY, "DOWN": ProviderStatus.UNHEALTHY}
        assert sorted(pinger.pinged) == ["DOWN", "UP"]
        [(recipients, message)] = notifier.sent
        assert recipients == ["ops@pln.test"]
        assert "UP" in message and "DOWN" in message and "FRESH" not in message
        assert _provider(state, "UP").contacted == FIXED_NOW
        down = _provider(state, "DOWN")
        assert down.status == ProviderStatus.UNHEALTHY
        assert down.notified == FIXED_NOW

    def test_without_recipients_still_pings(self, state, silent, clock, caplog):
        notifier = RecordingNotifier()
        pinger = FakePinger({})

        HealthMonitor(state, pinger, notifier, clock=clock).check_silent()

        assert notifier.sent == []
        assert "No users to notify." in caplog.text
        assert len(pinger.pinged) == 2

    def test_dry_run_saves_nothing(self, state, silent, clock):
        monitor = HealthMonitor(state, FakePinger({}), RecordingNotifier(), clock=clock)

        monitor.check_silent(dry_run=True)

        assert _provider(state, "DOWN").status == ProviderStatus.NEW

    def test_nothing_silent(self, state, clock):
        notifier = RecordingNotifier()

        assert HealthMonitor(state, FakePinger({}), notifier, clock=clock).check_silent() == {}
        assert notifier.sent == []


class TestPingWhitelist:
    """Test the allow-list sweep."""

    @pytest.fixture
    def monitor(self, state, clock):
        def factory(results):
            return HealthMonitor(
                state, FakePinger(results), RecordingNotifier(), min_version="3.1.0.0", clock=clock
            )

        return factory

    def test_recent_versions_are_allow_listed(self, state, monitor):
        _providers(
            state,
            Provider(uuid="NEW", url="http://new.test"),
            Provider(uuid="OLD", url="http://old.test"),
            Provider(uuid="GONE", url="http://gone.test"),
        )

        sweep = monitor({"NEW": _ok("3.2.1.0", title="Fresh Journal"), "OLD": _ok("3.0.0.0")})

        results = sweep.ping_whitelist()

        assert results == {"NEW": "allowed", "OLD": "too-old", "GONE": "ping-error"}
        with state as s:
            entry = s.find_access_entry(AccessListKind.ALLOW, "NEW")
            assert s.find_access_entry(AccessListKind.ALLOW, "OLD") is None
        assert entry.comment == "http://new.test added automatically by ping-whitelist command."
        fresh = _provider(state, "NEW")
        assert fresh.software_version == "3.2.1.0"
        assert fresh.terms_accepted
        assert fresh.name == "Fresh Journal"
        assert _provider(state, "GONE").status == ProviderStatus.PING_ERROR

    def test_listed_and_ping_error_providers_are_skipped(self, state, monitor):
        _providers(
            state,
            Provider(uuid="LISTED", url="http://listed.test"),
            Provider(uuid="BROKEN", url="http://broken.test", status=ProviderStatus.PING_ERROR),
        )
        with state as s:
            s.add_access_entry(AccessListEntry(uuid="LISTED", kind=AccessListKind.DENY))

        sweep = monitor({"LISTED": _ok(), "BROKEN": _ok()})

        assert sweep.ping_whitelist() == {"BROKEN": "skipped"}
        assert sweep.ping_whitelist(include_all=True) == {"LISTED": "listed", "BROKEN": "allowed"}

    def test_dry_run_changes_nothing(self, state, monitor):
        _providers(state, Provider(uuid="NEW", url="http://new.test"))

        results = monitor({"NEW": _ok()}).ping_whitelist(dry_run=True)

        assert results == {"NEW": "would-allow"}
        with state as s:
            assert s.access_entries(AccessListKind.ALLOW) == []
        assert _provider(state, "NEW").software_version is None

    def test_min_version_override(self, state, monitor):
        _providers(state, Provider(uuid="NEW", url="http://new.test"))

        results = monitor({"NEW": _ok("3.2.0.0")}).ping_whitelist(min_version="3.3.0.0")

        assert results == {"NEW": "too-old"}
