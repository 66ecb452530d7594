"""Tests for pipeline state management."""

import threading
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

import orjson
import pytest

from conftest import FIXED_NOW
from plnstage.domain.models import (
    AccessListEntry,
    AccessListKind,
    DepositState,
    Provider,
)
from plnstage.state.manager import StateManager


def _write_state(file_path: Path, payload) -> None:
    file_path.write_bytes(orjson.dumps(payload))


def test_persisted_deposit_survives_reload(tmp_state_file, make_deposit):
    with StateManager(tmp_state_file) as state:
        state.persist_deposit(make_deposit(uuid="A"))

    with StateManager(tmp_state_file) as state:
        deposit = state.find_deposit("A")

    assert deposit is not None
    assert deposit.state == DepositState.SUBMITTED
    assert deposit.revision == 1


def test_exception_discards_changes(tmp_state_file, make_deposit):
    with StateManager(tmp_state_file) as state:
        state.persist_deposit(make_deposit(uuid="A"))

    with pytest.raises(RuntimeError):
        with StateManager(tmp_state_file) as state:
            state.persist_deposit(make_deposit(uuid="B"))
            raise RuntimeError("boom")

    with StateManager(tmp_state_file) as state:
        assert state.find_deposit("A") is not None
        assert state.find_deposit("B") is None


def test_read_only_transaction_does_not_rewrite_file(tmp_state_file, make_deposit):
    manager = StateManager(tmp_state_file)
    with manager as state:
        state.persist_deposit(make_deposit(uuid="A"))
    before = tmp_state_file.read_bytes()

    with patch.object(manager, "flush", wraps=manager.flush) as flush:
        with manager as state:
            state.find_deposit("A")
            state.find_access_entry(AccessListKind.ALLOW, "A")
            state.remove_access_entry(AccessListKind.DENY, "A")
        flush.assert_not_called()

        with manager as state:
            state.add_access_entry(AccessListEntry(uuid="A", kind=AccessListKind.ALLOW))
        flush.assert_called_once()

    assert tmp_state_file.read_bytes() != before


def test_nested_transactions_save_once(tmp_state_file, make_deposit):
    manager = StateManager(tmp_state_file)

    with manager:
        with manager as inner:
            inner.persist_deposit(make_deposit(uuid="A"))
        assert not tmp_state_file.exists()

    assert tmp_state_file.exists()


def test_lookups_return_copies(state, make_deposit):
    with state as s:
        s.persist_deposit(make_deposit(uuid="A"))

    with state as s:
        deposit = s.find_deposit("A")
        deposit.state = DepositState.HARVESTED

    with state as s:
        assert s.find_deposit("A").state == DepositState.SUBMITTED


def test_state_order_follows_entry_into_state(state, make_deposit):
    with state as s:
        for uuid in ("A", "B", "C"):
            s.persist_deposit(make_deposit(uuid=uuid))
        # A leaves and re-enters submitted, so it now sorts last
        a = s.find_deposit("A")
        a.state = DepositState.HARVEST_ERROR
        s.persist_deposit(a)
        a.state = DepositState.SUBMITTED
        s.persist_deposit(a)

    with state as s:
        ordered = [d.uuid for d in s.find_deposits_by_state(DepositState.SUBMITTED)]
        limited = [d.uuid for d in s.find_deposits_by_state(DepositState.SUBMITTED, limit=2)]

    assert ordered == ["B", "C", "A"]
    assert limited == ["B", "C"]


def test_revision_bumps_on_every_store(state, make_deposit):
    with state as s:
        deposit = make_deposit(uuid="A")
        s.persist_deposit(deposit)
        sequence = s.find_deposit("A").sequence
        deposit.add_error_log("note")
        s.persist_deposit(deposit)
        stored = s.find_deposit("A")

    assert stored.revision == 2
    assert stored.sequence == sequence


def test_invalid_payload_is_sanitized(tmp_state_file, make_deposit):
    _write_state(tmp_state_file, {"deposits": ["not-a-dict"], "sequence": "x"})

    with StateManager(tmp_state_file) as state:
        assert state.all_deposits() == []
        state.persist_deposit(make_deposit(uuid="A"))

    persisted = orjson.loads(tmp_state_file.read_bytes())
    assert "A" in persisted["deposits"]
    assert persisted["sequence"] == 1


def test_containers(state):
    with state as s:
        first = s.create_container(created=FIXED_NOW)
        first.close()
        s.persist_container(first)
        second = s.create_container()

        assert (first.id, second.id) == (1, 2)
        assert s.find_open_container().id == 2

        first.open = True
        with pytest.raises(ValueError):
            s.persist_container(first)


def test_access_entries(state):
    entry = AccessListEntry(uuid="P1", kind=AccessListKind.DENY, comment="spam", created=FIXED_NOW)
    with state as s:
        assert s.add_access_entry(entry)
        assert not s.add_access_entry(entry)
        assert s.find_access_entry(AccessListKind.DENY, "P1").comment == "spam"
        assert s.find_access_entry(AccessListKind.ALLOW, "P1") is None
        assert [e.uuid for e in s.access_entries(AccessListKind.DENY)] == ["P1"]
        assert s.remove_access_entry(AccessListKind.DENY, "P1")
        assert not s.remove_access_entry(AccessListKind.DENY, "P1")


def test_find_silent_providers(state):
    with state as s:
        s.persist_provider(Provider(uuid="OLD", contacted=FIXED_NOW - timedelta(days=100)))
        s.persist_provider(Provider(uuid="RECENT", contacted=FIXED_NOW - timedelta(days=5)))
        s.persist_provider(Provider(uuid="NEVER"))

        silent = s.find_silent_providers(90, FIXED_NOW)

    assert [p.uuid for p in silent] == ["OLD"]


def test_concurrent_transactions_lose_nothing(tmp_state_file, make_deposit):
    manager = StateManager(tmp_state_file)

    def worker(index: int) -> None:
        with manager as s:
            s.persist_deposit(make_deposit(uuid=f"D{index}"))

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    with StateManager(tmp_state_file) as state:
        assert len(state.all_deposits()) == 8


def test_separate_managers_share_the_file(tmp_state_file, make_deposit):
    with StateManager(tmp_state_file) as one:
        one.persist_deposit(make_deposit(uuid="A"))
    with StateManager(tmp_state_file) as two:
        two.persist_deposit(make_deposit(uuid="B"))
    with StateManager(tmp_state_file) as three:
        assert {d.uuid for d in three.all_deposits()} == {"A", "B"}
