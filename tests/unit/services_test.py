"""Unit tests for business logic services."""

import pytest

from plnstage.domain.models import DepositState, PipelineState
from plnstage.domain.services import (
    DepositManagementService,
    DepositQueryService,
    compare_versions,
    normalize_token,
)


class TestHelpers:
    """Test token and version helpers."""

    def test_normalize_token(self):
        assert normalize_token("  abc-def ") == "ABC-DEF"
        assert normalize_token(None) == ""

    @pytest.mark.parametrize(
        ("left", "right", "expected"),
        [
            ("3.1.0.0", "3.1.0.0", 0),
            ("3.1", "3.1.0.0", 0),
            ("3.0.9.9", "3.1.0.0", -1),
            ("3.10.0.0", "3.9.0.0", 1),
            ("3.1.0-beta", "3.1.0.1", -1),
        ],
    )
    def test_compare_versions(self, left, right, expected):
        assert compare_versions(left, right) == expected


def _state_with(*deposits) -> PipelineState:
    state = PipelineState()
    for index, deposit in enumerate(deposits, start=1):
        deposit.sequence = index
        state.deposits[deposit.uuid] = deposit
    return state


class TestDepositQueryService:
    """Test deposit filtering and statistics."""

    def test_filters_by_state(self, make_deposit):
        state = _state_with(
            make_deposit(uuid="A"),
            make_deposit(uuid="B", state=DepositState.HARVESTED),
            make_deposit(uuid="C", state=DepositState.HARVEST_ERROR),
        )

        harvested = DepositQueryService.get_deposits_by_filter(state, deposit_state="harvested")
        errors = DepositQueryService.get_deposits_by_filter(state, deposit_state="error")

        assert [d.uuid for d in harvested] == ["B"]
        assert [d.uuid for d in errors] == ["C"]

    def test_filters_by_provider_prefix(self, make_deposit):
        state = _state_with(
            make_deposit(uuid="A", provider_uuid="AAAA-1"),
            make_deposit(uuid="B", provider_uuid="BBBB-1"),
        )

        result = DepositQueryService.get_deposits_by_filter(state, provider="aaaa")

        assert [d.uuid for d in result] == ["A"]

    def test_limit(self, make_deposit):
        state = _state_with(*(make_deposit(uuid=str(i)) for i in range(5)))

        result = DepositQueryService.get_deposits_by_filter(state, limit=2)

        assert [d.uuid for d in result] == ["0", "1"]

    def test_statistics(self, make_deposit):
        state = _state_with(
            make_deposit(uuid="A", provider_uuid="P1"),
            make_deposit(uuid="B", provider_uuid="P1", state=DepositState.DEPOSITED),
            make_deposit(uuid="C", provider_uuid="P2"),
        )

        stats = DepositQueryService.get_state_statistics(state)

        assert stats["P1"] == {"submitted": 1, "deposited": 1, "total": 2}
        assert stats["P2"] == {"submitted": 1, "total": 1}


class TestDepositManagementService:
    """Test operator interventions."""

    def test_reset_moves_back_to_source_state(self, state, make_deposit):
        with state as s:
            s.persist_deposit(make_deposit(uuid="A", state=DepositState.VIRUS_ERROR))

        with state as s:
            deposit = DepositManagementService.reset_deposit(s, "a")

        assert deposit.state == DepositState.PAYLOAD_VALIDATED
        assert deposit.error_log[-1] == "Reset by operator from virus-error to payload-validated."
        with state as s:
            assert s.find_deposit("A").state == DepositState.PAYLOAD_VALIDATED

    def test_reset_unknown_deposit(self, state):
        with state as s:
            with pytest.raises(KeyError):
                DepositManagementService.reset_deposit(s, "missing")

    def test_reset_requires_error_state(self, state, make_deposit):
        with state as s:
            s.persist_deposit(make_deposit(uuid="A", state=DepositState.HARVESTED))
            with pytest.raises(ValueError, match="not in an error state"):
                DepositManagementService.reset_deposit(s, "A")

    def test_clean_acknowledged(self, state, files, make_deposit):
        done = make_deposit(uuid="DONE", state=DepositState.ACKNOWLEDGED)
        pending = make_deposit(uuid="PENDING", state=DepositState.DEPOSITED)
        for deposit in (done, pending):
            files.harvest_file(deposit).write_bytes(b"payload")
        with state as s:
            s.persist_deposit(done)
            s.persist_deposit(pending)

        with state as s:
            preview = DepositManagementService.clean_acknowledged(s, files, dry_run=True)
        assert preview == {"deposits": ["DONE"], "deleted": 0}
        assert files.harvest_file(done).exists()

        with state as s:
            result = DepositManagementService.clean_acknowledged(s, files)

        assert result == {"deposits": ["DONE"], "deleted": 1}
        assert not files.harvest_file(done).exists()
        assert files.harvest_file(pending).exists()
