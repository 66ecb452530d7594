"""Unit tests for table rendering utilities."""

from conftest import FIXED_NOW
from plnstage.domain.models import AccessListEntry, AccessListKind, DepositState
from plnstage.ui.tables import (
    create_access_table,
    create_deposit_list_table,
    create_statistics_table,
    format_state_summary,
)


class TestDepositListTable:
    """Test deposit list table creation."""

    def test_creates_table_with_correct_columns(self, make_deposit):
        """Table should have all required columns."""
        table = create_deposit_list_table([make_deposit()])

        column_headers = [col.header for col in table.columns]
        assert column_headers == [
            "Deposit",
            "Provider",
            "State",
            "Attempts",
            "AU",
            "Received",
            "Size",
        ]

    def test_table_title_includes_count(self, make_deposit):
        """Table title should include deposit count."""
        table = create_deposit_list_table([make_deposit(uuid="A"), make_deposit(uuid="B")])

        assert "2 total" in table.title
        assert table.row_count == 2

    def test_handles_empty_list(self):
        table = create_deposit_list_table([])

        assert "0 total" in table.title
        assert table.row_count == 0


class TestStatisticsTable:
    """Test statistics table creation."""

    def test_only_states_in_use_become_columns(self):
        stats = {"P1": {"submitted": 2, "harvest-error": 1, "total": 3}}

        table = create_statistics_table(stats)

        column_headers = [col.header for col in table.columns]
        assert column_headers == ["Provider", "Total", "submitted", "harvest-error"]
        assert table.row_count == 1

    def test_totals_row_for_multiple_providers(self):
        stats = {
            "P1": {"submitted": 2, "total": 2},
            "P2": {"deposited": 1, "total": 1},
        }

        table = create_statistics_table(stats)

        assert table.row_count == 3


def test_access_table():
    entries = [
        AccessListEntry(uuid="P1", kind=AccessListKind.ALLOW, comment="trusted", created=FIXED_NOW),
        AccessListEntry(uuid="P2", kind=AccessListKind.ALLOW),
    ]

    table = create_access_table("Allow list", entries)

    assert table.title == "Allow list (2 entries)"
    assert table.row_count == 2


def test_format_state_summary(make_deposit):
    deposits = [
        make_deposit(uuid="A"),
        make_deposit(uuid="B"),
        make_deposit(uuid="C", state=DepositState.HARVESTED),
    ]

    assert format_state_summary(deposits) == "1 harvested, 2 submitted"
    assert format_state_summary([]) == ""
