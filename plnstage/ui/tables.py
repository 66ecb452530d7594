"""Table rendering utilities for CLI output."""

from collections import Counter

from rich.table import Table

from plnstage.domain.models import AccessListEntry, Deposit, DepositState

STATE_COLORS = {
    DepositState.SUBMITTED: "white",
    DepositState.ACKNOWLEDGED: "green",
    DepositState.DEPOSITED: "cyan",
}


def _state_cell(state: DepositState) -> str:
    color = "red" if state.is_error else STATE_COLORS.get(state, "yellow")
    return f"[{color}]{state.value}[/{color}]"


def create_deposit_list_table(deposits: list[Deposit]) -> Table:
    """Create a table for displaying deposits.

    Args:
        deposits: Deposits to show

    Returns:
        Rich Table object ready for display
    """
    table = Table(title=f"Deposits ({len(deposits)} total)")
    table.add_column("Deposit", style="cyan")
    table.add_column("Provider", style="white")
    table.add_column("State")
    table.add_column("Attempts", justify="right", style="dim")
    table.add_column("AU", justify="right", style="dim")
    table.add_column("Received", style="dim")
    table.add_column("Size", justify="right", style="dim")

    for deposit in deposits:
        table.add_row(
            deposit.uuid,
            deposit.provider_uuid,
            _state_cell(deposit.state),
            str(deposit.harvest_attempts),
            str(deposit.au_container_id) if deposit.au_container_id is not None else "-",
            deposit.received.strftime("%Y-%m-%d %H:%M") if deposit.received else "-",
            f"{deposit.size:,} B",
        )

    return table


def create_statistics_table(stats: dict[str, dict[str, int]]) -> Table:
    """Create a table of deposit counts per state for each provider.

    Args:
        stats: Provider uuid -> state value -> count, with a "total" key

    Returns:
        Rich Table object ready for display
    """
    states = [s for s in DepositState if any(s.value in counts for counts in stats.values())]

    table = Table(title="Deposit Statistics")
    table.add_column("Provider", style="cyan")
    table.add_column("Total", justify="right")
    for state in states:
        table.add_column(state.value, justify="right", style="red" if state.is_error else None)

    totals: Counter = Counter()
    for provider_uuid, counts in sorted(stats.items()):
        table.add_row(
            provider_uuid,
            str(counts.get("total", 0)),
            *(str(counts[s.value]) if counts.get(s.value) else "-" for s in states),
        )
        totals.update(counts)

    # Add totals row if multiple providers
    if len(stats) > 1:
        table.add_section()
        table.add_row(
            "[bold]TOTAL[/bold]",
            f"[bold]{totals['total']}[/bold]",
            *(f"[bold]{totals[s.value]}[/bold]" if totals[s.value] else "-" for s in states),
        )

    return table


def create_access_table(title: str, entries: list[AccessListEntry]) -> Table:
    """Create a table for one access list."""
    table = Table(title=f"{title} ({len(entries)} entries)")
    table.add_column("Provider", style="cyan")
    table.add_column("Comment", style="white")
    table.add_column("Created", style="dim")
    for entry in entries:
        table.add_row(
            entry.uuid,
            entry.comment or "-",
            entry.created.strftime("%Y-%m-%d %H:%M") if entry.created else "-",
        )
    return table


def format_state_summary(deposits: list[Deposit]) -> str:
    """Create a summary string of deposit counts by state.

    Returns:
        Formatted summary string like "2 harvested, 3 submitted"
    """
    counts = Counter(d.state.value for d in deposits)
    return ", ".join(f"{count} {state}" for state, count in sorted(counts.items()))
