"""Typer-based CLI for the PLN staging server."""

import logging
import signal
from contextlib import contextmanager

import typer
import uvicorn

from plnstage.config import Settings
from plnstage.domain.errors import DiskBudgetExceeded, StageConfigurationError
from plnstage.domain.models import AccessListEntry, AccessListKind, DepositState
from plnstage.domain.services import (
    DepositManagementService,
    DepositQueryService,
    normalize_token,
    utcnow,
)
from plnstage.operations.notify import LoggingNotifier
from plnstage.operations.paths import FilePaths
from plnstage.operations.ping import Pinger
from plnstage.orchestrators import HealthMonitor, Pipeline
from plnstage.state.manager import StateManager
from plnstage.ui import Reporter, configure_logging
from plnstage.ui.tables import (
    create_access_table,
    create_deposit_list_table,
    create_statistics_table,
    format_state_summary,
)

logger = logging.getLogger(__name__)

app = typer.Typer(help="PLN staging server")
deposits_app = typer.Typer(help="Query deposits in state")
access_app = typer.Typer(help="Manage the provider allow- and deny-lists")
app.add_typer(deposits_app, name="deposits")
app.add_typer(access_app, name="access")

DRY_RUN = typer.Option(False, "--dry-run", help="Process deposits but save nothing")
FORCE = typer.Option(False, "--force", help="Override skip rules such as the harvest attempt limit")
LIMIT = typer.Option(None, "--limit", "-n", help="Process at most this many deposits")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    log_level: str = typer.Option(None, "--log-level", help="Override PLN_LOG_LEVEL"),
) -> None:
    """Show help when no subcommand is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()
    configure_logging(log_level or Settings().log_level)


@contextmanager
def _stop_on_signal(pipeline: Pipeline):
    """Let SIGINT/SIGTERM finish in-flight deposits instead of killing them."""

    def handler(signum, _frame):
        logger.warning(f"Received signal {signum}, stopping after in-flight deposits")
        pipeline.stop()

    previous = {sig: signal.signal(sig, handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, old in previous.items():
            signal.signal(sig, old)


def _run_stage(name: str, force: bool, dry_run: bool, limit: int | None) -> None:
    config = Settings()
    reporter = Reporter()
    try:
        with Pipeline.build(config) as pipeline, _stop_on_signal(pipeline):
            with reporter.stage_context(name):
                report = pipeline.run_stage(
                    name,
                    force=force,
                    dry_run=dry_run,
                    limit=limit,
                    progress_hook=reporter.create_stage_progress_hook(),
                )
    except (DiskBudgetExceeded, StageConfigurationError) as e:
        reporter.report_error(str(e))
        raise typer.Exit(1)
    reporter.report_stage(report)


@app.command()
def harvest(force: bool = FORCE, dry_run: bool = DRY_RUN, limit: int = LIMIT):
    """Download submitted deposits from their providers."""
    _run_stage("harvest", force, dry_run, limit)


@app.command("validate-checksums")
def validate_checksums(force: bool = FORCE, dry_run: bool = DRY_RUN, limit: int = LIMIT):
    """Check harvested files against their declared checksums."""
    _run_stage("validate-checksums", force, dry_run, limit)


@app.command("scan-viruses")
def scan_viruses(force: bool = FORCE, dry_run: bool = DRY_RUN, limit: int = LIMIT):
    """Scan validated files for viruses."""
    _run_stage("scan-viruses", force, dry_run, limit)


@app.command()
def organize(force: bool = FORCE, dry_run: bool = DRY_RUN, limit: int = LIMIT):
    """Place clean deposits into archival units."""
    _run_stage("organize", force, dry_run, limit)


@app.command()
def deposit(force: bool = FORCE, dry_run: bool = DRY_RUN, limit: int = LIMIT):
    """Send organized deposits to the preservation network."""
    _run_stage("deposit", force, dry_run, limit)


@app.command()
def status(force: bool = FORCE, dry_run: bool = DRY_RUN, limit: int = LIMIT):
    """Mark deposits acknowledged once the network holds agreeing copies."""
    _run_stage("status", force, dry_run, limit)


@app.command("run-all")
def run_all(force: bool = FORCE, dry_run: bool = DRY_RUN, limit: int = LIMIT):
    """Run harvest, validation, scanning, organization and deposit in order."""
    config = Settings()
    reporter = Reporter()
    try:
        with Pipeline.build(config) as pipeline, _stop_on_signal(pipeline):
            with reporter.stage_context("run-all"):
                reports = pipeline.run_all(
                    force=force,
                    dry_run=dry_run,
                    limit=limit,
                    progress_hook=reporter.create_stage_progress_hook(),
                )
    except (DiskBudgetExceeded, StageConfigurationError) as e:
        reporter.report_error(str(e))
        raise typer.Exit(1)

    for report in reports:
        reporter.report_stage(report)


@app.command()
def clean(
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Show what would be deleted without deleting"
    ),
):
    """Delete harvested files of deposits the network has acknowledged."""
    config = Settings()
    reporter = Reporter()

    with StateManager(config.state_file) as state:
        result = DepositManagementService.clean_acknowledged(
            state, FilePaths(config.data_dir), dry_run=dry_run
        )

    cleaned = result["deposits"]
    if not cleaned:
        reporter.console.print("[dim]No acknowledged deposits with files to clean[/dim]")
        return

    for uuid in cleaned:
        reporter.console.print(f"{'[DRY RUN] Would clean' if dry_run else 'Cleaned'} {uuid}")
    if dry_run:
        reporter.console.print("\n[yellow]Run without --dry-run to actually delete[/yellow]")
    else:
        reporter.console.print(f"\n[bold]Deleted {result['deleted']} files[/bold]")


@app.command()
def reset(deposit_uuid: str = typer.Argument(..., help="Deposit to reset")):
    """Move a deposit out of its error state so the failed stage retries it."""
    config = Settings()
    reporter = Reporter()

    try:
        with StateManager(config.state_file) as state:
            deposit = DepositManagementService.reset_deposit(state, deposit_uuid)
    except KeyError:
        reporter.report_error(f"Unknown deposit {deposit_uuid}")
        raise typer.Exit(1)
    except ValueError as e:
        reporter.report_error(str(e))
        raise typer.Exit(1)

    reporter.console.print(f"Reset {deposit.uuid} to [bold]{deposit.state.value}[/bold]")


def _health_monitor(config: Settings) -> HealthMonitor:
    return HealthMonitor(
        StateManager(config.state_file),
        Pinger(config.http_timeout, config.user_agent),
        LoggingNotifier(),
        recipients=config.notify_emails,
        days_silent=config.days_silent,
        min_version=config.min_software_version,
    )


@app.command("health-check")
def health_check(
    dry_run: bool = typer.Option(False, "--dry-run", help="Ping but do not save status changes"),
):
    """Find silent providers, notify operators and ping them."""
    config = Settings()
    reporter = Reporter()
    results = _health_monitor(config).check_silent(dry_run=dry_run)
    reporter.report_results(
        "Silent providers", {uuid: status.value for uuid, status in results.items()}
    )


@app.command("ping-whitelist")
def ping_whitelist(
    min_version: str = typer.Option(None, "--min-version", help="Override minimum version"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Ping but change nothing"),
    include_all: bool = typer.Option(
        False, "--all", help="Also ping listed providers and providers in ping-error"
    ),
):
    """Allow-list providers running recent enough software."""
    config = Settings()
    reporter = Reporter()
    results = _health_monitor(config).ping_whitelist(
        min_version=min_version, dry_run=dry_run, include_all=include_all
    )
    reporter.report_results("Ping whitelist", results)


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Override PLN_HOST"),
    port: int = typer.Option(None, "--port", help="Override PLN_PORT"),
):
    """Run the deposit protocol server."""
    from plnstage.api import create_app

    config = Settings()
    uvicorn.run(create_app(config), host=host or config.host, port=port or config.port)


# Deposits subcommands
@deposits_app.command("list")
def deposits_list(
    state_filter: str = typer.Option(
        None,
        "--state",
        "-s",
        help="Filter by state, or 'error' for any error state",
    ),
    provider: str = typer.Option(None, "--provider", "-p", help="Filter by provider uuid"),
    limit: int = typer.Option(None, "--limit", "-n", help="Limit number of results"),
):
    """List deposits with optional filtering."""
    config = Settings()
    reporter = Reporter()

    valid_states = {s.value for s in DepositState} | {"error"}
    if state_filter and state_filter not in valid_states:
        reporter.console.print(
            f"[red]Invalid state: {state_filter}[/red]\n"
            f"Valid options: {', '.join(sorted(valid_states))}"
        )
        raise typer.Exit(1)

    with StateManager(config.state_file) as state:
        results = DepositQueryService.get_deposits_by_filter(
            state=state.data, deposit_state=state_filter, provider=provider, limit=limit
        )

    if not results:
        reporter.console.print("[dim]No matching deposits found[/dim]")
        return

    reporter.console.print(create_deposit_list_table(results))
    reporter.console.print(f"\n[bold]Summary:[/bold] {format_state_summary(results)}")


@deposits_app.command("stats")
def deposits_stats():
    """Show deposit counts per state for each provider."""
    config = Settings()
    reporter = Reporter()

    with StateManager(config.state_file) as state:
        stats = DepositQueryService.get_state_statistics(state.data)

    if not stats:
        reporter.console.print("[dim]No deposits found[/dim]")
        return
    reporter.console.print(create_statistics_table(stats))


# Access list subcommands
def _kind(deny: bool) -> AccessListKind:
    return AccessListKind.DENY if deny else AccessListKind.ALLOW


@access_app.command("list")
def access_list():
    """Show both access lists."""
    config = Settings()
    reporter = Reporter()
    with StateManager(config.state_file) as state:
        allowed = state.access_entries(AccessListKind.ALLOW)
        denied = state.access_entries(AccessListKind.DENY)
    reporter.console.print(create_access_table("Allow-list", allowed))
    reporter.console.print(create_access_table("Deny-list", denied))


@access_app.command("add")
def access_add(
    provider_uuid: str = typer.Argument(..., help="Provider token"),
    deny: bool = typer.Option(False, "--deny", help="Add to the deny-list instead"),
    comment: str = typer.Option("", "--comment", "-c", help="Why the provider is listed"),
):
    """Add a provider to the allow- or deny-list."""
    config = Settings()
    reporter = Reporter()
    entry = AccessListEntry(
        uuid=normalize_token(provider_uuid), kind=_kind(deny), comment=comment, created=utcnow()
    )
    with StateManager(config.state_file) as state:
        added = state.add_access_entry(entry)

    if not added:
        reporter.report_warning(f"{entry.uuid} is already on the {entry.kind.value}-list")
        return
    reporter.console.print(f"Added {entry.uuid} to the {entry.kind.value}-list")


@access_app.command("remove")
def access_remove(
    provider_uuid: str = typer.Argument(..., help="Provider token"),
    deny: bool = typer.Option(False, "--deny", help="Remove from the deny-list instead"),
):
    """Remove a provider from the allow- or deny-list."""
    config = Settings()
    reporter = Reporter()
    uuid = normalize_token(provider_uuid)
    with StateManager(config.state_file) as state:
        removed = state.remove_access_entry(_kind(deny), uuid)

    if not removed:
        reporter.report_error(f"{uuid} is not on the {_kind(deny).value}-list")
        raise typer.Exit(1)
    reporter.console.print(f"Removed {uuid} from the {_kind(deny).value}-list")


if __name__ == "__main__":
    app()
