"""Reporter for pipeline output and progress tracking."""

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TextColumn,
    TimeElapsedColumn,
)

from plnstage.domain.models import StageReport
from plnstage.domain.types import StageProgressHook


class Reporter:
    """Pipeline reporter with rich progress bars and formatted output."""

    PREVIEW_LIMIT = 10

    def __init__(self, silent: bool = False) -> None:
        """Initialize reporter.

        Args:
            silent: If True, suppress all output (for testing/automation).
        """
        self.silent = silent
        self.console = Console(quiet=silent)
        self._progress: Progress | None = None
        self._task_id: int | None = None

    def stage_context(self, stage_name: str):
        """Context manager for a stage's progress display."""
        if self.silent:

            class NoOpContext:
                def __enter__(self):
                    return self

                def __exit__(self, *args):
                    pass

            return NoOpContext()

        class StageContext:
            def __init__(ctx_self, reporter):
                ctx_self.reporter = reporter

            def __enter__(ctx_self):
                progress = Progress(
                    TextColumn("[bold blue]{task.description}"),
                    BarColumn(),
                    MofNCompleteColumn(),
                    TimeElapsedColumn(),
                    console=ctx_self.reporter.console,
                    transient=True,
                )
                progress.__enter__()
                ctx_self.reporter._progress = progress
                ctx_self.reporter._task_id = progress.add_task(stage_name, total=None)
                return progress

            def __exit__(ctx_self, *args):
                if ctx_self.reporter._progress:
                    ctx_self.reporter._progress.__exit__(*args)
                    ctx_self.reporter._progress = None
                    ctx_self.reporter._task_id = None

        return StageContext(self)

    def create_stage_progress_hook(self) -> StageProgressHook:
        """Create a progress hook that advances the current stage bar."""
        if self.silent:

            def hook(deposit_uuid: str, outcome: str) -> None:
                pass

            return hook

        if self._progress is None:
            raise RuntimeError("Must be called within stage_context")

        def hook(deposit_uuid: str, outcome: str) -> None:
            if self._progress is None or self._task_id is None:
                return
            self._progress.advance(self._task_id)

        return hook

    def report_stage(self, report: StageReport) -> None:
        """Report the outcome of one stage run."""
        if self.silent:
            return

        prefix = "[yellow][DRY RUN][/yellow] " if report.dry_run else ""
        if report.total == 0:
            self.console.print(f"{prefix}[bold]{report.stage}[/bold] - nothing to do")
            return

        self.console.print(f"\n{prefix}[bold]{report.stage}[/bold] - {report.total} deposits")
        self._render_list("Succeeded", report.succeeded, "green", "✓")
        self._render_list("Failed", report.failed, "red", "✗")
        self._render_list("Faulted", report.faulted, "red", "!")
        self._render_list("Skipped", report.skipped, "dim", "-")
        self._render_list("Cancelled", report.cancelled, "yellow", "…")

    def report_results(self, title: str, results: dict[str, str]) -> None:
        """Report per-provider results of a health run."""
        if self.silent:
            return

        if not results:
            self.console.print(f"[dim]{title}: no providers[/dim]")
            return
        self.console.print(f"\n[bold]{title}[/bold]")
        for uuid, outcome in results.items():
            self.console.print(f"  {uuid}  {outcome}")

    def report_info(self, message: str) -> None:
        """Report an informational message."""
        if not self.silent:
            self.console.print(message)

    def report_warning(self, message: str) -> None:
        """Report a warning message."""
        if not self.silent:
            self.console.print(f"\n[yellow]Warning:[/yellow] {message}")

    def report_error(self, message: str) -> None:
        """Report an error message."""
        if not self.silent:
            self.console.print(f"\n[red]Error:[/red] {message}")

    def _render_list(self, label: str, uuids: list[str], color: str, glyph: str) -> None:
        """Pretty-print a short list of deposits for one outcome bucket."""
        if not uuids:
            return

        count = len(uuids)
        preview = uuids[: self.PREVIEW_LIMIT]
        self.console.print(f"  [{color}]{glyph} {label}: {count}[/{color}]")
        for uuid in preview:
            self.console.print(f"      {uuid}")

        remaining = count - len(preview)
        if remaining > 0:
            self.console.print(f"      ... (+{remaining} more)")
