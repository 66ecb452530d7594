"""Tests for the rich reporter."""

import pytest
from rich.console import Console

from plnstage.domain.models import StageReport
from plnstage.ui.reporter import Reporter


@pytest.fixture
def reporter():
    """Reporter printing into a buffer."""
    reporter = Reporter()
    reporter.console = Console(record=True, width=120, force_terminal=False)
    return reporter


def _text(reporter):
    return reporter.console.export_text()


def test_report_stage_lists_each_bucket(reporter):
    report = StageReport(stage="harvest", succeeded=["A", "B"], failed=["C"], cancelled=["D"])

    reporter.report_stage(report)

    output = _text(reporter)
    assert "harvest - 4 deposits" in output
    assert "Succeeded: 2" in output
    assert "Failed: 1" in output
    assert "Cancelled: 1" in output
    assert "Skipped" not in output


def test_report_stage_nothing_to_do(reporter):
    reporter.report_stage(StageReport(stage="organize", dry_run=True))

    assert "[DRY RUN] organize - nothing to do" in _text(reporter)


def test_long_lists_are_truncated(reporter):
    uuids = [f"D{i}" for i in range(Reporter.PREVIEW_LIMIT + 3)]

    reporter.report_stage(StageReport(stage="harvest", succeeded=uuids))

    assert "(+3 more)" in _text(reporter)


def test_report_results(reporter):
    reporter.report_results("Ping whitelist", {"P1": "allowed"})
    reporter.report_results("Health check", {})

    output = _text(reporter)
    assert "P1  allowed" in output
    assert "Health check: no providers" in output


def test_silent_reporter_prints_nothing():
    reporter = Reporter(silent=True)

    with reporter.stage_context("harvest"):
        hook = reporter.create_stage_progress_hook()
        hook("A", "succeeded")
    reporter.report_stage(StageReport(stage="harvest", succeeded=["A"]))
    reporter.report_error("boom")


def test_progress_hook_needs_stage_context():
    with pytest.raises(RuntimeError, match="stage_context"):
        Reporter().create_stage_progress_hook()


def test_progress_hook_advances_bar(reporter):
    with reporter.stage_context("harvest") as progress:
        hook = reporter.create_stage_progress_hook()
        hook("A", "succeeded")
        hook("B", "failed")
        assert progress.tasks[0].completed == 2
    assert reporter._progress is None
