"""Tests for run status aggregation and push reports."""

import json
from pathlib import Path

from content_migration.migration.summary import RunStatus, RunSummary, derive_run_status
from content_migration.reporting.report import MigrationReport, generate_migration_report


def summary(total=0, succeeded=0, skipped=0, failed=0):
    return RunSummary(total=total, succeeded=succeeded, skipped=skipped, failed=failed)


def test_skips_count_as_success():
    assert derive_run_status([summary(3, 1, 2, 0)]) is RunStatus.SUCCESS


def test_mixed_results_are_a_partial_success():
    statuses = [summary(3, 2, 0, 1), summary(2, 2, 0, 0)]

    assert derive_run_status(statuses) is RunStatus.PARTIAL_SUCCESS


def test_only_failures_is_a_failure():
    assert derive_run_status([summary(2, 0, 0, 2)]) is RunStatus.FAILURE


def test_empty_run_is_a_success_unless_something_broke_upstream():
    assert derive_run_status([]) is RunStatus.SUCCESS
    assert derive_run_status([], upstream_failed=True) is RunStatus.FAILURE


def test_totals_never_go_negative():
    counters = RunSummary()
    counters.set_total(-4)
    counters.decrement_total()

    assert counters.total == 0


def test_report_is_written_as_json_and_markdown(tmp_path):
    report = MigrationReport(
        "stories push",
        {"creationResults": summary(3, 2, 0, 1), "updateResults": summary(2, 2, 0, 0)},
        RunStatus.PARTIAL_SUCCESS,
        context={"source_space": "1000", "target_space": "2000", "dry_run": False},
    )

    files = generate_migration_report(report, tmp_path)

    data = json.loads(Path(files["json"]).read_text())
    assert data["command"] == "stories push"
    assert data["status"] == "partial_success"
    assert data["target_space"] == "2000"
    assert data["stages"]["creationResults"] == {
        "total": 3,
        "succeeded": 2,
        "skipped": 0,
        "failed": 1,
    }
    assert any("1 items failed" in rec for rec in data["recommendations"])

    markdown = Path(files["markdown"]).read_text()
    assert "| Story creation | 3 | 2 | 0 | 1 |" in markdown
    assert "**Target Space:** 2000" in markdown
