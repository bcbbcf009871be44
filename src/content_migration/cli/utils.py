"""
Utility functions for CLI commands.

This module provides helper functions for common CLI operations like
formatting output, resolving spaces and mapping run status to exit codes.
"""

from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from content_migration.cli.decorators import EXIT_FAILURE, EXIT_PARTIAL_SUCCESS
from content_migration.config import MigrationConfig
from content_migration.migration.summary import RunStatus, RunSummary
from content_migration.reporting.colors import MigrationColors
from content_migration.reporting.report import (
    STAGE_TITLES,
    MigrationReport,
    generate_migration_report,
)

console = Console()


def echo_success(message: str) -> None:
    """Print success message in green."""
    click.secho(f"✓ {message}", fg="green")


def echo_error(message: str) -> None:
    """Print error message in red."""
    click.secho(f"✗ {message}", fg="red", err=True)


def echo_warning(message: str) -> None:
    """Print warning message in yellow."""
    click.secho(f"⚠ {message}", fg="yellow")


def echo_info(message: str) -> None:
    """Print info message in blue."""
    click.secho(f"ℹ {message}", fg="blue")


def format_count(count: int) -> str:
    return f"{count:,}"


def print_table(
    title: str,
    columns: list[str],
    rows: list[list[Any]],
    show_header: bool = True,
) -> None:
    """
    Print a formatted table using rich.

    Args:
        title: Table title
        columns: Column headers
        rows: List of row data
        show_header: Whether to show header row
    """
    table = Table(title=title, show_header=show_header, header_style=MigrationColors.HEADER)

    for col in columns:
        table.add_column(col)

    for row in rows:
        table.add_row(*[str(cell) for cell in row])

    console.print(table)


def print_summaries(summaries: dict[str, RunSummary], title: str = "Push Summary") -> None:
    """Print one row per stage summary."""
    rows = []
    for stage, summary in summaries.items():
        failed = format_count(summary.failed)
        if summary.failed:
            failed = f"[{MigrationColors.ERROR}]{failed}[/{MigrationColors.ERROR}]"
        rows.append(
            [
                STAGE_TITLES.get(stage, stage),
                format_count(summary.total),
                format_count(summary.succeeded),
                format_count(summary.skipped),
                failed,
            ]
        )
    print_table(title, ["Stage", "Total", "Succeeded", "Skipped", "Failed"], rows)


STATUS_MESSAGES = {
    RunStatus.SUCCESS: "✓ Push completed successfully",
    RunStatus.PARTIAL_SUCCESS: "⚠ Push completed with failures",
    RunStatus.FAILURE: "✗ Push failed",
}


def echo_status(status: RunStatus) -> None:
    click.secho(
        STATUS_MESSAGES[status],
        fg=MigrationColors.STATUS[status.value],
        err=status is RunStatus.FAILURE,
    )


def exit_code_for(status: RunStatus) -> int:
    """Map a run status to the process exit code."""
    if status is RunStatus.SUCCESS:
        return 0
    if status is RunStatus.PARTIAL_SUCCESS:
        return EXIT_PARTIAL_SUCCESS
    return EXIT_FAILURE


def resolve_spaces(
    config: MigrationConfig, from_space: str | None, space: str | None
) -> tuple[str, str]:
    """Resolve source and destination space from options, falling back to config.

    Returns:
        Tuple of (source space, destination space)

    Raises:
        click.UsageError: If a space is neither given nor configured
    """
    source = from_space or config.source_space
    target = space or config.target_space
    if not target:
        raise click.UsageError("Missing destination space. Use --space or set target_space.")
    # The source defaults to the destination space
    return str(source or target), str(target)


def write_report(config: MigrationConfig, report: MigrationReport) -> None:
    """Write the end-of-run report next to the local content."""
    paths = config.paths
    generated = generate_migration_report(report, Path(paths.base_dir) / paths.report_dir)
    echo_info(f"Report written to {generated['json']}")
