"""Push report generation.

This module writes an end-of-run report of a push with its per-stage
summaries and overall status, as JSON and Markdown.
"""

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from content_migration.migration.summary import RunStatus, RunSummary
from content_migration.utils.logging import get_logger

logger = get_logger(__name__)

STAGE_TITLES = {
    "assetFolderResults": "Asset folders",
    "assetResults": "Assets",
    "creationResults": "Story creation",
    "processResults": "Story processing",
    "updateResults": "Story update",
    "fetchStoryPages": "Story pages fetched",
    "fetchStories": "Stories fetched",
    "storyProcessResults": "Story reference processing",
    "storyUpdateResults": "Story reference update",
}


class MigrationReport:
    """Report of a single push run.

    Args:
        command: Name of the push command (e.g. ``stories push``)
        summaries: Stage summaries keyed by stage name
        status: Overall run status
        context: Extra fields shown in the report header (spaces, dry run)
        started_at: When the run started
    """

    def __init__(
        self,
        command: str,
        summaries: dict[str, RunSummary],
        status: RunStatus,
        context: dict[str, Any] | None = None,
        started_at: datetime | None = None,
    ):
        self.command = command
        self.summaries = summaries
        self.status = status
        self.context = context or {}
        self.generated_at = datetime.now(UTC)
        self.started_at = started_at or self.generated_at

    @property
    def duration_seconds(self) -> float:
        return (self.generated_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "report_version": "1.0",
            "command": self.command,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "generated_at": self.generated_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            **self.context,
            "stages": {stage: summary.to_dict() for stage, summary in self.summaries.items()},
            "recommendations": self._generate_recommendations(),
        }

    def generate_json(self, output_path: str | Path | None = None) -> str:
        """Generate JSON report.

        Args:
            output_path: Optional path to save report

        Returns:
            JSON report as string
        """
        json_str = json.dumps(self.to_dict(), indent=2, default=str)

        if output_path:
            Path(output_path).write_text(json_str)
            logger.info("json_report_saved", path=str(output_path))

        return json_str

    def generate_markdown(self, output_path: str | Path | None = None) -> str:
        """Generate Markdown report.

        Args:
            output_path: Optional path to save report

        Returns:
            Markdown report as string
        """
        lines = [
            "# Content Bridge Push Report",
            "",
            f"**Command:** `{self.command}`  ",
            f"**Generated:** {self.generated_at.strftime('%Y-%m-%d %H:%M:%S UTC')}  ",
            f"**Status:** {self.status.value}  ",
            f"**Duration:** {self.duration_seconds:.1f}s  ",
        ]
        for key, value in self.context.items():
            lines.append(f"**{key.replace('_', ' ').title()}:** {value}  ")

        lines.extend(
            [
                "",
                "## Stages",
                "",
                "| Stage | Total | Succeeded | Skipped | Failed |",
                "|-------|------:|----------:|--------:|-------:|",
            ]
        )
        for stage, summary in self.summaries.items():
            title = STAGE_TITLES.get(stage, stage)
            lines.append(
                f"| {title} | {summary.total:,} | {summary.succeeded:,} "
                f"| {summary.skipped:,} | {summary.failed:,} |"
            )
        lines.append("")

        recommendations = self._generate_recommendations()
        if recommendations:
            lines.extend(["## Recommendations", ""])
            for rec in recommendations:
                lines.append(f"- {rec}")
            lines.append("")

        markdown = "\n".join(lines)

        if output_path:
            Path(output_path).write_text(markdown)
            logger.info("markdown_report_saved", path=str(output_path))

        return markdown

    def _generate_recommendations(self) -> list[str]:
        recommendations = []

        failed = sum(summary.failed for summary in self.summaries.values())
        if failed > 0:
            recommendations.append(
                f"{failed} items failed. Review the log file for details and re-run the push; "
                "items recorded in the manifest are skipped."
            )

        incomplete = [
            STAGE_TITLES.get(stage, stage)
            for stage, summary in self.summaries.items()
            if summary.processed < summary.total
        ]
        if incomplete:
            recommendations.append(
                "Some stages did not process every item: " + ", ".join(incomplete) + "."
            )

        return recommendations


def generate_migration_report(
    report: MigrationReport,
    output_dir: str | Path = "./reports",
    formats: list[str] | None = None,
) -> dict[str, str]:
    """Write a push report in multiple formats.

    Args:
        report: Report to write
        output_dir: Directory to save reports
        formats: Formats to generate (json, markdown). Default: all

    Returns:
        Dictionary mapping format to file path
    """
    if formats is None:
        formats = ["json", "markdown"]

    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    generated_files = {}

    timestamp = report.generated_at.strftime("%Y%m%d_%H%M%S")
    base_filename = f"push_report_{report.command.replace(' ', '_')}_{timestamp}"

    if "json" in formats:
        json_path = output_path / f"{base_filename}.json"
        report.generate_json(json_path)
        generated_files["json"] = str(json_path)

    if "markdown" in formats:
        md_path = output_path / f"{base_filename}.md"
        report.generate_markdown(md_path)
        generated_files["markdown"] = str(md_path)

    logger.info("reports_generated", formats=list(generated_files), output_dir=str(output_path))
    return generated_files
