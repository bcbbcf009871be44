"""Reporting and progress tracking for content pushes."""

from content_migration.reporting.progress import StageProgress
from content_migration.reporting.report import MigrationReport, generate_migration_report

__all__ = [
    "StageProgress",
    "MigrationReport",
    "generate_migration_report",
]
