"""Progress display for push stages using Rich.

Every stage of a push (creating, processing, updating, ...) gets one bar.
Bars are added when a stage starts and keep their final state once done.
Console logging is suspended while the live display is active so log lines
do not tear the bars; file logging is unaffected.
"""

import logging
from typing import Any

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from content_migration.reporting.colors import MigrationColors
from content_migration.utils.logging import get_logger

logger = get_logger(__name__)

TITLE_WIDTH = 24


class StageProgress:
    """Rich progress bars keyed by stage name.

    When disabled every method is a no-op, so migrators can report progress
    unconditionally.

    Example:
        >>> with StageProgress() as progress:
        ...     progress.add_stage("creationResults", "Creating stories", total=10)
        ...     progress.advance("creationResults")
    """

    def __init__(self, enabled: bool = True, console: Console | None = None):
        self.enabled = enabled
        self._tasks: dict[str, TaskID] = {}
        self._suspended_handlers: list[logging.Handler] = []
        self._started = False

        if not enabled:
            self.progress = None
            return

        self.progress = Progress(
            SpinnerColumn(style=MigrationColors.SPINNER),
            TextColumn(f"{{task.description:<{TITLE_WIDTH}}}", style=MigrationColors.STAGE),
            BarColumn(bar_width=30, style=MigrationColors.BAR),
            TaskProgressColumn(),
            MofNCompleteColumn(),
            TextColumn("{task.fields[failed]}"),
            TimeElapsedColumn(),
            console=console or Console(stderr=True),
        )

    def start(self) -> None:
        if not self.enabled or self._started:
            return

        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            if "RichHandler" in handler.__class__.__name__:
                self._suspended_handlers.append(handler)
                root_logger.removeHandler(handler)

        self.progress.start()
        self._started = True

    def stop(self) -> None:
        if not self.enabled or not self._started:
            return

        self.progress.stop()
        self._started = False
        logger.debug("progress_stopped", stages=list(self._tasks))

        root_logger = logging.getLogger()
        for handler in self._suspended_handlers:
            if handler not in root_logger.handlers:
                root_logger.addHandler(handler)
        self._suspended_handlers = []

    def add_stage(self, stage: str, title: str, total: int = 0) -> None:
        """Add a bar for ``stage`` (no-op if it already exists)."""
        if not self.enabled or stage in self._tasks:
            return
        self._tasks[stage] = self.progress.add_task(title, total=total, failed="")

    def set_total(self, stage: str, total: int) -> None:
        if self.enabled and stage in self._tasks:
            self.progress.update(self._tasks[stage], total=max(0, total))

    def advance(self, stage: str, failed: int | None = None) -> None:
        """Advance a stage by one item, optionally showing its failure count."""
        if not self.enabled or stage not in self._tasks:
            return
        fields: dict[str, Any] = {}
        if failed:
            fields["failed"] = f"[{MigrationColors.ERROR}]{failed} failed[/{MigrationColors.ERROR}]"
        self.progress.update(self._tasks[stage], advance=1, **fields)

    def __enter__(self) -> "StageProgress":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
