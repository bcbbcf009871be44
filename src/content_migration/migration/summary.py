"""Per-stage result counters and overall run status."""

from collections.abc import Iterable
from dataclasses import asdict, dataclass
from enum import Enum


class RunStatus(str, Enum):
    """Overall outcome of a push run."""

    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILURE = "failure"


@dataclass
class RunSummary:
    """Counters for one pipeline stage.

    Attributes:
        total: Items the stage expects to process
        succeeded: Items processed successfully
        skipped: Items that needed no write (already migrated)
        failed: Items that failed
    """

    total: int = 0
    succeeded: int = 0
    skipped: int = 0
    failed: int = 0

    def set_total(self, total: int) -> None:
        self.total = max(0, total)

    def decrement_total(self, amount: int = 1) -> None:
        """Drop items that will never reach this stage."""
        self.total = max(0, self.total - amount)

    def record_success(self) -> None:
        self.succeeded += 1

    def record_skip(self) -> None:
        self.skipped += 1

    def record_failure(self) -> None:
        self.failed += 1

    @property
    def processed(self) -> int:
        return self.succeeded + self.skipped + self.failed

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def derive_run_status(summaries: Iterable[RunSummary], upstream_failed: bool = False) -> RunStatus:
    """Aggregate stage summaries into a single run status.

    Skipped items count as successes. A run with nothing to do is a success
    unless ``upstream_failed`` says something broke before any stage ran.

    Args:
        summaries: Summaries of every stage that ran
        upstream_failed: Whether a fatal error stopped the run early

    Returns:
        SUCCESS when nothing failed, PARTIAL_SUCCESS when successes and
        failures are mixed, FAILURE otherwise
    """
    succeeded = 0
    failed = 0
    for summary in summaries:
        succeeded += summary.succeeded + summary.skipped
        failed += summary.failed

    if failed == 0 and not upstream_failed:
        return RunStatus.SUCCESS
    if succeeded > 0:
        return RunStatus.PARTIAL_SUCCESS
    return RunStatus.FAILURE
