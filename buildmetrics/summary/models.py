"""Data models for the summary renderer module."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from buildmetrics.context import BuildContext
from buildmetrics.ledger import StepRecord, StepStatus


class ReportStatus(Enum):
    """Overall outcome of a build run."""

    SUCCESS = "success"
    FAILURE = "failure"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Report:
    """Read-only summary of one build run.

    Recomputed from a ledger snapshot on every render; never mutated.

    Attributes:
        status: Overall outcome.
        steps: Step records in ledger order.
        context: Build metadata the report describes.
        total_duration: Latest end time minus earliest start time.
        started_at: Earliest step start (None for an empty report).
        finished_at: Latest step end (None for an empty report).
    """

    status: ReportStatus
    steps: tuple[StepRecord, ...] = ()
    context: BuildContext = field(default_factory=BuildContext)
    total_duration: float = 0.0
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        """Check if no steps were recorded."""
        return len(self.steps) == 0

    def _count(self, status: StepStatus) -> int:
        return sum(1 for step in self.steps if step.status == status)

    @property
    def passed(self) -> int:
        return self._count(StepStatus.SUCCESS)

    @property
    def failed(self) -> int:
        return self._count(StepStatus.FAILURE)

    @property
    def skipped(self) -> int:
        return self._count(StepStatus.SKIPPED)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "status": self.status.value,
            "steps": [step.to_dict() for step in self.steps],
            "context": self.context.to_dict(),
            "total_duration": self.total_duration,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }
