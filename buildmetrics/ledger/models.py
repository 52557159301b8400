"""Data models for the metrics ledger module."""

import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .exceptions import ParseError

# Fixed field order of a persisted ledger line
LEDGER_FIELDS = ("name", "start_time", "end_time", "duration_seconds", "status")
LEDGER_HEADER = ",".join(LEDGER_FIELDS)

STEP_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+$")


class StepStatus(Enum):
    """Outcome of a tracked build step."""

    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


def validate_step_name(name: str) -> str:
    """Check that a step name can be stored as a single ledger field.

    Raises:
        ValueError: If the name is empty or contains characters outside
            letters, digits, underscore, dot and hyphen.
    """
    if not isinstance(name, str) or not STEP_NAME_PATTERN.match(name):
        raise ValueError(
            f"Invalid step name {name!r}: use letters, digits, '_', '.' or '-'"
        )
    return name


@dataclass(frozen=True)
class StepRecord:
    """A finalized, timed and outcome-tagged ledger entry.

    Attributes:
        name: Step identifier, unique within a run.
        start_time: Seconds since epoch when the step began.
        end_time: Seconds since epoch when the step finished.
        status: Outcome of the step.
        duration_seconds: Always end_time - start_time; derived, never passed in.
    """

    name: str
    start_time: float
    end_time: float
    status: StepStatus
    duration_seconds: float = field(init=False)

    def __post_init__(self) -> None:
        for label, value in (("start_time", self.start_time), ("end_time", self.end_time)):
            if not math.isfinite(value):
                raise ValueError(f"Step '{self.name}' has a non-finite {label} ({value})")
        if self.end_time < self.start_time:
            raise ValueError(
                f"Step '{self.name}' ends before it starts "
                f"({self.end_time} < {self.start_time})"
            )
        object.__setattr__(self, "duration_seconds", self.end_time - self.start_time)

    def to_line(self) -> str:
        """Serialize to one ledger line (without trailing newline)."""
        return ",".join(
            [
                self.name,
                repr(float(self.start_time)),
                repr(float(self.end_time)),
                repr(float(self.duration_seconds)),
                self.status.value,
            ]
        )

    @classmethod
    def from_line(cls, line: str, line_number: int = 1) -> "StepRecord":
        """Parse one ledger line.

        The stored duration must be numeric but is recomputed from the
        timestamps.

        Raises:
            ParseError: On wrong field count, invalid name, non-numeric
                or non-finite values, unrecognized status or end before start.
        """
        parts = line.split(",")
        if len(parts) != len(LEDGER_FIELDS):
            raise ParseError(
                line_number,
                line,
                f"expected {len(LEDGER_FIELDS)} fields, got {len(parts)}",
            )
        name, start_raw, end_raw, duration_raw, status_raw = (p.strip() for p in parts)

        if not STEP_NAME_PATTERN.match(name):
            raise ParseError(line_number, line, f"invalid step name {name!r}")

        values = []
        for label, raw in (
            ("start_time", start_raw),
            ("end_time", end_raw),
            ("duration_seconds", duration_raw),
        ):
            try:
                value = float(raw)
            except ValueError:
                raise ParseError(
                    line_number, line, f"non-numeric {label} {raw!r}"
                ) from None
            if not math.isfinite(value):
                raise ParseError(line_number, line, f"non-finite {label} {raw!r}")
            values.append(value)

        try:
            status = StepStatus(status_raw)
        except ValueError:
            raise ParseError(
                line_number, line, f"unrecognized status {status_raw!r}"
            ) from None

        try:
            return cls(
                name=name,
                start_time=values[0],
                end_time=values[1],
                status=status,
            )
        except ValueError as e:
            raise ParseError(line_number, line, str(e)) from e

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "name": self.name,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration_seconds": self.duration_seconds,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepRecord":
        """Deserialize from dictionary."""
        return cls(
            name=data["name"],
            start_time=float(data["start_time"]),
            end_time=float(data["end_time"]),
            status=StepStatus(data["status"]),
        )


def parse_ledger_lines(lines: list[str]) -> list[StepRecord]:
    """Parse persisted ledger lines into records.

    Blank lines and a header line are ignored. Nothing is returned unless
    every record parses.

    Raises:
        ParseError: If any record is malformed or a step name repeats.
    """
    records: list[StepRecord] = []
    seen: set[str] = set()
    for number, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        if not line.strip():
            continue
        if line.strip() == LEDGER_HEADER:
            continue
        record = StepRecord.from_line(line, line_number=number)
        if record.name in seen:
            raise ParseError(number, line, f"duplicate step name '{record.name}'")
        seen.add(record.name)
        records.append(record)
    return records
