"""MetricsLedger for recording per-step build timing and outcome."""

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, Union

from .exceptions import DuplicateStepError, UnknownStepError
from .models import (
    LEDGER_HEADER,
    StepRecord,
    StepStatus,
    parse_ledger_lines,
    validate_step_name,
)
from .storage import FileLedgerStorage, InMemoryLedgerStorage, LedgerStorage

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class MetricsLedger:
    """Append-only, durable record of step timing for one build run.

    Finalized records are kept in completion order and written to the
    backing storage before ``end_step`` returns. Steps begun but not yet
    ended live only in this process.

    Example:
        ledger = MetricsLedger.open("build-metrics.csv")
        ledger.begin_step("build_library")
        ...
        ledger.end_step("build_library", StepStatus.SUCCESS)
    """

    def __init__(
        self,
        storage: Optional[LedgerStorage] = None,
        clock: Optional[Clock] = None,
        records: Optional[list[StepRecord]] = None,
    ):
        """Initialize the ledger.

        Args:
            storage: Backing store for finalized records.
                Defaults to an in-memory store.
            clock: Callable returning seconds since epoch. Defaults to time.time.
            records: Records already persisted in the storage for this run.
        """
        self._storage = storage if storage is not None else InMemoryLedgerStorage()
        self._clock = clock or time.time
        self._records: list[StepRecord] = list(records or [])
        self._open_steps: dict[str, float] = {}

    # -------------------- Construction --------------------

    @classmethod
    def load(
        cls,
        source: Union[LedgerStorage, str, Path],
        clock: Optional[Clock] = None,
    ) -> "MetricsLedger":
        """Load a persisted ledger into memory.

        Args:
            source: Storage backend, or a path to a ledger file.
            clock: Clock for steps recorded after loading.

        Returns:
            MetricsLedger holding every persisted record.

        Raises:
            ParseError: If any record is malformed. No ledger is returned.
        """
        storage = cls._as_storage(source)
        records = parse_ledger_lines(storage.read_all())
        logger.debug("Loaded %d ledger records", len(records))
        return cls(storage=storage, clock=clock, records=records)

    @classmethod
    def open(
        cls,
        path: Union[str, Path],
        clock: Optional[Clock] = None,
    ) -> "MetricsLedger":
        """Open the ledger file at path, loading any records already in it."""
        return cls.load(FileLedgerStorage(path), clock=clock)

    @staticmethod
    def _as_storage(source: Union[LedgerStorage, str, Path]) -> LedgerStorage:
        if isinstance(source, LedgerStorage):
            return source
        return FileLedgerStorage(source)

    # -------------------- Properties --------------------

    @property
    def records(self) -> list[StepRecord]:
        """Finalized records in completion order (a copy)."""
        return list(self._records)

    @property
    def open_steps(self) -> list[str]:
        """Names of steps begun but not yet ended."""
        return list(self._open_steps)

    @property
    def storage(self) -> LedgerStorage:
        return self._storage

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[StepRecord]:
        return iter(list(self._records))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MetricsLedger):
            return NotImplemented
        return self._records == other._records

    def _is_recorded(self, name: str) -> bool:
        return any(record.name == name for record in self._records)

    # -------------------- Step lifecycle --------------------

    def begin_step(self, name: str) -> float:
        """Start timing a step.

        Args:
            name: Step identifier, unique within the run.

        Returns:
            The recorded start time.

        Raises:
            DuplicateStepError: If the step is in flight or already recorded.
            ValueError: If the name cannot be stored in the ledger.
        """
        validate_step_name(name)
        if name in self._open_steps:
            raise DuplicateStepError(name, in_flight=True)
        if self._is_recorded(name):
            raise DuplicateStepError(name)

        start = self._clock()
        self._open_steps[name] = start
        logger.debug("Began step '%s' at %.3f", name, start)
        return start

    def end_step(self, name: str, status: StepStatus) -> StepRecord:
        """Finalize an open step and persist its record.

        Args:
            name: Step identifier passed to begin_step.
            status: Outcome of the step.

        Returns:
            The persisted StepRecord.

        Raises:
            UnknownStepError: If no open begin_step exists for name.
        """
        if name not in self._open_steps:
            raise UnknownStepError(name)

        start = self._open_steps[name]
        end = max(self._clock(), start)
        record = StepRecord(
            name=name, start_time=start, end_time=end, status=StepStatus(status)
        )
        self.append_to_storage(record)
        del self._open_steps[name]
        self._records.append(record)
        logger.info(
            "Step '%s' finished: %s (%.2fs)",
            name,
            record.status.value,
            record.duration_seconds,
        )
        return record

    def skip_step(self, name: str) -> StepRecord:
        """Record a step as explicitly skipped.

        An open step with the same name is closed as skipped; otherwise a
        zero-duration record is written.

        Raises:
            DuplicateStepError: If the step was already recorded.
        """
        if name in self._open_steps:
            return self.end_step(name, StepStatus.SKIPPED)
        now = self._clock()
        return self.record_step(name, now, now, StepStatus.SKIPPED)

    def record_step(
        self,
        name: str,
        start_time: float,
        end_time: float,
        status: StepStatus,
    ) -> StepRecord:
        """Append a step timed outside this ledger instance.

        Raises:
            DuplicateStepError: If the step is in flight or already recorded.
            ValueError: If the name is invalid or end_time < start_time.
        """
        validate_step_name(name)
        if name in self._open_steps:
            raise DuplicateStepError(name, in_flight=True)
        if self._is_recorded(name):
            raise DuplicateStepError(name)

        record = StepRecord(
            name=name,
            start_time=float(start_time),
            end_time=float(end_time),
            status=StepStatus(status),
        )
        self.append_to_storage(record)
        self._records.append(record)
        logger.info("Recorded step '%s': %s", name, record.status.value)
        return record

    @contextmanager
    def track(self, name: str) -> Iterator[None]:
        """Time the enclosed block as a step.

        The step ends as success, or as failure if the block raises; the
        exception is re-raised after the record is persisted.
        """
        self.begin_step(name)
        try:
            yield
        except BaseException:
            self.end_step(name, StepStatus.FAILURE)
            raise
        self.end_step(name, StepStatus.SUCCESS)

    # -------------------- Persistence --------------------

    def append_to_storage(self, record: StepRecord) -> None:
        """Durably write one finalized record to the backing store."""
        self._storage.append_line(record.to_line())

    def persist(self) -> str:
        """Serialize every record as ledger text (header included)."""
        lines = [LEDGER_HEADER] + [record.to_line() for record in self._records]
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        """Start a fresh run, discarding persisted and in-flight records."""
        self._storage.truncate()
        self._records.clear()
        self._open_steps.clear()
        logger.info("Ledger reset for a new run")
