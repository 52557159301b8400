"""Metrics ledger module for recording build step timing.

This module keeps an append-only, durable record of which build steps
ran, how long they took and how they ended. Independent processes can
append to the same ledger file.

Public API:
    MetricsLedger: Main class for beginning, ending and loading steps.
    StepRecord: A finalized ledger entry.
    StepStatus: Step outcome (success, failure, skipped).
    LedgerStorage: Interface for the backing append-only store.
    FileLedgerStorage: File-backed store with exclusive locking.
    InMemoryLedgerStorage: In-memory store for tests and dry runs.
    LedgerError: Base exception for module errors.
    DuplicateStepError: Raised when a step is begun twice.
    UnknownStepError: Raised when ending a step that was never begun.
    ParseError: Raised when a persisted ledger is malformed.
"""

from .exceptions import DuplicateStepError, LedgerError, ParseError, UnknownStepError
from .ledger import MetricsLedger
from .models import LEDGER_FIELDS, LEDGER_HEADER, StepRecord, StepStatus
from .storage import FileLedgerStorage, InMemoryLedgerStorage, LedgerStorage

__all__ = [
    "MetricsLedger",
    "StepRecord",
    "StepStatus",
    "LEDGER_FIELDS",
    "LEDGER_HEADER",
    "LedgerStorage",
    "FileLedgerStorage",
    "InMemoryLedgerStorage",
    "LedgerError",
    "DuplicateStepError",
    "UnknownStepError",
    "ParseError",
]
