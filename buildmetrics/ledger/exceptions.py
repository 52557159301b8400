"""Exceptions for the metrics ledger module."""


class LedgerError(Exception):
    """Base exception for all ledger-related errors."""

    pass


class DuplicateStepError(LedgerError):
    """Raised when a step is begun twice within one run."""

    def __init__(self, name: str, in_flight: bool = False):
        self.name = name
        self.in_flight = in_flight
        state = "is already in progress" if in_flight else "was already recorded"
        super().__init__(f"Step '{name}' {state} in this run")


class UnknownStepError(LedgerError):
    """Raised when a step is ended without a matching open begin."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Step '{name}' has no open begin in this run")


class ParseError(LedgerError):
    """Raised when a persisted ledger contains a malformed record."""

    def __init__(self, line_number: int, line: str, reason: str):
        self.line_number = line_number
        self.line = line
        self.reason = reason
        super().__init__(f"Malformed ledger record on line {line_number}: {reason}")
