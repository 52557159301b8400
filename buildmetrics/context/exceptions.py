"""Exceptions for the build context module."""


class ContextError(Exception):
    """Base exception for build context errors."""

    pass


class InvalidContextError(ContextError):
    """Raised when a build context value is out of range or unrecognized."""

    def __init__(self, field_name: str, value: object, reason: str):
        self.field_name = field_name
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid value {value!r} for '{field_name}': {reason}")


class TriggerParseError(ContextError):
    """Raised when a build trigger comment carries a malformed payload."""

    def __init__(self, payload: str, reason: str):
        self.payload = payload
        self.reason = reason
        super().__init__(f"Failed to parse build trigger '{payload}': {reason}")
