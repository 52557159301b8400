"""Exceptions for the pull-request notifier module."""


class NotifierError(Exception):
    """Base exception for notifier errors."""

    pass


class DeliveryError(NotifierError):
    """Raised when a report cannot be delivered to its destination."""

    def __init__(self, reason: str, status_code: int | None = None):
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to deliver build summary: {reason}")
