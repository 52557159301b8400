"""Build context module describing the run being reported on.

Public API:
    BuildContext: Build metadata (type, trigger, source commit, retention).
    BuildType: Release or debug.
    TriggerRequest: Options requested through a /build comment.
    TriggerParser: Parses /build comments into TriggerRequests.
    ContextError: Base exception for module errors.
    InvalidContextError: Raised for out-of-range context values.
    TriggerParseError: Raised for malformed trigger payloads.
"""

from .exceptions import ContextError, InvalidContextError, TriggerParseError
from .models import BuildContext, BuildType, TriggerRequest, parse_bool
from .trigger import TriggerParser

__all__ = [
    "BuildContext",
    "BuildType",
    "TriggerRequest",
    "TriggerParser",
    "parse_bool",
    "ContextError",
    "InvalidContextError",
    "TriggerParseError",
]
