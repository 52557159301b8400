"""TriggerParser for build requests posted as pull-request comments."""

import json
import logging
import re
from typing import Any, Optional

from .exceptions import InvalidContextError, TriggerParseError
from .models import BuildType, TriggerRequest, parse_bool

logger = logging.getLogger(__name__)


class TriggerParser:
    """Parses ``/build`` comments into validated build requests.

    A trigger comment looks like::

        /build {"build_type": "debug", "save_logs": true, "reason": "flaky test"}

    The JSON object is optional and may continue over following lines or
    sit inside a code fence. Only the keys in ALLOWED_KEYS are accepted.
    """

    COMMAND_PATTERN = re.compile(r"^\s*/build\b(.*)$", re.IGNORECASE | re.MULTILINE)
    FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

    ALLOWED_KEYS = ("build_type", "save_logs", "reason")

    def __init__(self, default_build_type: BuildType = BuildType.RELEASE):
        self._default_build_type = default_build_type

    def extract_payload(self, comment_body: Optional[str]) -> Optional[str]:
        """Return the text following the /build command, or None.

        Args:
            comment_body: Full text of the pull-request comment.

        Returns:
            Stripped payload text (possibly empty), or None if the comment
            contains no /build command.
        """
        if not comment_body:
            return None
        match = self.COMMAND_PATTERN.search(comment_body)
        if not match:
            return None
        payload = comment_body[match.start(1):].strip()
        fenced = self.FENCE_PATTERN.match(payload)
        if fenced:
            payload = fenced.group(1).strip()
        return payload

    def parse_payload(self, payload: str) -> TriggerRequest:
        """Validate a trigger payload.

        Args:
            payload: JSON object text, or an empty string for defaults.

        Returns:
            TriggerRequest with defaults filled in.

        Raises:
            TriggerParseError: If the payload is not a JSON object, contains
                unrecognized keys or carries invalid values.
        """
        if not payload:
            return TriggerRequest(build_type=self._default_build_type)

        try:
            data: Any = json.loads(payload)
        except json.JSONDecodeError as e:
            raise TriggerParseError(payload, f"invalid JSON: {e.msg}") from e

        if not isinstance(data, dict):
            raise TriggerParseError(payload, "expected a JSON object")

        unknown = sorted(set(data) - set(self.ALLOWED_KEYS))
        if unknown:
            raise TriggerParseError(
                payload,
                f"unrecognized option(s) {', '.join(unknown)}; "
                f"allowed: {', '.join(self.ALLOWED_KEYS)}",
            )

        reason = data.get("reason")
        if reason is not None and not isinstance(reason, str):
            raise TriggerParseError(payload, "'reason' must be a string")

        try:
            build_type = BuildType.parse(data.get("build_type", self._default_build_type))
            save_logs = parse_bool("save_logs", data.get("save_logs", False))
        except InvalidContextError as e:
            raise TriggerParseError(payload, str(e)) from e

        if reason is not None:
            reason = reason.strip() or None

        return TriggerRequest(build_type=build_type, save_logs=save_logs, reason=reason)

    def parse(self, comment_body: Optional[str]) -> Optional[TriggerRequest]:
        """Parse a pull-request comment.

        Returns:
            TriggerRequest, or None if the comment is not a build trigger.

        Raises:
            TriggerParseError: If the comment is a trigger with a bad payload.
        """
        payload = self.extract_payload(comment_body)
        if payload is None:
            return None
        request = self.parse_payload(payload)
        logger.info(
            "Parsed build trigger: build_type=%s save_logs=%s",
            request.build_type.value,
            request.save_logs,
        )
        return request
