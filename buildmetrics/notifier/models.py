"""Data models for the pull-request notifier module."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Destination:
    """A pull request to comment on.

    Attributes:
        repo: Repository in "owner/name" form.
        pr_number: Pull request number.
    """

    repo: str
    pr_number: int

    def __post_init__(self) -> None:
        owner, _, name = self.repo.partition("/")
        if not owner or not name or "/" in name:
            raise ValueError(f"Repository must be 'owner/name', got {self.repo!r}")
        if self.pr_number <= 0:
            raise ValueError(f"Pull request number must be positive, got {self.pr_number}")

    def __str__(self) -> str:
        return f"{self.repo}#{self.pr_number}"


@dataclass
class Comment:
    """A comment on a pull request thread.

    Attributes:
        id: Comment identifier assigned by the hosting service.
        body: Comment text.
        url: Link to the comment, if known.
    """

    id: int
    body: str
    url: Optional[str] = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "Comment":
        """Create from a GitHub issue comment payload."""
        return cls(
            id=int(data["id"]),
            body=data.get("body") or "",
            url=data.get("html_url"),
        )


@dataclass
class PublishResult:
    """Result of publishing a build summary.

    Attributes:
        published_at: When publishing was attempted.
        destination: Where the summary was sent.
        comment_posted: Whether a comment was created or updated.
        comment_id: Identifier of the comment (if posted).
        comment_url: Link to the comment (if posted).
        created: True if a new comment was created, False if updated.
        errors: Any errors encountered.
    """

    published_at: datetime = field(default_factory=datetime.now)
    destination: Optional[str] = None
    comment_posted: bool = False
    comment_id: Optional[int] = None
    comment_url: Optional[str] = None
    created: bool = False
    errors: list[str] = field(default_factory=list)

    def add_error(self, error: str) -> None:
        """Record an error that occurred during publishing."""
        self.errors.append(error)

    @property
    def has_errors(self) -> bool:
        """Check if any errors occurred."""
        return len(self.errors) > 0

    def outputs(self) -> dict[str, str]:
        """Named outputs for downstream CI steps."""
        return {
            "comment-posted": "true" if self.comment_posted else "false",
            "comment-url": self.comment_url or "",
        }

    def write_outputs(self, path: Optional[Union[str, Path]]) -> bool:
        """Append the named outputs to the CI output file (GITHUB_OUTPUT).

        Returns:
            True if outputs were written, False when no path is configured
            or the file cannot be written.
        """
        if not path:
            return False
        try:
            with open(path, "a", encoding="utf-8") as f:
                for key, value in self.outputs().items():
                    f.write(f"{key}={value}\n")
        except OSError as e:
            logger.warning("Could not write outputs to %s: %s", path, e)
            return False
        return True

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "published_at": self.published_at.isoformat(),
            "destination": self.destination,
            "comment_posted": self.comment_posted,
            "comment_id": self.comment_id,
            "comment_url": self.comment_url,
            "created": self.created,
            "errors": self.errors,
        }
