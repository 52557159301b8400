"""Pull-request notifier module for build summaries.

This module posts a rendered build summary as a pull-request comment,
updating the same comment on re-runs.

Public API:
    PRNotifier: Main class for publishing summaries.
    CommentClient: Interface for a create-or-update comment service.
    GitHubCommentClient: CommentClient for the GitHub REST API.
    Destination: Pull request identifier (repo + number).
    Comment: A comment on a pull request thread.
    PublishResult: Result of a publish, with CI outputs.
    NotifierError: Base exception for module errors.
    DeliveryError: Raised when delivery fails.
"""

from .exceptions import DeliveryError, NotifierError
from .github_client import CommentClient, GitHubCommentClient
from .models import Comment, Destination, PublishResult
from .notifier import PRNotifier

__all__ = [
    "PRNotifier",
    "CommentClient",
    "GitHubCommentClient",
    "Destination",
    "Comment",
    "PublishResult",
    "NotifierError",
    "DeliveryError",
]
