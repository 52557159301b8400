"""PRNotifier for delivering build summaries as pull-request comments."""

import logging
from typing import Optional

from buildmetrics.summary import DEFAULT_MARKER

from .exceptions import DeliveryError
from .github_client import CommentClient, GitHubCommentClient
from .models import Comment, Destination, PublishResult

logger = logging.getLogger(__name__)


class PRNotifier:
    """Posts a build summary to a pull request, updating it on re-runs.

    The comment this pipeline owns is found by a hidden marker in its
    body, so publishing the same report twice leaves a single comment.
    """

    def __init__(
        self,
        client: Optional[CommentClient] = None,
        token: Optional[str] = None,
        marker: str = DEFAULT_MARKER,
    ):
        """Initialize the PRNotifier.

        Args:
            client: CommentClient to deliver through.
                A GitHubCommentClient is created on first use if not provided.
            token: GitHub token for the default client.
                Falls back to the GITHUB_TOKEN env var.
            marker: Hidden tag identifying this pipeline's comment.
        """
        self._client = client
        self._owns_client = False
        self._token = token
        self._marker = marker

    @property
    def marker(self) -> str:
        return self._marker

    def _get_client(self) -> CommentClient:
        """Get or create the comment client."""
        if self._client is None:
            self._client = GitHubCommentClient(token=self._token)
            self._owns_client = True
        return self._client

    def close(self) -> None:
        """Close the client this notifier created.

        A client passed in by the caller is left open.
        """
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None
            self._owns_client = False

    def __enter__(self) -> "PRNotifier":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _with_marker(self, report_text: str) -> str:
        if self._marker in report_text:
            return report_text
        return report_text.rstrip("\n") + "\n\n" + self._marker + "\n"

    def find_existing(self, destination: Destination) -> Optional[Comment]:
        """Find the comment previously posted by this pipeline.

        Raises:
            DeliveryError: If the comments cannot be listed.
        """
        for comment in self._get_client().list_comments(destination):
            if self._marker in comment.body:
                return comment
        return None

    # -------------------- Public API --------------------

    def publish(self, report_text: str, destination: Destination) -> PublishResult:
        """Create or update this pipeline's comment on a pull request.

        The marker is appended to the body when report_text lacks it.

        Args:
            report_text: Rendered summary to post.
            destination: Pull request to comment on.

        Returns:
            PublishResult describing the posted comment.

        Raises:
            DeliveryError: On authentication failure, missing destination
                or any other transport failure.
        """
        body = self._with_marker(report_text)
        client = self._get_client()
        existing = self.find_existing(destination)

        result = PublishResult(destination=str(destination))
        if existing is not None:
            if existing.body == body:
                comment = existing
                logger.info("Comment %d on %s already up to date", existing.id, destination)
            else:
                comment = client.update_comment(destination, existing.id, body)
                logger.info("Updated comment %d on %s", comment.id, destination)
        else:
            comment = client.create_comment(destination, body)
            result.created = True
            logger.info("Created comment %d on %s", comment.id, destination)

        result.comment_posted = True
        result.comment_id = comment.id
        result.comment_url = comment.url or (existing.url if existing else None)
        return result

    def notify(self, report_text: str, destination: Destination) -> PublishResult:
        """Publish best-effort: failures are logged and recorded, never raised.

        This is the main entry point for build pipelines, whose pass/fail
        does not depend on notification.

        Returns:
            PublishResult; check has_errors for delivery problems.
        """
        try:
            return self.publish(report_text, destination)
        except DeliveryError as e:
            logger.warning("Build summary not delivered to %s: %s", destination, e.reason)
            result = PublishResult(destination=str(destination))
            result.add_error(f"Delivery failed: {e.reason}")
            return result
