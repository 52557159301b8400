"""Comment clients for pull-request hosting services."""

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from .exceptions import DeliveryError
from .models import Comment, Destination

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
COMMENTS_PER_PAGE = 100


class CommentClient(ABC):
    """Create-or-update comment capability on a pull-request thread."""

    @abstractmethod
    def list_comments(self, destination: Destination) -> list[Comment]:
        """Return every comment on the destination thread, oldest first.

        Raises:
            DeliveryError: If the thread cannot be read.
        """
        pass

    @abstractmethod
    def create_comment(self, destination: Destination, body: str) -> Comment:
        """Post a new comment.

        Raises:
            DeliveryError: If the comment cannot be created.
        """
        pass

    @abstractmethod
    def update_comment(self, destination: Destination, comment_id: int, body: str) -> Comment:
        """Replace the body of an existing comment.

        Raises:
            DeliveryError: If the comment cannot be updated.
        """
        pass

    def close(self) -> None:
        """Release any connections held by the client."""
        pass


class GitHubCommentClient(CommentClient):
    """CommentClient backed by the GitHub REST API."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            token: GitHub token. Defaults to the GITHUB_TOKEN env var.
            base_url: API root, overridable for GitHub Enterprise.
            timeout: Request timeout in seconds.
            transport: Custom httpx transport (used by tests).

        Raises:
            DeliveryError: If no token is available.
        """
        token = token or os.environ.get("GITHUB_TOKEN")
        if not token:
            raise DeliveryError("no GitHub token configured (set GITHUB_TOKEN)")
        self._client = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout, connect=10.0),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": "buildmetrics/1.0.0",
            },
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "GitHubCommentClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _request(self, method: str, url: str, context: str, **kwargs) -> httpx.Response:
        """Send a request, converting failures to DeliveryError.

        Raises:
            DeliveryError: On transport errors, 401/403 (authentication),
                404 (destination not found) or any other non-2xx status.
        """
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error("GitHub API request failed (%s): %s", context, e)
            raise DeliveryError(f"{context}: {e}") from e

        status = response.status_code
        if status < 300:
            return response

        try:
            message = response.json().get("message", response.text)
        except ValueError:
            message = response.text
        logger.error("GitHub API error (status=%d) %s: %s", status, context, message)

        if status in (401, 403):
            raise DeliveryError(
                f"{context}: authentication failed ({status}): {message}",
                status_code=status,
            )
        if status == 404:
            raise DeliveryError(
                f"{context}: destination not found: {message}", status_code=status
            )
        raise DeliveryError(f"{context}: HTTP {status}: {message}", status_code=status)

    def _decode(self, response: httpx.Response, context: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            logger.error("GitHub API returned a non-JSON body (%s)", context)
            raise DeliveryError(f"{context}: response is not valid JSON") from e

    def _to_comment(self, data: Any, context: str) -> Comment:
        try:
            return Comment.from_api_response(data)
        except (KeyError, TypeError, ValueError) as e:
            raise DeliveryError(f"{context}: unexpected comment payload ({e!r})") from e

    def list_comments(self, destination: Destination) -> list[Comment]:
        context = f"Failed to list comments on {destination}"
        comments: list[Comment] = []
        page = 1
        while True:
            response = self._request(
                "GET",
                f"/repos/{destination.repo}/issues/{destination.pr_number}/comments",
                context,
                params={"per_page": COMMENTS_PER_PAGE, "page": page},
            )
            items = self._decode(response, context)
            if not isinstance(items, list):
                raise DeliveryError(f"{context}: expected a list of comments")
            comments.extend(self._to_comment(item, context) for item in items)
            if len(items) < COMMENTS_PER_PAGE:
                break
            page += 1
        logger.debug("Found %d comments on %s", len(comments), destination)
        return comments

    def create_comment(self, destination: Destination, body: str) -> Comment:
        context = f"Failed to create comment on {destination}"
        response = self._request(
            "POST",
            f"/repos/{destination.repo}/issues/{destination.pr_number}/comments",
            context,
            json={"body": body},
        )
        return self._to_comment(self._decode(response, context), context)

    def update_comment(self, destination: Destination, comment_id: int, body: str) -> Comment:
        context = f"Failed to update comment {comment_id} on {destination}"
        response = self._request(
            "PATCH",
            f"/repos/{destination.repo}/issues/comments/{comment_id}",
            context,
            json={"body": body},
        )
        return self._to_comment(self._decode(response, context), context)
