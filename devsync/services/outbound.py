"""Outbound side of the GitHub sync.

Every operation here is best-effort: failures are logged and turned into a
``None``/``False`` sentinel so GitHub trouble never blocks local CRUD. The
implementation is picked once at startup by :func:`build_outbound_sync`.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from devsync.config import Settings
from devsync.services.github_client import (
    GitHubClient,
    GitHubClientError,
    parse_github_datetime,
)
from devsync.services.issue_body import build_issue_body
from devsync.services.status_translator import (
    STATE_CLOSED,
    STATE_OPEN,
    build_label_set,
    merge_labels,
)

logger = logging.getLogger(__name__)

CLOSE_REASON_COMPLETED = "completed"
CLOSE_REASON_NOT_PLANNED = "not_planned"


@dataclass(frozen=True)
class IssueLink:
    number: int
    url: str
    state: str = STATE_OPEN


@dataclass(frozen=True)
class IssueSnapshot:
    state: str
    closed: bool
    labels: List[str] = field(default_factory=list)
    updated_at: Optional[datetime] = None


class OutboundSyncPort:
    """Interface used by the rest of the application to talk to GitHub."""

    enabled = False

    def create(self, request: Any) -> Optional[IssueLink]:
        raise NotImplementedError

    def update_details(
        self,
        issue_number: int,
        *,
        title: Optional[str] = None,
        body: Optional[str] = None,
        labels: Optional[List[str]] = None,
        state: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def update_status(self, issue_number: int, state: str, labels: List[str]) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def close(self, issue_number: int, reason: Optional[str] = None) -> bool:
        raise NotImplementedError

    def add_comment(self, issue_number: int, body: str) -> bool:
        raise NotImplementedError

    def fetch_status(self, issue_number: int) -> Optional[IssueSnapshot]:
        raise NotImplementedError


class NoopOutboundSync(OutboundSyncPort):
    """Used when no token or repository is configured."""

    enabled = False

    def __init__(self, reason: str = "GitHub integration not configured"):
        self.reason = reason

    def _skip(self, operation: str) -> None:
        logger.info(f"GitHub {operation} skipped: {self.reason}")

    def create(self, request):
        self._skip("issue creation")
        return None

    def update_details(self, issue_number, *, title=None, body=None, labels=None, state=None):
        self._skip(f"update of issue #{issue_number}")
        return None

    def update_status(self, issue_number, state, labels):
        self._skip(f"status update of issue #{issue_number}")
        return None

    def close(self, issue_number, reason=None):
        self._skip(f"close of issue #{issue_number}")
        return False

    def add_comment(self, issue_number, body):
        self._skip(f"comment on issue #{issue_number}")
        return False

    def fetch_status(self, issue_number):
        self._skip(f"fetch of issue #{issue_number}")
        return None


class GitHubOutboundSync(OutboundSyncPort):
    """Real implementation backed by :class:`GitHubClient`."""

    enabled = True

    def __init__(self, client: GitHubClient, *, preserve_foreign_labels: bool = True):
        self.client = client
        self.preserve_foreign_labels = preserve_foreign_labels
        self._repository_verified = False

    def _ensure_repository(self) -> bool:
        """Check repository access once before the first create."""
        if self._repository_verified:
            return True
        try:
            self.client.get_repository()
        except GitHubClientError as e:
            logger.error(f"GitHub repository not reachable, issue creation skipped: {e}")
            return False
        self._repository_verified = True
        return True

    def _merged_labels(self, issue_number: int, labels: List[str]) -> Optional[List[str]]:
        """Managed labels merged into the issue's current labels.

        Returns None when the current labels cannot be read, so callers abort
        rather than wipe labels added on GitHub.
        """
        if not self.preserve_foreign_labels:
            return sorted(set(labels))
        try:
            current = self.client.get_issue(issue_number)
        except GitHubClientError as e:
            logger.error(f"Could not read labels of issue #{issue_number}, update skipped: {e}")
            return None
        return merge_labels(GitHubClient.label_names(current), labels)

    def create(self, request):
        if not self._ensure_repository():
            return None

        payload = {
            "title": request.title,
            "body": build_issue_body(request),
            "labels": sorted(build_label_set(request.status, request.type, request.priority)),
        }
        try:
            issue = self.client.create_issue(payload)
        except GitHubClientError as e:
            logger.error(f"GitHub issue creation failed for request {request.id}: {e}")
            return None
        except Exception as e:
            logger.error(f"Unexpected error creating GitHub issue for request {request.id}: {e}")
            return None

        number = issue.get("number") if isinstance(issue, dict) else None
        url = issue.get("html_url") if isinstance(issue, dict) else None
        if number is None or not url:
            logger.error(f"GitHub returned an issue without number/url for request {request.id}")
            return None
        return IssueLink(number=int(number), url=url, state=issue.get("state") or STATE_OPEN)

    def update_details(self, issue_number, *, title=None, body=None, labels=None, state=None):
        payload: Dict[str, Any] = {}
        if title is not None:
            payload["title"] = title
        if body is not None:
            payload["body"] = body
        if state is not None:
            payload["state"] = state
        try:
            if labels is not None:
                merged = self._merged_labels(issue_number, labels)
                if merged is None:
                    return None
                payload["labels"] = merged
            if not payload:
                return None
            return self.client.update_issue(issue_number, payload)
        except GitHubClientError as e:
            logger.error(f"GitHub update of issue #{issue_number} failed: {e}")
            return None
        except Exception as e:
            logger.error(f"Unexpected error updating GitHub issue #{issue_number}: {e}")
            return None

    def update_status(self, issue_number, state, labels):
        try:
            merged = self._merged_labels(issue_number, labels)
            if merged is None:
                return None
            return self.client.update_issue(issue_number, {"state": state, "labels": merged})
        except GitHubClientError as e:
            logger.error(f"GitHub status update of issue #{issue_number} failed: {e}")
            return None
        except Exception as e:
            logger.error(f"Unexpected error updating status of GitHub issue #{issue_number}: {e}")
            return None

    def close(self, issue_number, reason=None):
        payload: Dict[str, Any] = {"state": STATE_CLOSED}
        if reason:
            payload["state_reason"] = (
                CLOSE_REASON_COMPLETED if reason == CLOSE_REASON_COMPLETED else CLOSE_REASON_NOT_PLANNED
            )
        try:
            self.client.update_issue(issue_number, payload)
        except GitHubClientError as e:
            logger.error(f"GitHub close of issue #{issue_number} failed: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error closing GitHub issue #{issue_number}: {e}")
            return False
        logger.info(f"Closed GitHub issue #{issue_number}")
        return True

    def add_comment(self, issue_number, body):
        try:
            self.client.create_issue_comment(issue_number, body)
        except GitHubClientError as e:
            logger.error(f"GitHub comment on issue #{issue_number} failed: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error commenting on GitHub issue #{issue_number}: {e}")
            return False
        return True

    def fetch_status(self, issue_number):
        try:
            issue = self.client.get_issue(issue_number)
        except GitHubClientError as e:
            logger.error(f"GitHub fetch of issue #{issue_number} failed: {e}")
            return None
        except Exception as e:
            logger.error(f"Unexpected error fetching GitHub issue #{issue_number}: {e}")
            return None

        state = STATE_CLOSED if issue.get("state") == STATE_CLOSED else STATE_OPEN
        return IssueSnapshot(
            state=state,
            closed=state == STATE_CLOSED,
            labels=GitHubClient.label_names(issue),
            updated_at=parse_github_datetime(issue.get("updated_at")),
        )


def build_outbound_sync(settings: Settings) -> OutboundSyncPort:
    """Pick the outbound implementation from configuration."""
    if not settings.github_token:
        logger.warning("GITHUB_TOKEN not configured - GitHub sync disabled")
        return NoopOutboundSync("GITHUB_TOKEN not configured")
    if not settings.github_repo_owner or not settings.github_repo_name:
        logger.warning("GITHUB_REPO_OWNER or GITHUB_REPO_NAME not configured - GitHub sync disabled")
        return NoopOutboundSync("GitHub repository not configured")

    client = GitHubClient(
        settings.github_token,
        settings.github_repo_owner,
        settings.github_repo_name,
        base_url=settings.github_api_url,
        timeout=settings.github_timeout_seconds,
    )
    logger.info(
        f"GitHub sync enabled for {settings.github_repo_owner}/{settings.github_repo_name}"
    )
    return GitHubOutboundSync(client, preserve_foreign_labels=settings.github_preserve_foreign_labels)


_outbound_sync: Optional[OutboundSyncPort] = None


def get_outbound_sync() -> OutboundSyncPort:
    """Process-wide outbound port, built from settings on first use."""
    global _outbound_sync
    if _outbound_sync is None:
        from devsync.config import settings

        _outbound_sync = build_outbound_sync(settings)
    return _outbound_sync
