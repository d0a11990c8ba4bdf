"""GitHub REST API client wrapper"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)


def parse_github_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse GitHub ISO8601 timestamps into UTC tz-naive datetimes."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


class GitHubClientError(Exception):
    """Raised when GitHub is unreachable or answers with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class GitHubClient:
    """Wrapper for GitHub issue operations on a single repository"""

    USER_AGENT = "devsync/1.0"

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        *,
        base_url: str = "https://api.github.com",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        """Initialize GitHub client"""
        self.owner = owner
        self.repo = repo
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "User-Agent": self.USER_AGENT,
            }
        )

    @property
    def repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(data, dict):
            message = data.get("message") or ""
            errors = data.get("errors") or []
            details = "; ".join(
                str(e.get("message") or e.get("code") or e) if isinstance(e, dict) else str(e)
                for e in errors
            )
            return f"{message} ({details})" if details else message
        return str(data)[:200]

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise GitHubClientError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise GitHubClientError(
                f"{method} {path} returned {response.status_code}: {self._error_message(response)}",
                status_code=response.status_code,
            )
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise GitHubClientError(f"{method} {path} returned invalid JSON") from e

    def get_repository(self) -> Dict[str, Any]:
        """Get the configured repository (used as an access check)"""
        try:
            return self._request("GET", self.repo_path)
        except GitHubClientError as e:
            logger.error(f"Failed to access repository {self.owner}/{self.repo}: {e}")
            raise

    def get_issue(self, issue_number: int) -> Dict[str, Any]:
        """Get a specific issue by number"""
        try:
            return self._request("GET", f"{self.repo_path}/issues/{int(issue_number)}")
        except GitHubClientError as e:
            logger.error(f"Failed to get issue #{issue_number}: {e}")
            raise

    def create_issue(self, issue_data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new issue"""
        try:
            issue = self._request("POST", f"{self.repo_path}/issues", json=issue_data)
            logger.info(f"Created issue #{issue.get('number')} in {self.owner}/{self.repo}")
            return issue
        except GitHubClientError as e:
            logger.error(f"Failed to create issue in {self.owner}/{self.repo}: {e}")
            raise

    def update_issue(self, issue_number: int, issue_data: Dict[str, Any]) -> Dict[str, Any]:
        """Patch an existing issue; only the given fields change"""
        try:
            issue = self._request(
                "PATCH", f"{self.repo_path}/issues/{int(issue_number)}", json=issue_data
            )
            logger.info(f"Updated issue #{issue_number} in {self.owner}/{self.repo}")
            return issue
        except GitHubClientError as e:
            logger.error(f"Failed to update issue #{issue_number}: {e}")
            raise

    def create_issue_comment(self, issue_number: int, body: str) -> Dict[str, Any]:
        """Create a comment on an issue"""
        try:
            comment = self._request(
                "POST",
                f"{self.repo_path}/issues/{int(issue_number)}/comments",
                json={"body": body},
            )
            logger.info(f"Created comment on issue #{issue_number}")
            return comment
        except GitHubClientError as e:
            logger.error(f"Failed to comment on issue #{issue_number}: {e}")
            raise

    @staticmethod
    def label_names(issue: Dict[str, Any]) -> List[str]:
        """Extract label names from an issue payload (labels may be dicts or strings)."""
        names = []
        for label in issue.get("labels") or []:
            name = label.get("name") if isinstance(label, dict) else label
            if name:
                names.append(str(name))
        return names
