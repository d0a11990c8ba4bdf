"""GitHub webhook ingestion"""

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from devsync.config import Settings, settings as default_settings
from devsync.models import DevelopmentRequest
from devsync.models.base import utcnow
from devsync.models.sync_log import SyncDirection, SyncStatus, record_sync
from devsync.services.github_client import parse_github_datetime
from devsync.services.status_translator import STATE_CLOSED, STATE_OPEN, to_local_status

logger = logging.getLogger(__name__)

ISSUES_EVENT = "issues"
HANDLED_ACTIONS = frozenset({"opened", "edited", "closed", "reopened"})
SIGNATURE_PREFIX = "sha256="


class SignatureInvalid(Exception):
    """Webhook signature missing or not matching the shared secret."""


class PayloadMalformed(Exception):
    """Webhook body is not a usable issues payload."""


@dataclass(frozen=True)
class WebhookEvent:
    issue_number: int
    issue_url: str
    state: str
    labels: Tuple[str, ...] = ()
    title: Optional[str] = None
    updated_at: Optional[datetime] = None


def compute_signature(secret: str, body: bytes) -> str:
    """``sha256=<hex>`` HMAC of the raw request body."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: str, body: bytes, signature_header: Optional[str]) -> bool:
    if not signature_header:
        return False
    expected = compute_signature(secret, body).encode("ascii")
    # Headers may carry any latin-1 text; compare bytes so odd input is a mismatch.
    received = signature_header.strip().encode("utf-8", "replace")
    return hmac.compare_digest(expected, received)


def parse_issue_event(payload: Any) -> WebhookEvent:
    """Build a WebhookEvent from a decoded ``issues`` payload."""
    issue = payload.get("issue") if isinstance(payload, dict) else None
    if not isinstance(issue, dict):
        raise PayloadMalformed("Payload has no issue object")

    try:
        number = int(issue["number"])
    except (KeyError, TypeError, ValueError):
        raise PayloadMalformed("Issue number missing or invalid")

    raw_labels = issue.get("labels") or []
    if not isinstance(raw_labels, list):
        raise PayloadMalformed("Issue labels must be a list")

    labels = []
    for label in raw_labels:
        name = label.get("name") if isinstance(label, dict) else None
        if name:
            labels.append(str(name))

    return WebhookEvent(
        issue_number=number,
        issue_url=issue.get("html_url") or "",
        state=STATE_CLOSED if issue.get("state") == STATE_CLOSED else STATE_OPEN,
        labels=tuple(labels),
        title=issue.get("title"),
        updated_at=parse_github_datetime(issue.get("updated_at")),
    )


def _ignored(message: str) -> Dict[str, Any]:
    return {"success": True, "ignored": True, "message": message}


class WebhookHandler:
    """Verifies, filters and applies GitHub ``issues`` deliveries"""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or default_settings

    @staticmethod
    def _utcnow() -> datetime:
        return utcnow()

    def verify(self, body: bytes, signature_header: Optional[str]) -> None:
        """Raise SignatureInvalid unless the delivery is authentic.

        Without a configured secret verification is skipped, unless
        ``webhook_require_signature`` is set.
        """
        secret = self.settings.github_webhook_secret
        if not secret:
            if self.settings.webhook_require_signature:
                raise SignatureInvalid("Webhook secret not configured")
            return
        if not signature_header:
            raise SignatureInvalid("Missing GitHub signature")
        if not verify_signature(secret, body, signature_header):
            raise SignatureInvalid("Invalid GitHub signature")

    def handle(self, event_name: Optional[str], body: bytes, signature_header: Optional[str]) -> Dict[str, Any]:
        """Process one delivery end to end."""
        self.verify(body, signature_header)

        if (event_name or "").strip().lower() != ISSUES_EVENT:
            return _ignored(f"Event '{event_name}' not handled")

        try:
            payload = json.loads(body.decode("utf-8") or "null")
        except (UnicodeDecodeError, ValueError):
            raise PayloadMalformed("Body is not valid JSON")

        event = parse_issue_event(payload)

        action = payload.get("action")
        if action not in HANDLED_ACTIONS:
            return _ignored(f"Action '{action}' not handled")

        return self.apply_event(event)

    def _find_request(self, issue_number: int) -> Optional[DevelopmentRequest]:
        return (
            self.db.query(DevelopmentRequest)
            .filter(DevelopmentRequest.github_issue_number == issue_number)
            .first()
        )

    def apply_event(self, event: WebhookEvent) -> Dict[str, Any]:
        """Write the state carried by ``event`` onto its linked request.

        Pure function of the payload: redelivering the same event leaves the
        same record state.
        """
        request = self._find_request(event.issue_number)
        if request is None:
            # Issues outside this tracker's scope fire webhooks too.
            logger.debug(f"No development request linked to issue #{event.issue_number}")
            return _ignored("No development request linked to this issue")

        if (
            event.updated_at is not None
            and request.github_updated_at is not None
            and event.updated_at < request.github_updated_at
        ):
            logger.info(
                f"Ignoring stale webhook for issue #{event.issue_number} "
                f"({event.updated_at} < {request.github_updated_at})"
            )
            return _ignored("Stale delivery")

        if request.sync_pending:
            logger.info(
                f"Request {request.id} has a pending '{request.sync_pending}' push; "
                f"webhook for issue #{event.issue_number} not applied"
            )
            return _ignored("Local changes pending push")

        status = to_local_status(event.state, event.labels)
        previous_status = request.status
        changed = (
            request.github_state != event.state
            or request.status != status
            or bool(event.issue_url and event.issue_url != request.github_issue_url)
            or bool(event.title and event.title != request.title)
        )

        request.github_state = event.state
        request.status = status
        if event.issue_url:
            request.github_issue_url = event.issue_url
        if event.updated_at is not None:
            request.github_updated_at = event.updated_at
        request.last_synced_at = self._utcnow()
        if event.title and event.title != request.title:
            request.title = event.title

        try:
            if changed:
                record_sync(
                    self.db,
                    SyncStatus.SUCCESS,
                    SyncDirection.WEBHOOK,
                    message=f"state={event.state} status={previous_status}->{status}",
                    request_id=request.id,
                    issue_number=event.issue_number,
                )
            self.db.commit()
            self.db.refresh(request)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to apply webhook for issue #{event.issue_number}: {e}")
            return {"success": False, "message": "Failed to persist webhook update"}

        logger.info(
            f"Development request {request.id} synced from GitHub webhook "
            f"(issue #{event.issue_number}, state={event.state}, status={status})"
        )
        return {"success": True, "data": request}
