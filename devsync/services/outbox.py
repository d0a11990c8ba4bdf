"""Draining of the per-row outbox marker (``DevelopmentRequest.sync_pending``).

Local writes only record which GitHub write is owed; this module performs it.
It runs from a background task right after the local write, from the
reconciliation pass and from the manual link action, so a failed push is
retried instead of lost.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from devsync.models import DevelopmentRequest
from devsync.models.base import utcnow
from devsync.models.development_request import PendingPush
from devsync.models.sync_log import SyncDirection, SyncStatus, record_sync
from devsync.services.github_client import parse_github_datetime
from devsync.services.issue_body import build_issue_body
from devsync.services.outbound import OutboundSyncPort
from devsync.services.status_translator import build_label_set, to_external_state

logger = logging.getLogger(__name__)


class OutboxPusher:
    """Performs the GitHub write owed by a request"""

    def __init__(self, db: Session, outbound: OutboundSyncPort):
        self.db = db
        self.outbound = outbound

    @staticmethod
    def _utcnow() -> datetime:
        return utcnow()

    def _labels(self, request: DevelopmentRequest):
        return sorted(build_label_set(request.status, request.type, request.priority))

    def _push_create(self, request: DevelopmentRequest) -> bool:
        if request.is_linked:
            # Link already stored by an earlier run.
            return True
        link = self.outbound.create(request)
        if link is None:
            return False
        request.link_issue(link.number, link.url)
        request.github_state = link.state
        logger.info(
            f"GitHub issue created and linked: request {request.id} -> #{link.number} ({link.url})"
        )
        return True

    def _apply_issue_response(self, request: DevelopmentRequest, issue: Optional[Dict[str, Any]]) -> bool:
        if issue is None:
            return False
        state = issue.get("state") if isinstance(issue, dict) else None
        if state:
            request.github_state = state
        updated_at = parse_github_datetime(issue.get("updated_at")) if isinstance(issue, dict) else None
        if updated_at is not None:
            request.github_updated_at = updated_at
        return True

    def _push_details(self, request: DevelopmentRequest) -> bool:
        issue = self.outbound.update_details(
            request.github_issue_number,
            title=request.title,
            body=build_issue_body(request, updated=True) if request.body_pending else None,
            labels=self._labels(request),
            state=to_external_state(request.status),
        )
        return self._apply_issue_response(request, issue)

    def _push_status(self, request: DevelopmentRequest) -> bool:
        issue = self.outbound.update_status(
            request.github_issue_number,
            to_external_state(request.status),
            self._labels(request),
        )
        return self._apply_issue_response(request, issue)

    def _clear_if_unchanged(self, request: DevelopmentRequest, marker: str, version: int) -> bool:
        """Clear the marker unless a newer local write re-marked the row during the push."""
        rows = self.db.query(DevelopmentRequest).filter(DevelopmentRequest.id == request.id)
        matched = rows.filter(DevelopmentRequest.sync_version == version).update(
            {
                DevelopmentRequest.sync_pending: None,
                DevelopmentRequest.body_pending: False,
                DevelopmentRequest.sync_attempts: 0,
                DevelopmentRequest.last_sync_error: None,
            },
            synchronize_session=False,
        )
        if matched:
            return True
        if marker == PendingPush.CREATE.value:
            # Now linked: a details push carries whatever changed meanwhile.
            rows.filter(DevelopmentRequest.sync_pending == PendingPush.CREATE.value).update(
                {
                    DevelopmentRequest.sync_pending: PendingPush.DETAILS.value,
                    DevelopmentRequest.body_pending: True,
                },
                synchronize_session=False,
            )
        return False

    def push(self, request: DevelopmentRequest, retry_newer: bool = True) -> bool:
        """Drain ``request``'s outbox marker. True when nothing is owed anymore."""
        marker = request.sync_pending
        version = request.sync_version or 0
        if not marker:
            return True

        if not self.outbound.enabled:
            logger.info(f"GitHub sync disabled; '{marker}' push for request {request.id} kept pending")
            return False

        if marker != PendingPush.CREATE.value and not request.is_linked:
            # Nothing to update on GitHub; the create path owns unlinked rows.
            logger.warning(f"Dropping '{marker}' push for unlinked request {request.id}")
            request.clear_pending()
            self.db.commit()
            return True

        try:
            if marker == PendingPush.CREATE.value:
                ok = self._push_create(request)
            elif marker == PendingPush.DETAILS.value:
                ok = self._push_details(request)
            elif marker == PendingPush.STATUS.value:
                ok = self._push_status(request)
            else:
                logger.warning(f"Unknown outbox marker '{marker}' on request {request.id}; clearing")
                ok = True
        except Exception as e:
            logger.error(f"Outbound '{marker}' push for request {request.id} failed: {e}")
            ok = False

        cleared = False
        try:
            if ok:
                request.last_synced_at = self._utcnow()
                cleared = self._clear_if_unchanged(request, marker, version)
                record_sync(
                    self.db,
                    SyncStatus.SUCCESS,
                    SyncDirection.OUTBOUND,
                    message=f"{marker} pushed" if cleared else f"{marker} pushed; newer local change still pending",
                    request_id=request.id,
                    issue_number=request.github_issue_number,
                )
            else:
                request.sync_attempts = (request.sync_attempts or 0) + 1
                request.last_sync_error = f"GitHub {marker} push failed (attempt {request.sync_attempts})"
                record_sync(
                    self.db,
                    SyncStatus.FAILED,
                    SyncDirection.OUTBOUND,
                    message=request.last_sync_error,
                    request_id=request.id,
                    issue_number=request.github_issue_number,
                )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to persist outbox result for request {request.id}: {e}")
            return False

        if not ok:
            logger.warning(f"GitHub '{marker}' push for request {request.id} failed; will retry")
            return False
        if not cleared:
            logger.info(f"Request {request.id} changed during its '{marker}' push; pushing the newer state")
            if not retry_newer:
                return False
            self.db.refresh(request)
            return self.push(request, retry_newer=False)
        return True
