"""Periodic drift correction between development requests and GitHub issues"""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from devsync.config import Settings, settings as default_settings
from devsync.models import DevelopmentRequest
from devsync.models.base import utcnow
from devsync.models.sync_log import SyncDirection, SyncStatus, record_sync
from devsync.services.outbound import IssueSnapshot, OutboundSyncPort
from devsync.services.outbox import OutboxPusher
from devsync.services.status_translator import to_local_status

logger = logging.getLogger(__name__)

RESULT_UPDATED = "updated"
RESULT_UNCHANGED = "unchanged"
RESULT_ERROR = "error"
RESULT_SKIPPED = "skipped"


class Reconciler:
    """Pulls GitHub snapshots for linked requests and fixes local drift"""

    def __init__(
        self,
        db: Session,
        outbound: OutboundSyncPort,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.db = db
        self.outbound = outbound
        self.settings = settings or default_settings
        self.sleep = sleep
        self.pusher = OutboxPusher(db, outbound)

    @staticmethod
    def _utcnow() -> datetime:
        return utcnow()

    def apply_snapshot(self, request: DevelopmentRequest, snapshot: IssueSnapshot) -> bool:
        """Write the snapshot onto ``request`` if it differs. Returns True on write."""
        status = to_local_status(snapshot.state, snapshot.labels)
        if request.github_state == snapshot.state and request.status == status:
            return False

        previous = request.status
        request.github_state = snapshot.state
        request.status = status
        request.last_synced_at = self._utcnow()
        if snapshot.updated_at is not None:
            request.github_updated_at = snapshot.updated_at
        record_sync(
            self.db,
            SyncStatus.SUCCESS,
            SyncDirection.POLL,
            message=f"state={snapshot.state} status={previous}->{status}",
            request_id=request.id,
            issue_number=request.github_issue_number,
        )
        self.db.commit()
        logger.info(
            f"Request {request.id} reconciled from issue #{request.github_issue_number}: "
            f"{previous} -> {status}"
        )
        return True

    def reconcile_request(self, request: DevelopmentRequest) -> str:
        """Reconcile one linked request; returns one of the RESULT_* values."""
        if not request.is_linked:
            return RESULT_SKIPPED

        if request.sync_pending and not self.pusher.push(request):
            # Pulling now would revert local edits GitHub has not seen yet.
            logger.warning(
                f"Request {request.id} still has a pending '{request.sync_pending}' push; pull skipped"
            )
            return RESULT_ERROR

        snapshot = self.outbound.fetch_status(request.github_issue_number)
        if snapshot is None:
            logger.error(
                f"Could not fetch GitHub status for request {request.id} "
                f"(issue #{request.github_issue_number})"
            )
            return RESULT_ERROR

        try:
            changed = self.apply_snapshot(request, snapshot)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to store reconciled status for request {request.id}: {e}")
            return RESULT_ERROR
        return RESULT_UPDATED if changed else RESULT_UNCHANGED

    def reconcile_all(self) -> Dict[str, Any]:
        """One reconciliation pass over every linked request.

        Per-item failures are counted, never raised.
        """
        stats = {
            "checked": 0,
            "updated": 0,
            "unchanged": 0,
            "pushed": 0,
            "errors": 0,
            "skipped": 0,
        }

        if not self.outbound.enabled:
            logger.info("GitHub sync disabled; reconciliation skipped")
            return {"status": "skipped", "message": "GitHub sync disabled", "stats": stats}

        linked = (
            self.db.query(DevelopmentRequest)
            .filter(DevelopmentRequest.github_issue_number.isnot(None))
            .order_by(DevelopmentRequest.created_at)
            .all()
        )
        if not linked:
            logger.info("No development request linked to GitHub; nothing to reconcile")
            return {"status": "success", "stats": stats}

        logger.info(f"Reconciling {len(linked)} development request(s) with GitHub")
        delay = max(0.0, float(self.settings.reconcile_item_delay_seconds or 0))

        for index, request in enumerate(linked):
            if index and delay:
                self.sleep(delay)
            stats["checked"] += 1
            had_pending = bool(request.sync_pending)
            try:
                result = self.reconcile_request(request)
            except Exception as e:
                self.db.rollback()
                logger.error(f"Reconciliation of request {request.id} failed: {e}")
                result = RESULT_ERROR

            if had_pending and not request.sync_pending:
                stats["pushed"] += 1
            if result == RESULT_UPDATED:
                stats["updated"] += 1
            elif result == RESULT_UNCHANGED:
                stats["unchanged"] += 1
            elif result == RESULT_SKIPPED:
                stats["skipped"] += 1
            else:
                stats["errors"] += 1

        status = SyncStatus.SUCCESS if stats["errors"] == 0 else SyncStatus.FAILED
        try:
            record_sync(self.db, status, SyncDirection.POLL, message=f"Reconciliation completed: {stats}")
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to log reconciliation summary: {e}")

        logger.info(
            f"Reconciliation completed: {stats['updated']} updated, "
            f"{stats['unchanged']} unchanged, {stats['errors']} error(s)"
        )
        return {"status": "success", "stats": stats}
