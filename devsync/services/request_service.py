"""Development request lifecycle.

Local writes always land first. Anything owed to GitHub is recorded as an
outbox marker on the row and pushed outside the request/response cycle
(see :func:`run_outbound_push`), so GitHub trouble never fails a local edit.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from devsync.config import Settings, settings as default_settings
from devsync.models import DevelopmentRequest
from devsync.models.development_request import (
    PendingPush,
    RequestPriority,
    RequestStatus,
    RequestType,
)
from devsync.services.issue_body import build_status_comment
from devsync.services.outbound import (
    CLOSE_REASON_NOT_PLANNED,
    OutboundSyncPort,
    get_outbound_sync,
)
from devsync.services.outbox import OutboxPusher
from devsync.services.reconciler import (
    RESULT_ERROR,
    RESULT_UPDATED,
    Reconciler,
)
from devsync.services.status_translator import normalize_status

logger = logging.getLogger(__name__)

SUPER_ADMIN_ROLE = "super_admin"

# Fields whose change must be mirrored on the GitHub issue.
SYNCED_FIELDS = ("title", "description", "type", "priority", "status")
# Fields rendered into the issue body.
BODY_FIELDS = frozenset({"description", "type", "priority"})
EDITABLE_FIELDS = SYNCED_FIELDS + ("admin_comment",)

_TYPES = {t.value for t in RequestType}
_PRIORITIES = {p.value for p in RequestPriority}


class RequestNotFound(LookupError):
    """No development request with the given id."""


class DevelopmentRequestService:
    """Create/update/status-change/delete of development requests"""

    def __init__(
        self,
        db: Session,
        outbound: Optional[OutboundSyncPort] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.outbound = outbound or get_outbound_sync()
        self.settings = settings or default_settings

    @staticmethod
    def _check_type(value: str) -> str:
        if value not in _TYPES:
            raise ValueError(f"Type must be one of {sorted(_TYPES)}")
        return value

    @staticmethod
    def _check_priority(value: str) -> str:
        if value not in _PRIORITIES:
            raise ValueError(f"Priority must be one of {sorted(_PRIORITIES)}")
        return value

    def _pusher(self) -> OutboxPusher:
        return OutboxPusher(self.db, self.outbound)

    @staticmethod
    def _queue_push(request: DevelopmentRequest, push: PendingPush, rebuild_body: bool = False) -> None:
        # Unlinked rows only owe a create; re-marking it flags a create in flight as stale.
        if request.is_linked or request.sync_pending == PendingPush.CREATE.value:
            request.mark_pending(push, rebuild_body=rebuild_body)

    def list_requests(self, type: Optional[str] = None, status: Optional[str] = None) -> List[DevelopmentRequest]:
        """List requests, newest first, optionally filtered by type and status"""
        query = self.db.query(DevelopmentRequest)
        if type:
            query = query.filter(DevelopmentRequest.type == self._check_type(type))
        if status:
            query = query.filter(DevelopmentRequest.status == normalize_status(status))
        return query.order_by(DevelopmentRequest.created_at.desc()).all()

    def get_request(self, request_id: str) -> DevelopmentRequest:
        request = self.db.query(DevelopmentRequest).filter(DevelopmentRequest.id == request_id).first()
        if request is None:
            raise RequestNotFound(f"Development request {request_id} not found")
        return request

    def create_request(self, data: Dict[str, Any], requested_by: str, requested_by_name: Optional[str] = None) -> DevelopmentRequest:
        """Store a new pending, unlinked request and queue its GitHub issue creation"""
        request = DevelopmentRequest(
            title=data["title"],
            description=data["description"],
            type=self._check_type(data["type"]),
            priority=self._check_priority(data.get("priority") or RequestPriority.MEDIUM.value),
            requested_by=requested_by,
            requested_by_name=(requested_by_name or "").strip() or requested_by,
            status=RequestStatus.PENDING.value,
        )
        request.mark_pending(PendingPush.CREATE)
        self.db.add(request)
        self.db.commit()
        self.db.refresh(request)
        logger.info(f"Development request {request.id} created by {requested_by}")
        return request

    def push_pending(self, request_id: str) -> bool:
        """Perform the GitHub write owed by a request (outbox drain for one row)"""
        try:
            request = self.get_request(request_id)
        except RequestNotFound:
            logger.info(f"Request {request_id} deleted before its GitHub push ran")
            return False
        return self._pusher().push(request)

    def update_request(self, request_id: str, changes: Dict[str, Any]) -> DevelopmentRequest:
        """Persist field changes; queue a GitHub update if a mirrored field changed"""
        request = self.get_request(request_id)

        changed = set()
        for key, value in changes.items():
            if key not in EDITABLE_FIELDS or value is None:
                continue
            if key == "type":
                value = self._check_type(value)
            elif key == "priority":
                value = self._check_priority(value)
            elif key == "status":
                value = normalize_status(value)
            if getattr(request, key) != value:
                setattr(request, key, value)
                changed.add(key)

        synced_changes = changed.intersection(SYNCED_FIELDS)
        if synced_changes == {"status"}:
            self._queue_push(request, PendingPush.STATUS)
        elif synced_changes:
            self._queue_push(request, PendingPush.DETAILS, rebuild_body=bool(synced_changes & BODY_FIELDS))

        self.db.commit()
        self.db.refresh(request)
        if changed:
            logger.info(f"Development request {request.id} updated: {sorted(changed)}")
        return request

    def update_status(
        self,
        request_id: str,
        status: str,
        changed_by: str,
        admin_comment: Optional[str] = None,
        role: Optional[str] = None,
    ) -> DevelopmentRequest:
        """Privileged status change with audit fields"""
        if self.settings.is_production and role != SUPER_ADMIN_ROLE:
            raise PermissionError("Only super administrators can change development request statuses")

        request = self.get_request(request_id)
        request.status = normalize_status(status)
        request.admin_comment = admin_comment
        request.last_status_change_by = changed_by
        self._queue_push(request, PendingPush.STATUS)

        self.db.commit()
        self.db.refresh(request)
        logger.info(
            f"Development request {request.id} status set to {request.status} by {changed_by}"
        )
        return request

    def post_status_comment(self, request_id: str) -> bool:
        """Mirror the last admin status comment onto the GitHub issue"""
        if not self.settings.github_comment_on_status_change:
            return False
        try:
            request = self.get_request(request_id)
        except RequestNotFound:
            return False
        if not request.is_linked or not request.admin_comment:
            return False
        body = build_status_comment(
            request.status, request.last_status_change_by or "an administrator", request.admin_comment
        )
        return self.outbound.add_comment(request.github_issue_number, body)

    def delete_request(self, request_id: str) -> Dict[str, Any]:
        """Close the linked issue (best-effort), then delete the local row"""
        request = self.get_request(request_id)
        if request.is_linked:
            try:
                closed = self.outbound.close(request.github_issue_number, reason=CLOSE_REASON_NOT_PLANNED)
            except Exception as e:
                logger.error(f"GitHub close of issue #{request.github_issue_number} raised: {e}")
                closed = False
            if not closed:
                logger.warning(
                    f"Could not close GitHub issue #{request.github_issue_number} "
                    f"for deleted request {request.id}"
                )

        self.db.delete(request)
        self.db.commit()
        logger.info(f"Development request {request_id} deleted")
        return {"success": True, "message": "Development request deleted"}

    def resync_request(self, request_id: str) -> Dict[str, Any]:
        """Pull the GitHub state of one request right now"""
        request = self.get_request(request_id)

        if not request.is_linked:
            if self.settings.is_production:
                raise ValueError("No GitHub issue linked to this development request")
            logger.warning(f"GitHub sync skipped - no linked issue for request {request.id}")
            return {
                "success": True,
                "message": "GitHub sync skipped (no linked issue)",
                "data": request,
            }

        result = Reconciler(self.db, self.outbound, self.settings).reconcile_request(request)
        if result == RESULT_ERROR:
            if self.settings.is_production:
                raise ValueError("Could not fetch the issue status from GitHub")
            logger.warning(f"GitHub sync skipped for request {request.id} (GitHub unavailable)")
            return {
                "success": True,
                "message": "GitHub sync skipped (GitHub unavailable or not configured)",
                "data": request,
            }

        self.db.refresh(request)
        logger.info(f"GitHub sync successful for request {request.id} (issue #{request.github_issue_number})")
        return {
            "success": True,
            "message": "GitHub sync successful" if result == RESULT_UPDATED else "Already up to date",
            "data": request,
        }

    def link_request(self, request_id: str) -> Dict[str, Any]:
        """Manually create and link the GitHub issue of an unlinked request"""
        request = self.get_request(request_id)
        if request.is_linked:
            return {"success": True, "message": "Already linked", "data": request}

        request.mark_pending(PendingPush.CREATE)
        self.db.commit()
        linked = self._pusher().push(request)
        self.db.refresh(request)
        if not linked:
            return {"success": False, "message": "GitHub issue creation failed; request stays unlinked", "data": request}
        return {"success": True, "message": f"Linked to issue #{request.github_issue_number}", "data": request}


def run_outbound_push(request_id: str, post_status_comment: bool = False) -> None:
    """Background task: drain the outbox of one request with its own session.

    Never raises; failures stay recorded on the row for the next
    reconciliation pass.
    """
    from devsync.models.base import SessionLocal

    db = SessionLocal()
    try:
        service = DevelopmentRequestService(db)
        service.push_pending(request_id)
        if post_status_comment:
            service.post_status_comment(request_id)
    except Exception as e:
        logger.error(f"Background GitHub push for request {request_id} failed: {e}")
    finally:
        db.close()
