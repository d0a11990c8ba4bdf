"""Development request endpoints"""

from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from devsync.config import settings
from devsync.models.base import get_db
from devsync.services.outbound import OutboundSyncPort, get_outbound_sync
from devsync.services.request_service import (
    SUPER_ADMIN_ROLE,
    DevelopmentRequestService,
    RequestNotFound,
    run_outbound_push,
)

router = APIRouter(prefix="/api/development-requests", tags=["development-requests"])

StatusValue = Literal["pending", "in_progress", "done", "cancelled", "open", "closed"]


class DevelopmentRequestCreate(BaseModel):
    title: str = Field(min_length=5, max_length=200)
    description: str = Field(min_length=20, max_length=3000)
    type: Literal["bug", "feature"]
    priority: Literal["low", "medium", "high", "critical"] = "medium"
    # Ignored when Basic auth is enabled: the authenticated user is the requester.
    requested_by: Optional[str] = Field(default=None, max_length=320)
    requested_by_name: Optional[str] = Field(default=None, min_length=2, max_length=100)


class DevelopmentRequestUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=5, max_length=200)
    description: Optional[str] = Field(default=None, min_length=20, max_length=3000)
    type: Optional[Literal["bug", "feature"]] = None
    priority: Optional[Literal["low", "medium", "high", "critical"]] = None
    status: Optional[StatusValue] = None
    admin_comment: Optional[str] = Field(default=None, max_length=1000)


class StatusUpdate(BaseModel):
    status: StatusValue
    admin_comment: Optional[str] = Field(default=None, max_length=1000)
    # Only used when Basic auth is disabled.
    changed_by: Optional[str] = None


class DevelopmentRequestResponse(BaseModel):
    id: str
    title: str
    description: str
    type: str
    priority: str
    status: str
    requested_by: str
    requested_by_name: str
    github_issue_number: Optional[int] = None
    github_issue_url: Optional[str] = None
    github_state: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    admin_comment: Optional[str] = None
    last_status_change_by: Optional[str] = None
    sync_pending: Optional[str] = None
    last_sync_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SyncResultResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    data: Optional[DevelopmentRequestResponse] = None


def _auth_user(request: Request) -> Optional[str]:
    return getattr(request.state, "auth_user", None)


def _actor(request: Request, explicit: Optional[str]) -> Optional[str]:
    """Authenticated user if any; the self-declared name only without auth."""
    return _auth_user(request) or (explicit or "").strip() or None


def _role(request: Request) -> Optional[str]:
    # Roles come from server-side identity only, never from the payload.
    if settings.is_super_admin(_auth_user(request)):
        return SUPER_ADMIN_ROLE
    return None


def _service(db: Session, outbound: OutboundSyncPort) -> DevelopmentRequestService:
    return DevelopmentRequestService(db, outbound)


@router.get("/", response_model=List[DevelopmentRequestResponse])
def list_development_requests(
    type: Optional[Literal["bug", "feature"]] = None,
    status: Optional[StatusValue] = None,
    db: Session = Depends(get_db),
    outbound: OutboundSyncPort = Depends(get_outbound_sync),
):
    """List development requests"""
    return _service(db, outbound).list_requests(type=type, status=status)


@router.post("/", response_model=DevelopmentRequestResponse, status_code=201)
def create_development_request(
    payload: DevelopmentRequestCreate,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    outbound: OutboundSyncPort = Depends(get_outbound_sync),
):
    """Create a development request; its GitHub issue is created in the background"""
    requested_by = _actor(request, payload.requested_by)
    if not requested_by:
        raise HTTPException(status_code=400, detail="requested_by is required")

    created = _service(db, outbound).create_request(
        payload.model_dump(), requested_by=requested_by, requested_by_name=payload.requested_by_name
    )
    background_tasks.add_task(run_outbound_push, created.id)
    return created


@router.get("/{request_id}", response_model=DevelopmentRequestResponse)
def get_development_request(
    request_id: str,
    db: Session = Depends(get_db),
    outbound: OutboundSyncPort = Depends(get_outbound_sync),
):
    """Get a specific development request"""
    try:
        return _service(db, outbound).get_request(request_id)
    except RequestNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.patch("/{request_id}", response_model=DevelopmentRequestResponse)
def update_development_request(
    request_id: str,
    payload: DevelopmentRequestUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    outbound: OutboundSyncPort = Depends(get_outbound_sync),
):
    """Update a development request"""
    try:
        updated = _service(db, outbound).update_request(
            request_id, payload.model_dump(exclude_unset=True)
        )
    except RequestNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if updated.sync_pending:
        background_tasks.add_task(run_outbound_push, updated.id)
    return updated


@router.patch("/{request_id}/status", response_model=DevelopmentRequestResponse)
def update_development_request_status(
    request_id: str,
    payload: StatusUpdate,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    outbound: OutboundSyncPort = Depends(get_outbound_sync),
):
    """Change the status of a development request (super admin)"""
    changed_by = _actor(request, payload.changed_by)
    if not changed_by:
        raise HTTPException(status_code=400, detail="changed_by is required")

    try:
        updated = _service(db, outbound).update_status(
            request_id,
            payload.status,
            changed_by=changed_by,
            admin_comment=payload.admin_comment,
            role=_role(request),
        )
    except RequestNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if updated.sync_pending:
        background_tasks.add_task(
            run_outbound_push, updated.id, post_status_comment=bool(payload.admin_comment)
        )
    return updated


@router.delete("/{request_id}")
def delete_development_request(
    request_id: str,
    db: Session = Depends(get_db),
    outbound: OutboundSyncPort = Depends(get_outbound_sync),
):
    """Delete a development request (its GitHub issue is closed as not planned)"""
    try:
        return _service(db, outbound).delete_request(request_id)
    except RequestNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{request_id}/sync", response_model=SyncResultResponse)
def sync_development_request(
    request_id: str,
    db: Session = Depends(get_db),
    outbound: OutboundSyncPort = Depends(get_outbound_sync),
):
    """Pull the current GitHub state of one request now"""
    try:
        return _service(db, outbound).resync_request(request_id)
    except RequestNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{request_id}/link", response_model=SyncResultResponse)
def link_development_request(
    request_id: str,
    db: Session = Depends(get_db),
    outbound: OutboundSyncPort = Depends(get_outbound_sync),
):
    """Create and link the GitHub issue of an unlinked request"""
    try:
        return _service(db, outbound).link_request(request_id)
    except RequestNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
