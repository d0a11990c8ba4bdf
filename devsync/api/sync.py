"""Sync management endpoints"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional
from pydantic import BaseModel
from datetime import datetime

from devsync.config import settings
from devsync.models.base import get_db
from devsync.models import SyncLog
from devsync.scheduler import scheduler
from devsync.services.outbound import OutboundSyncPort, get_outbound_sync

router = APIRouter(prefix="/api/sync", tags=["sync"])


class SyncLogResponse(BaseModel):
    id: int
    request_id: Optional[str] = None
    issue_number: Optional[int] = None
    status: str
    direction: Optional[str] = None
    message: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


@router.post("/reconcile")
def trigger_reconcile():
    """Run one reconciliation pass now"""
    result = scheduler.run_once()
    if result is None:
        raise HTTPException(status_code=409, detail="A reconciliation pass is already running")
    return result


@router.get("/status")
def sync_status(outbound: OutboundSyncPort = Depends(get_outbound_sync)):
    """GitHub integration and scheduler state"""
    return {
        "github_enabled": outbound.enabled,
        "repository": f"{settings.github_repo_owner}/{settings.github_repo_name}",
        "webhook_signature_checked": bool(settings.github_webhook_secret),
        "scheduler": scheduler.job_info(),
    }


@router.get("/logs", response_model=List[SyncLogResponse])
def list_sync_logs(
    limit: int = 100,
    request_id: str = None,
    db: Session = Depends(get_db)
):
    """List sync logs"""
    query = db.query(SyncLog).order_by(SyncLog.created_at.desc())
    if request_id:
        query = query.filter(SyncLog.request_id == request_id)
    logs = query.limit(limit).all()
    return logs
