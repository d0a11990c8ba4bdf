"""Sync log model"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Enum
import enum
from devsync.models.base import Base, utcnow


class SyncStatus(str, enum.Enum):
    """Sync status enumeration"""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class SyncDirection(str, enum.Enum):
    """Which channel produced the sync"""
    OUTBOUND = "outbound"
    WEBHOOK = "webhook"
    POLL = "poll"


class SyncLog(Base):
    """Log of sync operations"""

    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Request information (no FK: logs outlive deleted requests)
    request_id = Column(String, nullable=True, index=True)
    issue_number = Column(Integer, nullable=True)

    # Sync details
    status = Column(Enum(SyncStatus), nullable=False)
    direction = Column(Enum(SyncDirection), nullable=True)
    message = Column(Text, nullable=True)

    # Timestamp
    created_at = Column(DateTime, default=utcnow, index=True)

    def __repr__(self):
        return f"<SyncLog(status={self.status}, direction={self.direction})>"


def record_sync(
    db,
    status: SyncStatus,
    direction: SyncDirection,
    message: str = "",
    request_id: str = None,
    issue_number: int = None,
) -> SyncLog:
    """Add a sync log row to the session (the caller commits)."""
    log = SyncLog(
        request_id=request_id,
        issue_number=issue_number,
        status=status,
        direction=direction,
        message=message,
    )
    db.add(log)
    return log
