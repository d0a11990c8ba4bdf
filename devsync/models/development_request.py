"""Development request model"""

import enum
import uuid

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from devsync.models.base import Base, utcnow


class RequestType(str, enum.Enum):
    """Kind of development request"""
    BUG = "bug"
    FEATURE = "feature"


class RequestPriority(str, enum.Enum):
    """Priority of a development request"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RequestStatus(str, enum.Enum):
    """Local status domain"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    CANCELLED = "cancelled"


class PendingPush(str, enum.Enum):
    """Outbox marker: which outbound write is still owed to GitHub.

    Ordered by strength: a pending create covers everything, a details push
    also carries state and labels.
    """
    CREATE = "create"
    DETAILS = "details"
    STATUS = "status"


_PUSH_RANK = {
    PendingPush.CREATE.value: 3,
    PendingPush.DETAILS.value: 2,
    PendingPush.STATUS.value: 1,
}


def _new_id() -> str:
    return str(uuid.uuid4())


class DevelopmentRequest(Base):
    """Bug/feature request raised by staff, optionally linked to a GitHub issue"""

    __tablename__ = "development_requests"

    id = Column(String, primary_key=True, default=_new_id)

    # Authored locally
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    type = Column(String, nullable=False, index=True)
    priority = Column(String, nullable=False, default=RequestPriority.MEDIUM.value)
    requested_by = Column(String, nullable=False, index=True)
    requested_by_name = Column(String, nullable=False)

    status = Column(String, nullable=False, default=RequestStatus.PENDING.value, index=True)

    # GitHub link (number and url are always set together, see link_issue())
    github_issue_number = Column(Integer, nullable=True, unique=True, index=True)
    github_issue_url = Column(String, nullable=True)
    github_state = Column(String, nullable=True)  # "open" / "closed"
    github_updated_at = Column(DateTime, nullable=True)
    last_synced_at = Column(DateTime, nullable=True)

    # Audit fields, only set by explicit status changes
    admin_comment = Column(Text, nullable=True)
    last_status_change_by = Column(String, nullable=True)

    # Outbox
    sync_pending = Column(String, nullable=True, index=True)
    # Bumped on every mark_pending(); a push only clears the version it sent.
    sync_version = Column(Integer, nullable=False, default=0)
    # Description, type or priority changed: the issue body must be rebuilt.
    body_pending = Column(Boolean, nullable=False, default=False)
    sync_attempts = Column(Integer, nullable=False, default=0)
    last_sync_error = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def is_linked(self) -> bool:
        return self.github_issue_number is not None

    def link_issue(self, number: int, url: str) -> None:
        """Attach the GitHub issue. Number and url never travel alone."""
        if number is None or not url:
            raise ValueError("Issue number and url are both required to link a request")
        self.github_issue_number = int(number)
        self.github_issue_url = url

    def mark_pending(self, push: PendingPush, rebuild_body: bool = False) -> None:
        """Record an owed outbound write, keeping the stronger of two markers."""
        current = self.sync_pending
        if current is None or _PUSH_RANK[push.value] >= _PUSH_RANK.get(current, 0):
            self.sync_pending = push.value
        if rebuild_body:
            self.body_pending = True
        self.sync_version = (self.sync_version or 0) + 1

    def clear_pending(self) -> None:
        self.sync_pending = None
        self.body_pending = False
        self.sync_attempts = 0
        self.last_sync_error = None

    def __repr__(self):
        return f"<DevelopmentRequest(id='{self.id}', status='{self.status}', issue={self.github_issue_number})>"
