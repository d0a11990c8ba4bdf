"""Database models"""

from devsync.models.base import Base
from devsync.models.development_request import DevelopmentRequest
from devsync.models.sync_log import SyncLog

__all__ = [
    "Base",
    "DevelopmentRequest",
    "SyncLog",
]
