"""API routes"""

from devsync.api import development_requests, github, sync

__all__ = ["development_requests", "github", "sync"]
