"""Services"""

from devsync.services.github_client import GitHubClient
from devsync.services.outbound import OutboundSyncPort, build_outbound_sync
from devsync.services.reconciler import Reconciler
from devsync.services.request_service import DevelopmentRequestService
from devsync.services.webhook_handler import WebhookHandler

__all__ = [
    "GitHubClient",
    "OutboundSyncPort",
    "build_outbound_sync",
    "Reconciler",
    "DevelopmentRequestService",
    "WebhookHandler",
]
