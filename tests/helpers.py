"""Shared test helpers: in-memory database and a recording outbound port."""

from datetime import datetime

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from devsync.config import Settings
from devsync.models import DevelopmentRequest
from devsync.models.base import init_db
from devsync.services.outbound import IssueLink, IssueSnapshot, OutboundSyncPort

FROZEN_NOW = datetime(2025, 6, 1, 12, 0, 0)


def make_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    return engine


def make_session_factory():
    return sessionmaker(autocommit=False, autoflush=False, bind=make_engine())


def make_session():
    return make_session_factory()()


def make_settings(**overrides):
    values = {
        "github_token": None,
        "github_webhook_secret": None,
        "reconcile_item_delay_seconds": 0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def add_request(db, **fields):
    values = {
        "title": "Export members as CSV",
        "description": "Admins need a CSV export of the member list.",
        "type": "feature",
        "priority": "medium",
        "requested_by": "admin@example.org",
        "requested_by_name": "Ada Admin",
        "status": "pending",
    }
    values.update(fields)
    request = DevelopmentRequest(**values)
    db.add(request)
    db.commit()
    db.refresh(request)
    return request


class FakeOutbound(OutboundSyncPort):
    """Records every call; results are configured per test."""

    enabled = True

    def __init__(self):
        self.calls = []
        self.next_link = IssueLink(number=42, url="https://github.com/o/r/issues/42")
        self.snapshot = IssueSnapshot(state="open", closed=False, labels=[])
        self.issue_response = {"state": "open"}
        self.close_result = True
        self.comment_result = True

    def create(self, request):
        self.calls.append(("create", request.id))
        return self.next_link

    def update_details(self, issue_number, *, title=None, body=None, labels=None, state=None):
        self.calls.append(
            ("update_details", issue_number, {"title": title, "body": body, "labels": labels, "state": state})
        )
        if self.issue_response is None:
            return None
        response = dict(self.issue_response)
        if state:
            response["state"] = state
        return response

    def update_status(self, issue_number, state, labels):
        self.calls.append(("update_status", issue_number, state, list(labels)))
        if self.issue_response is None:
            return None
        response = dict(self.issue_response)
        response["state"] = state
        return response

    def close(self, issue_number, reason=None):
        self.calls.append(("close", issue_number, reason))
        if isinstance(self.close_result, Exception):
            raise self.close_result
        return self.close_result

    def add_comment(self, issue_number, body):
        self.calls.append(("add_comment", issue_number, body))
        return self.comment_result

    def fetch_status(self, issue_number):
        self.calls.append(("fetch_status", issue_number))
        return self.snapshot

    def names(self):
        return [call[0] for call in self.calls]
