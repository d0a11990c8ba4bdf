import json
import logging
import unittest
from datetime import datetime
from unittest.mock import patch

from devsync.models import SyncLog
from devsync.models.development_request import PendingPush
from devsync.services.webhook_handler import (
    PayloadMalformed,
    SignatureInvalid,
    WebhookHandler,
    compute_signature,
    verify_signature,
)
from tests.helpers import FROZEN_NOW, add_request, make_session, make_settings

logging.disable(logging.CRITICAL)

SECRET = "s3cret"


def _payload(number=42, state="closed", labels=("status-done",), action="closed", **issue):
    data = {
        "number": number,
        "state": state,
        "html_url": f"https://github.com/o/r/issues/{number}",
        "labels": [{"name": name} for name in labels],
        "title": "Export members as CSV",
        "updated_at": "2025-06-01T10:00:00Z",
    }
    data.update(issue)
    return json.dumps({"action": action, "issue": data}).encode("utf-8")


class SignatureTests(unittest.TestCase):
    def test_matching_signature(self):
        body = b'{"a": 1}'
        self.assertTrue(verify_signature(SECRET, body, compute_signature(SECRET, body)))

    def test_reused_header_does_not_match_tampered_body(self):
        header = compute_signature(SECRET, b'{"state": "open"}')

        self.assertFalse(verify_signature(SECRET, b'{"state": "closed"}', header))

    def test_missing_header(self):
        self.assertFalse(verify_signature(SECRET, b"{}", None))
        self.assertFalse(verify_signature(SECRET, b"{}", ""))

    def test_non_ascii_header_is_a_mismatch(self):
        self.assertFalse(verify_signature(SECRET, b"{}", "sha256=éé"))

    def test_signature_format(self):
        self.assertTrue(compute_signature(SECRET, b"").startswith("sha256="))


class WebhookVerifyTests(unittest.TestCase):
    def setUp(self):
        self.db = make_session()

    def tearDown(self):
        self.db.close()

    def test_missing_header_rejected_when_secret_configured(self):
        handler = WebhookHandler(self.db, make_settings(github_webhook_secret=SECRET))

        with self.assertRaises(SignatureInvalid):
            handler.handle("issues", _payload(), None)

    def test_bad_signature_rejected_before_any_write(self):
        request = add_request(self.db, github_issue_number=42, github_issue_url="u", github_state="open")
        handler = WebhookHandler(self.db, make_settings(github_webhook_secret=SECRET))
        header = compute_signature(SECRET, _payload(state="open", labels=()))

        with self.assertRaises(SignatureInvalid):
            handler.handle("issues", _payload(), header)

        self.db.refresh(request)
        self.assertEqual(request.status, "pending")
        self.assertEqual(request.github_state, "open")

    def test_non_ascii_header_rejected(self):
        handler = WebhookHandler(self.db, make_settings(github_webhook_secret=SECRET))

        with self.assertRaises(SignatureInvalid):
            handler.handle("issues", _payload(), "sha256=éé")

    def test_valid_signature_accepted(self):
        add_request(self.db, github_issue_number=42, github_issue_url="u")
        handler = WebhookHandler(self.db, make_settings(github_webhook_secret=SECRET))
        body = _payload()

        result = handler.handle("issues", body, compute_signature(SECRET, body))

        self.assertTrue(result["success"])
        self.assertEqual(result["data"].status, "done")

    def test_no_secret_skips_verification(self):
        handler = WebhookHandler(self.db, make_settings())

        result = handler.handle("issues", _payload(), None)

        self.assertTrue(result["ignored"])

    def test_no_secret_with_required_signature_rejected(self):
        handler = WebhookHandler(self.db, make_settings(webhook_require_signature=True))

        with self.assertRaises(SignatureInvalid):
            handler.handle("issues", _payload(), None)


class WebhookHandleTests(unittest.TestCase):
    def setUp(self):
        self.db = make_session()
        self.handler = WebhookHandler(self.db, make_settings())

    def tearDown(self):
        self.db.close()

    def test_non_issues_event_ignored(self):
        result = self.handler.handle("push", b"not even json", None)

        self.assertTrue(result["success"])
        self.assertTrue(result["ignored"])

    def test_unhandled_action_ignored(self):
        request = add_request(self.db, github_issue_number=42, github_issue_url="u")

        result = self.handler.handle("issues", _payload(action="labeled"), None)

        self.assertTrue(result["ignored"])
        self.db.refresh(request)
        self.assertEqual(request.status, "pending")

    def test_invalid_json_is_malformed(self):
        with self.assertRaises(PayloadMalformed):
            self.handler.handle("issues", b"{broken", None)

    def test_missing_issue_is_malformed(self):
        with self.assertRaises(PayloadMalformed):
            self.handler.handle("issues", json.dumps({"action": "closed"}).encode(), None)

    def test_missing_issue_number_is_malformed(self):
        body = json.dumps({"action": "closed", "issue": {"state": "closed"}}).encode()

        with self.assertRaises(PayloadMalformed):
            self.handler.handle("issues", body, None)

    def test_non_list_labels_is_malformed(self):
        add_request(self.db, github_issue_number=42, github_issue_url="u")
        body = json.dumps({"action": "closed", "issue": {"number": 42, "state": "closed", "labels": 5}}).encode()

        with self.assertRaises(PayloadMalformed):
            self.handler.handle("issues", body, None)

    def test_unlinked_issue_ignored(self):
        add_request(self.db, github_issue_number=7, github_issue_url="u")

        result = self.handler.handle("issues", _payload(number=99), None)

        self.assertTrue(result["ignored"])
        self.assertEqual(self.db.query(SyncLog).count(), 0)

    def test_closed_event_applied(self):
        request = add_request(self.db, github_issue_number=42, github_issue_url="u", github_state="open")

        with patch.object(WebhookHandler, "_utcnow", return_value=FROZEN_NOW):
            result = self.handler.handle("issues", _payload(), None)

        self.assertTrue(result["success"])
        self.db.refresh(request)
        self.assertEqual(request.github_state, "closed")
        self.assertEqual(request.status, "done")
        self.assertEqual(request.github_issue_url, "https://github.com/o/r/issues/42")
        self.assertEqual(request.github_updated_at, datetime(2025, 6, 1, 10, 0, 0))
        self.assertEqual(request.last_synced_at, FROZEN_NOW)
        self.assertEqual(self.db.query(SyncLog).count(), 1)

    def test_reopened_without_status_label_goes_pending(self):
        request = add_request(
            self.db, github_issue_number=42, github_issue_url="u", github_state="closed", status="done"
        )

        self.handler.handle("issues", _payload(state="open", labels=("bug",), action="reopened"), None)

        self.db.refresh(request)
        self.assertEqual(request.status, "pending")
        self.assertEqual(request.github_state, "open")

    def test_edited_title_is_copied(self):
        request = add_request(self.db, github_issue_number=42, github_issue_url="u")

        self.handler.handle(
            "issues",
            _payload(state="open", labels=("status-in_progress",), action="edited", title="CSV export v2"),
            None,
        )

        self.db.refresh(request)
        self.assertEqual(request.title, "CSV export v2")
        self.assertEqual(request.status, "in_progress")

    def test_redelivery_is_idempotent(self):
        request = add_request(self.db, github_issue_number=42, github_issue_url="u")
        body = _payload()

        with patch.object(WebhookHandler, "_utcnow", return_value=FROZEN_NOW):
            self.handler.handle("issues", body, None)
            self.db.refresh(request)
            first = (request.status, request.github_state, request.github_issue_url, request.last_synced_at)

            self.handler.handle("issues", body, None)
            self.db.refresh(request)
            second = (request.status, request.github_state, request.github_issue_url, request.last_synced_at)

        self.assertEqual(first, second)
        self.assertEqual(self.db.query(SyncLog).count(), 1)

    def test_stale_delivery_ignored(self):
        request = add_request(
            self.db,
            github_issue_number=42,
            github_issue_url="u",
            github_state="open",
            status="in_progress",
            github_updated_at=datetime(2025, 6, 2, 0, 0, 0),
        )

        result = self.handler.handle("issues", _payload(), None)

        self.assertTrue(result["ignored"])
        self.db.refresh(request)
        self.assertEqual(request.status, "in_progress")

    def test_pending_local_push_blocks_webhook(self):
        request = add_request(self.db, github_issue_number=42, github_issue_url="u", status="in_progress")
        request.mark_pending(PendingPush.STATUS)
        self.db.commit()

        result = self.handler.handle("issues", _payload(state="open", labels=(), action="reopened"), None)

        self.assertTrue(result["ignored"])
        self.db.refresh(request)
        self.assertEqual(request.status, "in_progress")


if __name__ == "__main__":
    unittest.main()
