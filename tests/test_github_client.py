import logging
import unittest
from datetime import datetime
from unittest.mock import Mock

import requests

from devsync.services.github_client import GitHubClient, GitHubClientError, parse_github_datetime

logging.disable(logging.CRITICAL)


def _response(status_code=200, json_data=None, content=b"{}"):
    response = Mock()
    response.status_code = status_code
    response.content = content
    response.json = Mock(return_value=json_data if json_data is not None else {})
    response.text = ""
    return response


def _client(response=None, side_effect=None):
    session = Mock()
    session.headers = {}
    session.request = Mock(return_value=response, side_effect=side_effect)
    client = GitHubClient("tok", "acme", "tracker", session=session, timeout=5)
    return client, session


class GitHubClientTests(unittest.TestCase):
    def test_init_sets_bearer_auth_headers(self):
        client, session = _client(_response())

        self.assertEqual(session.headers["Authorization"], "Bearer tok")
        self.assertEqual(session.headers["Accept"], "application/vnd.github+json")
        self.assertEqual(client.repo_path, "/repos/acme/tracker")

    def test_create_issue_posts_payload(self):
        client, session = _client(_response(201, {"number": 7, "html_url": "u"}))

        issue = client.create_issue({"title": "T", "body": "B", "labels": ["bug"]})

        self.assertEqual(issue["number"], 7)
        session.request.assert_called_once_with(
            "POST",
            "https://api.github.com/repos/acme/tracker/issues",
            timeout=5,
            json={"title": "T", "body": "B", "labels": ["bug"]},
        )

    def test_update_issue_patches_only_given_fields(self):
        client, session = _client(_response(200, {"number": 3, "state": "closed"}))

        client.update_issue(3, {"state": "closed"})

        method, url = session.request.call_args[0]
        self.assertEqual(method, "PATCH")
        self.assertEqual(url, "https://api.github.com/repos/acme/tracker/issues/3")
        self.assertEqual(session.request.call_args[1]["json"], {"state": "closed"})

    def test_create_comment(self):
        client, session = _client(_response(201, {"id": 1}))

        client.create_issue_comment(9, "hello")

        method, url = session.request.call_args[0]
        self.assertEqual(method, "POST")
        self.assertTrue(url.endswith("/issues/9/comments"))
        self.assertEqual(session.request.call_args[1]["json"], {"body": "hello"})

    def test_error_status_raises_with_code(self):
        client, _ = _client(_response(404, {"message": "Not Found"}))

        with self.assertRaises(GitHubClientError) as ctx:
            client.get_issue(1)

        self.assertEqual(ctx.exception.status_code, 404)
        self.assertIn("Not Found", str(ctx.exception))

    def test_network_error_is_wrapped(self):
        client, _ = _client(side_effect=requests.ConnectionError("boom"))

        with self.assertRaises(GitHubClientError) as ctx:
            client.get_repository()

        self.assertIsNone(ctx.exception.status_code)

    def test_label_names_accepts_dicts_and_strings(self):
        issue = {"labels": [{"name": "bug"}, {"color": "fff"}, "status-done", None]}

        self.assertEqual(GitHubClient.label_names(issue), ["bug", "status-done"])


class ParseGitHubDatetimeTests(unittest.TestCase):
    def test_parses_zulu_to_naive_utc(self):
        self.assertEqual(parse_github_datetime("2025-01-02T03:04:05Z"), datetime(2025, 1, 2, 3, 4, 5))

    def test_invalid_or_missing(self):
        self.assertIsNone(parse_github_datetime(None))
        self.assertIsNone(parse_github_datetime("yesterday"))


if __name__ == "__main__":
    unittest.main()
