import base64
import unittest

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from devsync.security import BasicAuthMiddleware, BasicCredentials, parse_basic_credentials


def _basic(user, password):
    token = base64.b64encode(f"{user}:{password}".encode("utf-8")).decode("ascii")
    return {"Authorization": f"Basic {token}"}


class BasicAuthParsingTests(unittest.TestCase):
    def test_parse_basic_credentials_valid(self):
        token = base64.b64encode(b"user:pa:ss").decode("ascii")
        creds = parse_basic_credentials(f"Basic {token}")
        self.assertIsNotNone(creds)
        assert creds is not None
        self.assertEqual(creds.username, "user")
        self.assertEqual(creds.password, "pa:ss")

    def test_parse_basic_credentials_invalid_scheme(self):
        token = base64.b64encode(b"user:pass").decode("ascii")
        self.assertIsNone(parse_basic_credentials(f"Bearer {token}"))

    def test_parse_basic_credentials_invalid_base64(self):
        self.assertIsNone(parse_basic_credentials("Basic !!!notbase64!!!"))

    def test_parse_basic_credentials_missing_colon(self):
        token = base64.b64encode(b"userpass").decode("ascii")
        self.assertIsNone(parse_basic_credentials(f"Basic {token}"))

    def test_parse_basic_credentials_missing_header(self):
        self.assertIsNone(parse_basic_credentials(None))
        self.assertIsNone(parse_basic_credentials("Basic "))

    def test_credentials_match_non_ascii(self):
        account = BasicCredentials(username="admin", password="sécret")

        self.assertTrue(account.matches("admin", "sécret"))
        self.assertFalse(account.matches("admin", "secret"))


class BasicAuthMiddlewareTests(unittest.TestCase):
    def setUp(self):
        app = FastAPI()
        app.add_middleware(
            BasicAuthMiddleware,
            username="admin",
            password="secret",
            open_paths={"/health", "/api/github/webhook"},
        )

        @app.get("/health")
        def health():
            return {"status": "healthy"}

        @app.post("/api/github/webhook")
        def webhook():
            return {"received": True}

        @app.get("/whoami")
        def whoami(request: Request):
            return {"user": request.state.auth_user}

        self.client = TestClient(app)

    def test_open_paths_need_no_credentials(self):
        self.assertEqual(self.client.get("/health").status_code, 200)
        self.assertEqual(self.client.post("/api/github/webhook").status_code, 200)

    def test_missing_credentials_challenged(self):
        response = self.client.get("/whoami")

        self.assertEqual(response.status_code, 401)
        self.assertIn('Basic realm="devsync"', response.headers["WWW-Authenticate"])

    def test_wrong_password_rejected(self):
        self.assertEqual(self.client.get("/whoami", headers=_basic("admin", "nope")).status_code, 401)

    def test_authenticated_user_exposed(self):
        response = self.client.get("/whoami", headers=_basic("admin", "secret"))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"user": "admin"})


if __name__ == "__main__":
    unittest.main()
