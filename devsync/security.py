"""Optional HTTP Basic auth for the devsync API.

The authenticated username becomes the actor for request creation and status
changes (``request.state.auth_user``). The GitHub webhook is exempt because it
authenticates with its HMAC signature, and ``/health`` stays open for health checks.
"""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass
from typing import Iterable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

DEFAULT_OPEN_PATHS = frozenset({"/health"})


@dataclass(frozen=True)
class BasicCredentials:
    username: str
    password: str

    def matches(self, username: str, password: str) -> bool:
        # Both parts are always compared.
        user_ok = secrets.compare_digest(self.username.encode("utf-8"), username.encode("utf-8"))
        password_ok = secrets.compare_digest(self.password.encode("utf-8"), password.encode("utf-8"))
        return user_ok and password_ok


def parse_basic_credentials(authorization: str | None) -> BasicCredentials | None:
    """``Authorization: Basic <base64(user:password)>`` → credentials, or None."""
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "basic" or not token.strip():
        return None
    try:
        user_pass = base64.b64decode(token.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    if ":" not in user_pass:
        return None
    username, password = user_pass.split(":", 1)
    return BasicCredentials(username=username, password=password)


class BasicAuthMiddleware(BaseHTTPMiddleware):
    """Rejects unauthenticated calls outside ``open_paths`` with 401."""

    def __init__(
        self,
        app,
        *,
        username: str,
        password: str,
        open_paths: Iterable[str] | None = None,
        realm: str = "devsync",
    ):
        super().__init__(app)
        self.account = BasicCredentials(username=username, password=password)
        self.open_paths = frozenset(p.rstrip("/") or "/" for p in (open_paths or DEFAULT_OPEN_PATHS))
        self.realm = realm

    def is_open(self, path: str) -> bool:
        return (path.rstrip("/") or "/") in self.open_paths

    def authenticate(self, request: Request) -> str | None:
        """Username of a valid caller, None otherwise."""
        creds = parse_basic_credentials(request.headers.get("Authorization"))
        if creds is None or not self.account.matches(creds.username, creds.password):
            return None
        return creds.username

    async def dispatch(self, request: Request, call_next):
        if self.is_open(request.url.path):
            return await call_next(request)

        username = self.authenticate(request)
        if username is None:
            return JSONResponse(
                status_code=401,
                content={"detail": "Authentication required"},
                headers={"WWW-Authenticate": f'Basic realm="{self.realm}", charset="UTF-8"'},
            )

        request.state.auth_user = username
        return await call_next(request)
