"""Session-bound, one-time-use CSRF tokens for the contact endpoint."""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from urllib.parse import urlsplit

from starlette.responses import Response

from contact_gate.core.logging import redact
from contact_gate.core.models import CsrfValidation, IssuedToken, TokenCheck, TokenRecord

from .token_store import TokenStore, sign_token_base

CSRF_HEADER_NAME = "X-CSRF-Token"
SESSION_HEADER_NAME = "X-Session-Id"
SESSION_COOKIE_NAME = "contact_session"

_TOKEN_HEADERS: tuple[str, ...] = ("x-csrf-token", "csrf-token", "x-xsrf-token")
_SESSION_HEADERS: tuple[str, ...] = ("x-session-id", "x-csrf-session")
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

TOKEN_BYTES = 32
SECRET_BYTES = 32

LOGGER = logging.getLogger(__name__)


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    encoded = ""
    while value:
        value, remainder = divmod(value, 36)
        encoded = digits[remainder] + encoded
    return encoded or "0"


def generate_session_id() -> str:
    """Return a unique ``<epoch-ms base36>-<random hex>`` session identifier."""
    return f"{_base36(time.time_ns() // 1_000_000)}-{secrets.token_hex(16)}"


def _lower_keys(headers: Mapping[str, str]) -> dict[str, str]:
    return {key.lower(): value for key, value in headers.items()}


def _first_header(headers: Mapping[str, str], names: tuple[str, ...]) -> str | None:
    for name in names:
        value = headers.get(name)
        if value:
            return value
    return None


def is_allowed_origin(origin: str, host: str | None) -> bool:
    """Return ``True`` when ``origin`` names the host the request was sent to."""
    if not host:
        return False
    if origin in (f"https://{host}", f"http://{host}"):
        return True
    try:
        return urlsplit(origin).hostname == host
    except ValueError:
        return False


def parse_cookie_header(raw: str | None) -> dict[str, str]:
    """Parse a ``Cookie`` request header into a name/value mapping."""
    cookies: dict[str, str] = {}
    if not raw:
        return cookies
    for chunk in raw.split(";"):
        name, sep, value = chunk.strip().partition("=")
        if sep and name:
            cookies[name] = value
    return cookies


@dataclass(slots=True)
class CsrfProtector:
    """Issue and validate CSRF tokens bound to a session identifier."""

    store: TokenStore
    ttl: timedelta = timedelta(hours=1)
    rotate_on_success: bool = True
    cookie_name: str = SESSION_COOKIE_NAME
    _max_age: int = field(init=False, default=0)

    def __post_init__(self) -> None:
        self._max_age = int(self.ttl.total_seconds())

    def issue(
        self,
        session_id: str | None = None,
        *,
        now: datetime,
        origin: str | None = None,
    ) -> IssuedToken:
        """Create a token for ``session_id``, replacing any previous one.

        A token issued with an ``origin`` only validates for requests from it.
        """
        sid = session_id or generate_session_id()
        secret = secrets.token_hex(SECRET_BYTES)
        base = secrets.token_hex(TOKEN_BYTES)
        token = f"{base}.{sign_token_base(secret, base, sid, origin)}"

        self.store.maybe_sweep(now)
        self.store.put(
            sid,
            TokenRecord(
                session_id=sid,
                token=token,
                secret=secret,
                issued_at=now,
                expires_at=now + self.ttl,
                origin=origin,
            ),
        )
        return IssuedToken(token=token, session_id=sid, expires_in=self._max_age)

    @staticmethod
    def requires_protection(method: str) -> bool:
        """Return ``True`` for state-changing HTTP methods."""
        return method.upper() not in SAFE_METHODS

    def extract_session_id(self, headers: Mapping[str, str]) -> str | None:
        """Return the session id from the dedicated headers or the cookie."""
        lowered = _lower_keys(headers)
        session_id = _first_header(lowered, _SESSION_HEADERS)
        if session_id:
            return session_id
        cookies = parse_cookie_header(lowered.get("cookie"))
        return cookies.get(self.cookie_name) or None

    def validate(
        self, method: str, headers: Mapping[str, str], *, now: datetime
    ) -> CsrfValidation:
        """Validate the CSRF token presented with a request.

        Header names are matched case-insensitively since proxies and
        serverless runtimes normalise casing differently. An ``Origin``
        header must name the request's ``Host`` and match the origin the
        token was issued to.
        """
        if not self.requires_protection(method):
            return CsrfValidation(valid=True)

        lowered = _lower_keys(headers)
        token = _first_header(lowered, _TOKEN_HEADERS)
        if not token:
            return CsrfValidation(valid=False, error="Missing CSRF token")

        session_id = self.extract_session_id(lowered)
        if not session_id:
            return CsrfValidation(valid=False, error="Missing session ID")

        base, sep, signature = token.partition(".")
        if not sep or not base or not signature:
            LOGGER.warning("Malformed CSRF token for session %s", redact(session_id))
            return CsrfValidation(valid=False, error="Malformed token")

        origin = lowered.get("origin") or None
        if origin and not is_allowed_origin(origin, lowered.get("host")):
            LOGGER.warning(
                "CSRF origin %s rejected for session %s", origin, redact(session_id)
            )
            return CsrfValidation(valid=False, error="Invalid origin")

        outcome = self.store.take_if_valid(session_id, token, now, origin)
        if outcome is TokenCheck.MISSING:
            LOGGER.warning(
                "No live CSRF token for session %s", redact(session_id)
            )
            return CsrfValidation(valid=False, error="Invalid session or token expired")
        if outcome is TokenCheck.ORIGIN_MISMATCH:
            LOGGER.warning("CSRF origin mismatch for session %s", redact(session_id))
            return CsrfValidation(valid=False, error="Origin mismatch")
        if outcome is TokenCheck.MISMATCH:
            LOGGER.warning("CSRF token mismatch for session %s", redact(session_id))
            return CsrfValidation(valid=False, error="Invalid token signature")

        new_token = None
        if self.rotate_on_success:
            new_token = self.issue(session_id, now=now, origin=origin).token
        return CsrfValidation(valid=True, new_token=new_token)

    def set_cookie(self, response: Response, session_id: str, *, secure: bool) -> None:
        """Persist the session id in a SameSite cookie for later submissions."""

        response.set_cookie(
            key=self.cookie_name,
            value=session_id,
            max_age=self._max_age,
            httponly=True,
            samesite="lax",
            secure=secure,
        )


__all__ = [
    "CSRF_HEADER_NAME",
    "SAFE_METHODS",
    "SESSION_COOKIE_NAME",
    "SESSION_HEADER_NAME",
    "CsrfProtector",
    "generate_session_id",
    "is_allowed_origin",
    "parse_cookie_header",
]
