"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


@dataclass(slots=True)
class TokenRecord:
    """An issued, not yet consumed anti-forgery token bound to a session."""

    session_id: str
    token: str
    secret: str
    issued_at: datetime
    expires_at: datetime
    origin: str | None = None

    def is_expired(self, now: datetime) -> bool:
        """Tokens are invalid from ``expires_at`` onwards."""
        return now >= self.expires_at


class TokenCheck(Enum):
    """Outcome of consuming a presented token from the store."""

    VALID = "valid"
    MISSING = "missing"
    MISMATCH = "mismatch"
    ORIGIN_MISMATCH = "origin_mismatch"


@dataclass(frozen=True, slots=True)
class IssuedToken:
    """Token handed to a client together with the session it is bound to."""

    token: str
    session_id: str
    expires_in: int


@dataclass(frozen=True, slots=True)
class CsrfValidation:
    """Result of validating the CSRF headers of a request."""

    valid: bool
    error: str | None = None
    new_token: str | None = None


@dataclass(slots=True)
class RateLimitCounter:
    """Request count for one client identifier inside the current window."""

    identifier: str
    count: int
    window_start: datetime
    reset_at: datetime


@dataclass(frozen=True, slots=True)
class RateLimitResult:
    """Allow/deny decision plus the metadata needed for response headers."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime
    retry_after_seconds: int | None = None


@dataclass(frozen=True, slots=True)
class InboundRequest:
    """Framework-neutral view of an HTTP request reaching the gate."""

    method: str
    headers: dict[str, str]
    body: bytes = b""
    client_host: str | None = None


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class SubmissionAttempt:
    """Per-request bundle of everything the gate decides on. Never stored."""

    method: str
    csrf_token: str | None
    session_id: str | None
    client_id: str
    honeypot: Any = None
    form_load_time: float | None = None
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ContactSubmission:
    """Validated and sanitised contact form fields."""

    name: str
    email: str
    message: str


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    """Result of schema validation on a raw payload."""

    success: bool
    data: ContactSubmission | None = None
    errors: tuple[dict[str, str], ...] = ()


@dataclass(frozen=True, slots=True)
class OutgoingEmail:
    """Rendered notification ready for the email sender."""

    to: str
    from_address: str
    reply_to: str
    subject: str
    html: str
    text: str


@dataclass(slots=True)
class GateResult:
    """HTTP-shaped decision returned by the submission gate."""

    status_code: int
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)
    email_sent: bool = False


__all__ = [
    "ContactSubmission",
    "CsrfValidation",
    "GateResult",
    "InboundRequest",
    "IssuedToken",
    "OutgoingEmail",
    "RateLimitCounter",
    "RateLimitResult",
    "SubmissionAttempt",
    "TokenCheck",
    "TokenRecord",
    "ValidationOutcome",
]
