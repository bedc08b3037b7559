"""Exception taxonomy mapped to HTTP responses at the gate boundary."""

from __future__ import annotations

from typing import Any

from .models import RateLimitResult


class ContactGateError(Exception):
    """Base class for errors rendered as structured JSON responses.

    ``public_message`` is the only text ever returned to a client; the
    exception's own message may carry internal detail for logs.
    """

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    public_message: str = "An unexpected error occurred. Please try again later."

    def __init__(
        self,
        message: str | None = None,
        *,
        public_message: str | None = None,
        details: list[dict[str, Any]] | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message or public_message or self.public_message)
        if public_message is not None:
            self.public_message = public_message
        if code is not None:
            self.code = code
        self.details = details

    def to_body(self) -> dict[str, Any]:
        """Return the client-facing JSON body."""
        body: dict[str, Any] = {"error": self.public_message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ContactGateError):
    """Malformed request body, schema failure or bot-check failure."""

    status_code = 400
    code = "VALIDATION_ERROR"
    public_message = "Validation failed"


class CsrfError(ContactGateError):
    """Missing, malformed, expired or mismatched CSRF token."""

    status_code = 403
    code = "CSRF_TOKEN_INVALID"
    public_message = "Invalid CSRF token"


class RateLimitError(ContactGateError):
    """Client exceeded the submission allowance for the current window."""

    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"
    public_message = "Too many requests"

    def __init__(self, result: RateLimitResult, message: str | None = None) -> None:
        super().__init__(message)
        self.result = result


class EmailSendError(ContactGateError):
    """The downstream email provider failed to accept the message."""

    status_code = 500
    code = "EMAIL_SEND_ERROR"
    public_message = "Failed to send message. Please try again later."


class ConfigurationError(RuntimeError):
    """Required configuration or secret is missing at startup."""


__all__ = [
    "ConfigurationError",
    "ContactGateError",
    "CsrfError",
    "EmailSendError",
    "RateLimitError",
    "ValidationError",
]
