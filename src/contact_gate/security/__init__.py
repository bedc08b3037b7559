"""Abuse prevention for the contact endpoint."""

from .bot_checks import check_submission_timing, is_honeypot_triggered
from .csrf import CSRF_HEADER_NAME, SESSION_HEADER_NAME, CsrfProtector
from .rate_limiter import (
    RateLimiter,
    build_denied_response,
    derive_identifier,
    headers_for,
)
from .token_store import TokenStore

__all__ = [
    "CSRF_HEADER_NAME",
    "SESSION_HEADER_NAME",
    "CsrfProtector",
    "RateLimiter",
    "TokenStore",
    "build_denied_response",
    "check_submission_timing",
    "derive_identifier",
    "headers_for",
    "is_honeypot_triggered",
]
