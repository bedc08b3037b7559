"""Admission decision for contact form submissions."""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Callable
from datetime import datetime
from typing import Any, Literal

from contact_gate.core.datetime_utils import utc_now
from contact_gate.core.errors import (
    ContactGateError,
    CsrfError,
    EmailSendError,
    RateLimitError,
    ValidationError,
)
from contact_gate.core.interfaces import EmailSender, SubmissionValidator
from contact_gate.core.logging import redact
from contact_gate.core.models import GateResult, InboundRequest, SubmissionAttempt
from contact_gate.security.bot_checks import (
    DEFAULT_MIN_SUBMIT_SECONDS,
    check_submission_timing,
    is_honeypot_triggered,
)
from contact_gate.security.csrf import (
    CSRF_HEADER_NAME,
    SAFE_METHODS,
    SESSION_HEADER_NAME,
    CsrfProtector,
)
from contact_gate.security.rate_limiter import (
    RateLimiter,
    build_denied_response,
    derive_identifier,
    headers_for,
)

from .rendering import render_contact_email

LOGGER = logging.getLogger(__name__)

HoneypotPolicy = Literal["silent", "reject"]

ALLOWED_METHODS: tuple[str, ...] = ("GET", "HEAD", "OPTIONS", "POST")


# pylint: disable=too-many-instance-attributes
class SubmissionGate:
    """Run every admission check for one request, in order, and send the email.

    Order: method, CSRF, rate limit, body parsing, honeypot, timing, schema,
    delivery. The first failing step decides the response. Every response
    carries the client's rate-limit headers.
    """

    def __init__(
        self,
        *,
        csrf: CsrfProtector,
        rate_limiter: RateLimiter,
        email_sender: EmailSender,
        validator: SubmissionValidator,
        recipient: str,
        sender_address: str,
        site_domain: str = "localhost",
        min_submit_seconds: float = DEFAULT_MIN_SUBMIT_SECONDS,
        honeypot_policy: HoneypotPolicy = "silent",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._csrf = csrf
        self._rate_limiter = rate_limiter
        self._email_sender = email_sender
        self._validator = validator
        self._recipient = recipient
        self._sender_address = sender_address
        self._site_domain = site_domain
        self._min_submit_seconds = min_submit_seconds
        self._honeypot_policy = honeypot_policy
        self._clock = clock

    def handle(self, request: InboundRequest, now: datetime | None = None) -> GateResult:
        """Return the HTTP-shaped decision for ``request``."""
        now = now or self._clock()
        method = request.method.upper()
        headers = {key.lower(): value for key, value in request.headers.items()}
        client_id = derive_identifier(headers, request.client_host, now=now)

        self._rate_limiter.maybe_sweep(now)
        response_headers = headers_for(self._rate_limiter.peek(client_id, now))

        if method in SAFE_METHODS:
            return self._issue_token(headers, response_headers, now)
        if method != "POST":
            response_headers["Allow"] = ", ".join(ALLOWED_METHODS)
            return GateResult(
                status_code=405,
                body={"error": "Method not allowed", "code": "METHOD_NOT_ALLOWED"},
                headers=response_headers,
            )

        try:
            return self._admit(request, headers, client_id, response_headers, now)
        except RateLimitError as exc:
            denied = build_denied_response(exc.result)
            denied.headers = {**response_headers, **denied.headers}
            return denied
        except EmailSendError as exc:
            LOGGER.error("Contact email delivery failed for %s: %s", client_id, exc)
            return self._error_result(exc, response_headers)
        except ContactGateError as exc:
            LOGGER.info(
                "Contact submission from %s rejected (%s): %s", client_id, exc.code, exc
            )
            return self._error_result(exc, response_headers)
        except Exception:  # pylint: disable=broad-except
            LOGGER.exception("Unexpected error handling contact submission")
            return self._error_result(ContactGateError(), response_headers)

    def _admit(
        self,
        request: InboundRequest,
        headers: dict[str, str],
        client_id: str,
        response_headers: dict[str, str],
        now: datetime,
    ) -> GateResult:
        csrf_result = self._csrf.validate("POST", headers, now=now)
        if not csrf_result.valid:
            raise CsrfError(
                csrf_result.error, details=[{"reason": csrf_result.error or ""}]
            )
        if csrf_result.new_token:
            response_headers[CSRF_HEADER_NAME] = csrf_result.new_token

        limit_result = self._rate_limiter.check_and_increment(client_id, now)
        if not limit_result.allowed:
            raise RateLimitError(limit_result, f"limit reached for {client_id}")
        response_headers.update(headers_for(limit_result))

        attempt = self._build_attempt(request, headers, client_id)

        if is_honeypot_triggered(attempt.honeypot):
            LOGGER.warning(
                "Honeypot triggered by %s (session %s)",
                client_id,
                redact(attempt.session_id),
            )
            if self._honeypot_policy == "silent":
                return GateResult(200, {"success": True}, response_headers)
            raise ValidationError(
                "honeypot field populated",
                details=[{"field": "honeypot", "message": "Bot detection triggered"}],
            )

        if not check_submission_timing(
            attempt.form_load_time, now, self._min_submit_seconds
        ):
            raise ValidationError(
                "submitted too quickly after form load",
                code="SUBMISSION_TOO_FAST",
                public_message="Please take your time filling out the form.",
            )

        outcome = self._validator.parse(attempt.payload)
        if not outcome.success or outcome.data is None:
            raise ValidationError("schema validation failed", details=list(outcome.errors))

        message = render_contact_email(
            outcome.data,
            recipient=self._recipient,
            sender=self._sender_address,
            site_domain=self._site_domain,
            submitted_at=now,
        )
        self._email_sender.send(message)
        LOGGER.info("Contact form message from %s delivered", client_id)
        return GateResult(200, {"success": True}, response_headers, email_sent=True)

    def _build_attempt(
        self, request: InboundRequest, headers: dict[str, str], client_id: str
    ) -> SubmissionAttempt:
        try:
            payload: Any = json.loads(request.body or b"")
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ValidationError(
                f"malformed JSON: {exc}",
                code="INVALID_REQUEST",
                public_message="Invalid JSON in request body",
            ) from exc
        if not isinstance(payload, dict):
            raise ValidationError(
                "body is not a JSON object",
                code="INVALID_REQUEST",
                public_message="Invalid request body",
            )

        form_load_time = payload.get("formLoadTime")
        if form_load_time is not None and (
            isinstance(form_load_time, bool)
            or not isinstance(form_load_time, (int, float))
            or (isinstance(form_load_time, float) and not math.isfinite(form_load_time))
        ):
            raise ValidationError(
                "formLoadTime is not numeric",
                details=[{"field": "formLoadTime", "message": "Must be a number"}],
            )

        return SubmissionAttempt(
            method="POST",
            csrf_token=headers.get(CSRF_HEADER_NAME.lower()),
            session_id=self._csrf.extract_session_id(headers),
            client_id=client_id,
            honeypot=payload.get("honeypot"),
            form_load_time=form_load_time,
            payload=payload,
        )

    def _issue_token(
        self,
        headers: dict[str, str],
        response_headers: dict[str, str],
        now: datetime,
    ) -> GateResult:
        issued = self._csrf.issue(
            self._csrf.extract_session_id(headers),
            now=now,
            origin=headers.get("origin") or None,
        )
        response_headers.update(
            {
                CSRF_HEADER_NAME: issued.token,
                SESSION_HEADER_NAME: issued.session_id,
                "Cache-Control": "no-store, no-cache, must-revalidate",
            }
        )
        return GateResult(
            status_code=200,
            body={
                "token": issued.token,
                "sessionId": issued.session_id,
                "expiresIn": issued.expires_in,
            },
            headers=response_headers,
        )

    @staticmethod
    def _error_result(
        exc: ContactGateError, response_headers: dict[str, str]
    ) -> GateResult:
        return GateResult(
            status_code=exc.status_code,
            body=exc.to_body(),
            headers=response_headers,
        )


__all__ = ["ALLOWED_METHODS", "HoneypotPolicy", "SubmissionGate"]
