"""End-to-end tests for the submission gate."""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import Any

import pytest

from contact_gate.contact import ContactFormValidator, SubmissionGate
from contact_gate.core.datetime_utils import to_epoch_millis
from contact_gate.core.models import GateResult, InboundRequest
from contact_gate.security import CsrfProtector, RateLimiter, TokenStore

CLIENT_IP = "203.0.113.7"


def _build_gate(sender, **overrides: Any) -> SubmissionGate:
    options: dict[str, Any] = {
        "csrf": CsrfProtector(store=TokenStore()),
        "rate_limiter": RateLimiter(),
        "email_sender": sender,
        "validator": ContactFormValidator(),
        "recipient": "owner@example.org",
        "sender_address": "site@example.org",
        "site_domain": "example.org",
    }
    options.update(overrides)
    return SubmissionGate(**options)


def _payload(now: datetime, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": "Ada Lovelace",
        "email": "ada@example.org",
        "message": "I would like to talk about your analytical engine.",
        "honeypot": "",
        "formLoadTime": to_epoch_millis(now - timedelta(seconds=5)),
    }
    payload.update(overrides)
    return payload


def _fetch_token(gate: SubmissionGate, now: datetime) -> tuple[str, str]:
    result = gate.handle(
        InboundRequest(method="GET", headers={"X-Forwarded-For": CLIENT_IP}), now
    )
    return result.body["token"], result.body["sessionId"]


def _post(
    gate: SubmissionGate,
    now: datetime,
    *,
    token: str | None,
    session_id: str | None,
    body: bytes | None = None,
    **payload_overrides: Any,
) -> GateResult:
    headers = {"X-Forwarded-For": CLIENT_IP}
    if token is not None:
        headers["X-CSRF-Token"] = token
    if session_id is not None:
        headers["X-Session-Id"] = session_id
    if body is None:
        body = json.dumps(_payload(now, **payload_overrides)).encode()
    return gate.handle(InboundRequest(method="POST", headers=headers, body=body), now)


def test_valid_submission_sends_email(email_sender, now: datetime) -> None:
    gate = _build_gate(email_sender)
    token, session_id = _fetch_token(gate, now)

    result = _post(gate, now, token=token, session_id=session_id)

    assert result.status_code == 200
    assert result.body == {"success": True}
    assert result.email_sent
    assert result.headers["X-RateLimit-Limit"] == "5"
    assert result.headers["X-RateLimit-Remaining"] == "4"
    assert "X-RateLimit-Reset" in result.headers
    assert "X-CSRF-Token" in result.headers
    assert len(email_sender.sent) == 1
    message = email_sender.sent[0]
    assert message.to == "owner@example.org"
    assert message.reply_to == "ada@example.org"


def test_sixth_submission_is_rate_limited(email_sender, now: datetime) -> None:
    gate = _build_gate(email_sender)
    token, session_id = _fetch_token(gate, now)

    results = []
    for _ in range(6):
        result = _post(gate, now, token=token, session_id=session_id)
        results.append(result)
        token = result.headers["X-CSRF-Token"]

    assert [r.status_code for r in results] == [200] * 5 + [429]
    limited = results[-1]
    assert limited.headers["Retry-After"] == "900"
    assert limited.headers["X-RateLimit-Remaining"] == "0"
    assert limited.body["error"] == "Too many requests"
    assert len(email_sender.sent) == 5


def test_missing_csrf_token_is_forbidden(email_sender, now: datetime) -> None:
    gate = _build_gate(email_sender)
    _, session_id = _fetch_token(gate, now)

    result = _post(gate, now, token=None, session_id=session_id)

    assert result.status_code == 403
    assert result.body["error"] == "Invalid CSRF token"
    assert result.body["code"] == "CSRF_TOKEN_INVALID"
    assert result.body["details"] == [{"reason": "Missing CSRF token"}]
    assert result.headers["X-RateLimit-Remaining"] == "5"
    assert email_sender.sent == []


def test_replayed_token_is_forbidden(email_sender, now: datetime) -> None:
    gate = _build_gate(email_sender)
    token, session_id = _fetch_token(gate, now)

    assert _post(gate, now, token=token, session_id=session_id).status_code == 200
    replay = _post(gate, now, token=token, session_id=session_id)

    assert replay.status_code == 403
    assert len(email_sender.sent) == 1


def test_honeypot_is_silently_accepted(email_sender, now: datetime) -> None:
    gate = _build_gate(email_sender)
    token, session_id = _fetch_token(gate, now)

    result = _post(gate, now, token=token, session_id=session_id, honeypot="spam")

    assert result.status_code == 200
    assert result.body == {"success": True}
    assert not result.email_sent
    assert email_sender.sent == []


def test_honeypot_reject_policy(email_sender, now: datetime) -> None:
    gate = _build_gate(email_sender, honeypot_policy="reject")
    token, session_id = _fetch_token(gate, now)

    result = _post(gate, now, token=token, session_id=session_id, honeypot="spam")

    assert result.status_code == 400
    assert result.body["code"] == "VALIDATION_ERROR"
    assert result.body["details"][0]["field"] == "honeypot"
    assert email_sender.sent == []


def test_fast_submission_is_rejected(email_sender, now: datetime) -> None:
    gate = _build_gate(email_sender)
    token, session_id = _fetch_token(gate, now)

    result = _post(
        gate,
        now,
        token=token,
        session_id=session_id,
        formLoadTime=to_epoch_millis(now) - 100,
    )

    assert result.status_code == 400
    assert result.body["code"] == "SUBMISSION_TOO_FAST"
    assert "take your time" in result.body["error"]
    assert email_sender.sent == []


@pytest.mark.parametrize("body", [b"{not json", b"[1, 2, 3]", b"\xff\xfe"])
def test_malformed_body_is_rejected(email_sender, now: datetime, body: bytes) -> None:
    gate = _build_gate(email_sender)
    token, session_id = _fetch_token(gate, now)

    result = _post(gate, now, token=token, session_id=session_id, body=body)

    assert result.status_code == 400
    assert result.body["code"] == "INVALID_REQUEST"


def test_non_numeric_form_load_time_is_rejected(email_sender, now: datetime) -> None:
    gate = _build_gate(email_sender)
    token, session_id = _fetch_token(gate, now)

    result = _post(gate, now, token=token, session_id=session_id, formLoadTime="soon")

    assert result.status_code == 400
    assert result.body["details"][0]["field"] == "formLoadTime"


def test_schema_errors_are_detailed(email_sender, now: datetime) -> None:
    gate = _build_gate(email_sender)
    token, session_id = _fetch_token(gate, now)

    result = _post(gate, now, token=token, session_id=session_id, email="nope")

    assert result.status_code == 400
    assert result.body["code"] == "VALIDATION_ERROR"
    assert [d["field"] for d in result.body["details"]] == ["email"]
    assert email_sender.sent == []


def test_provider_failure_is_not_leaked(failing_sender, now: datetime) -> None:
    gate = _build_gate(failing_sender)
    token, session_id = _fetch_token(gate, now)

    result = _post(gate, now, token=token, session_id=session_id)

    assert result.status_code == 500
    assert result.body == {
        "error": "Failed to send message. Please try again later.",
        "code": "EMAIL_SEND_ERROR",
    }
    assert "sk_live" not in json.dumps(result.body)
    assert failing_sender.attempts == 1


def test_unexpected_errors_become_generic_500(now: datetime) -> None:
    class ExplodingSender:
        def send(self, message) -> None:
            raise RuntimeError("socket exploded")

    gate = _build_gate(ExplodingSender())
    token, session_id = _fetch_token(gate, now)

    result = _post(gate, now, token=token, session_id=session_id)

    assert result.status_code == 500
    assert result.body["code"] == "INTERNAL_ERROR"
    assert "socket" not in result.body["error"]


def test_safe_method_issues_token_without_counting(email_sender, now: datetime) -> None:
    gate = _build_gate(email_sender)

    for _ in range(10):
        result = gate.handle(
            InboundRequest(method="GET", headers={"X-Forwarded-For": CLIENT_IP}), now
        )

    assert result.status_code == 200
    assert result.body["expiresIn"] == 3600
    assert result.headers["X-Session-Id"] == result.body["sessionId"]
    assert result.headers["X-RateLimit-Remaining"] == "5"


def test_unsupported_method_is_rejected(email_sender, now: datetime) -> None:
    gate = _build_gate(email_sender)

    result = gate.handle(InboundRequest(method="DELETE", headers={}), now)

    assert result.status_code == 405
    assert result.headers["Allow"] == "GET, HEAD, OPTIONS, POST"


def test_gate_uses_injected_clock(email_sender, clock) -> None:
    gate = _build_gate(email_sender, clock=clock)
    token, session_id = _fetch_token(gate, clock.now)

    clock.now = clock.now + timedelta(hours=2)
    result = gate.handle(
        InboundRequest(
            method="POST",
            headers={"X-CSRF-Token": token, "X-Session-Id": session_id},
            body=json.dumps(_payload(clock.now)).encode(),
            client_host="198.51.100.4",
        )
    )

    assert result.status_code == 403
    assert result.body["details"] == [{"reason": "Invalid session or token expired"}]


def test_false_honeypot_is_delivered(email_sender, now: datetime) -> None:
    gate = _build_gate(email_sender)
    token, session_id = _fetch_token(gate, now)

    result = _post(gate, now, token=token, session_id=session_id, honeypot=False)

    assert result.status_code == 200
    assert result.email_sent
    assert len(email_sender.sent) == 1


@pytest.mark.parametrize("value", [float("-inf"), float("inf"), float("nan")])
def test_non_finite_form_load_time_is_rejected(
    email_sender, now: datetime, value: float
) -> None:
    gate = _build_gate(email_sender)
    token, session_id = _fetch_token(gate, now)

    result = _post(gate, now, token=token, session_id=session_id, formLoadTime=value)

    assert result.status_code == 400
    assert result.body["code"] == "VALIDATION_ERROR"
    assert result.body["details"][0]["field"] == "formLoadTime"
    assert email_sender.sent == []


def test_token_cannot_be_used_from_another_origin(email_sender, now: datetime) -> None:
    gate = _build_gate(email_sender)
    issued = gate.handle(
        InboundRequest(
            method="GET",
            headers={"Origin": "https://site.example", "Host": "site.example"},
        ),
        now,
    )
    headers = {
        "X-CSRF-Token": issued.body["token"],
        "X-Session-Id": issued.body["sessionId"],
        "Origin": "https://evil.example",
        "Host": "site.example",
    }

    result = gate.handle(
        InboundRequest(
            method="POST", headers=headers, body=json.dumps(_payload(now)).encode()
        ),
        now,
    )

    assert result.status_code == 403
    assert result.body["details"] == [{"reason": "Invalid origin"}]
    assert email_sender.sent == []


def test_same_origin_submission_is_accepted(email_sender, now: datetime) -> None:
    gate = _build_gate(email_sender)
    origin_headers = {"Origin": "https://site.example", "Host": "site.example"}
    issued = gate.handle(InboundRequest(method="GET", headers=origin_headers), now)
    headers = {
        **origin_headers,
        "X-CSRF-Token": issued.body["token"],
        "X-Session-Id": issued.body["sessionId"],
    }

    result = gate.handle(
        InboundRequest(
            method="POST", headers=headers, body=json.dumps(_payload(now)).encode()
        ),
        now,
    )

    assert result.status_code == 200
    assert result.email_sent
