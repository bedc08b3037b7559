"""Tests for the consume-once CSRF token store."""

from __future__ import annotations

import secrets
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta

from contact_gate.core.models import TokenCheck, TokenRecord
from contact_gate.security.token_store import TokenStore, sign_token_base


def _record(session_id: str, issued_at: datetime, ttl: timedelta = timedelta(hours=1)) -> TokenRecord:
    secret = secrets.token_hex(32)
    base = secrets.token_hex(32)
    return TokenRecord(
        session_id=session_id,
        token=f"{base}.{sign_token_base(secret, base, session_id)}",
        secret=secret,
        issued_at=issued_at,
        expires_at=issued_at + ttl,
    )


def test_token_can_only_be_taken_once(now: datetime) -> None:
    store = TokenStore()
    record = _record("session-a", now)
    store.put("session-a", record)

    assert store.take_if_valid("session-a", record.token, now) is TokenCheck.VALID
    assert store.take_if_valid("session-a", record.token, now) is TokenCheck.MISSING
    assert store.size() == 0


def test_mismatch_keeps_the_stored_token(now: datetime) -> None:
    store = TokenStore()
    record = _record("session-a", now)
    store.put("session-a", record)
    forged = _record("session-a", now).token

    assert store.take_if_valid("session-a", forged, now) is TokenCheck.MISMATCH
    assert store.take_if_valid("session-a", record.token, now) is TokenCheck.VALID


def test_token_is_bound_to_its_session(now: datetime) -> None:
    store = TokenStore()
    record_a = _record("session-a", now)
    store.put("session-a", record_a)
    store.put("session-b", _record("session-b", now))

    assert store.take_if_valid("session-b", record_a.token, now) is TokenCheck.MISMATCH
    assert store.take_if_valid("session-c", record_a.token, now) is TokenCheck.MISSING


def test_expiry_boundary(now: datetime) -> None:
    store = TokenStore()
    ttl = timedelta(hours=1)
    epsilon = timedelta(milliseconds=1)

    fresh = _record("fresh", now, ttl)
    store.put("fresh", fresh)
    assert store.take_if_valid("fresh", fresh.token, now + ttl - epsilon) is TokenCheck.VALID

    stale = _record("stale", now, ttl)
    store.put("stale", stale)
    assert store.take_if_valid("stale", stale.token, now + ttl + epsilon) is TokenCheck.MISSING
    assert store.size() == 0


def test_overwrite_invalidates_previous_token(now: datetime) -> None:
    store = TokenStore()
    first = _record("session-a", now)
    second = _record("session-a", now)
    store.put("session-a", first)
    store.put("session-a", second)

    assert store.take_if_valid("session-a", first.token, now) is TokenCheck.MISMATCH
    assert store.take_if_valid("session-a", second.token, now) is TokenCheck.VALID


def test_sweep_removes_only_expired_records(now: datetime) -> None:
    store = TokenStore()
    store.put("old", _record("old", now - timedelta(hours=2)))
    store.put("new", _record("new", now))

    assert store.sweep(now) == 1
    assert store.size() == 1


def test_maybe_sweep_is_throttled(now: datetime) -> None:
    store = TokenStore(sweep_interval=timedelta(minutes=10))
    store.maybe_sweep(now)
    store.put("old", _record("old", now - timedelta(hours=2)))

    assert store.maybe_sweep(now + timedelta(minutes=5)) == 0
    assert store.maybe_sweep(now + timedelta(minutes=10)) == 1


def test_full_store_evicts_oldest_live_tokens(now: datetime) -> None:
    store = TokenStore(max_tokens=10)
    for index in range(10):
        store.put(f"s{index}", _record(f"s{index}", now + timedelta(seconds=index)))

    newest = _record("newest", now + timedelta(minutes=1))
    store.put("newest", newest)

    assert store.size() == 10
    assert store.take_if_valid("s0", "x.y", now) is TokenCheck.MISSING
    assert store.take_if_valid("newest", newest.token, now) is TokenCheck.VALID


def test_concurrent_consumption_has_a_single_winner(now: datetime) -> None:
    store = TokenStore()
    record = _record("session-a", now)
    store.put("session-a", record)

    with ThreadPoolExecutor(max_workers=16) as pool:
        outcomes = list(
            pool.map(
                lambda _: store.take_if_valid("session-a", record.token, now),
                range(64),
            )
        )

    assert outcomes.count(TokenCheck.VALID) == 1
    assert outcomes.count(TokenCheck.MISSING) == 63


def test_origin_mismatch_keeps_the_token(now: datetime) -> None:
    store = TokenStore()
    secret = secrets.token_hex(32)
    base = secrets.token_hex(32)
    origin = "https://site.example"
    record = TokenRecord(
        session_id="session-a",
        token=f"{base}.{sign_token_base(secret, base, 'session-a', origin)}",
        secret=secret,
        issued_at=now,
        expires_at=now + timedelta(hours=1),
        origin=origin,
    )
    store.put("session-a", record)

    assert (
        store.take_if_valid("session-a", record.token, now, "https://evil.example")
        is TokenCheck.ORIGIN_MISMATCH
    )
    assert store.take_if_valid("session-a", record.token, now) is TokenCheck.ORIGIN_MISMATCH
    assert store.take_if_valid("session-a", record.token, now, origin) is TokenCheck.VALID


def test_signature_covers_the_origin() -> None:
    assert sign_token_base("k", "base", "sid") == sign_token_base("k", "base", "sid", "")
    assert sign_token_base("k", "base", "sid") != sign_token_base(
        "k", "base", "sid", "https://site.example"
    )
