"""In-memory store of session-bound CSRF tokens with consume-once semantics."""

from __future__ import annotations

import hashlib
import hmac
import logging
import threading
from datetime import datetime, timedelta

from contact_gate.core.logging import redact
from contact_gate.core.models import TokenCheck, TokenRecord

LOGGER = logging.getLogger(__name__)

# Fraction of the oldest records dropped when the store is full of live tokens.
_OVERFLOW_EVICTION_RATIO = 0.1


def sign_token_base(
    secret: str, base: str, session_id: str, origin: str | None = None
) -> str:
    """Return the hex HMAC-SHA256 binding ``base`` to ``session_id`` and ``origin``."""
    return hmac.new(
        secret.encode("utf-8"),
        f"{base}:{session_id}:{origin or ''}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class TokenStore:
    """Process-wide token table keyed by session id.

    Only the most recent token per session is kept. Every read-modify-write
    runs under a single lock so a token can be consumed at most once.
    """

    def __init__(
        self,
        *,
        max_tokens: int = 10_000,
        sweep_interval: timedelta = timedelta(minutes=10),
    ) -> None:
        """Initialise an empty store."""
        self._records: dict[str, TokenRecord] = {}
        self._lock = threading.Lock()
        self._max_tokens = max_tokens
        self._sweep_interval = sweep_interval
        self._last_sweep: datetime | None = None

    def put(self, session_id: str, record: TokenRecord) -> None:
        """Insert or overwrite the token for ``session_id``."""
        with self._lock:
            if session_id not in self._records and len(self._records) >= self._max_tokens:
                self._make_room(record.issued_at)
            self._records[session_id] = record
        LOGGER.debug("Stored CSRF token for session %s", redact(session_id))

    def take_if_valid(
        self,
        session_id: str,
        presented_token: str,
        now: datetime,
        origin: str | None = None,
    ) -> TokenCheck:
        """Consume the token for ``session_id`` if ``presented_token`` matches.

        Returns ``TokenCheck.MISSING`` for absent or expired records.
        ``TokenCheck.ORIGIN_MISMATCH`` means the token was issued to another
        ``origin``; ``TokenCheck.MISMATCH`` means the presented value differs
        from the stored one. The stored token survives both mismatches.
        """
        with self._lock:
            record = self._records.get(session_id)
            if record is None:
                return TokenCheck.MISSING
            if record.is_expired(now):
                del self._records[session_id]
                LOGGER.debug("CSRF token expired for session %s", redact(session_id))
                return TokenCheck.MISSING
            if record.origin and origin != record.origin:
                return TokenCheck.ORIGIN_MISMATCH
            if not self._matches(record, presented_token):
                return TokenCheck.MISMATCH
            del self._records[session_id]
        return TokenCheck.VALID

    def sweep(self, now: datetime) -> int:
        """Remove all expired records."""
        with self._lock:
            removed = self._sweep_locked(now)
            self._last_sweep = now
        if removed:
            LOGGER.debug("Swept %d expired CSRF tokens", removed)
        return removed

    def maybe_sweep(self, now: datetime) -> int:
        """Sweep when the last sweep is older than the sweep interval."""
        last = self._last_sweep
        if last is not None and now - last < self._sweep_interval:
            return 0
        return self.sweep(now)

    def size(self) -> int:
        """Get current number of stored tokens."""
        return len(self._records)

    def clear(self) -> None:
        """Drop every stored token."""
        with self._lock:
            self._records.clear()

    @staticmethod
    def _matches(record: TokenRecord, presented_token: str) -> bool:
        base, _, signature = presented_token.partition(".")
        expected_signature = sign_token_base(
            record.secret, base, record.session_id, record.origin
        )
        # Both comparisons always run so the cost does not depend on where
        # the mismatch occurs.
        token_ok = hmac.compare_digest(
            record.token.encode("utf-8"), presented_token.encode("utf-8")
        )
        signature_ok = hmac.compare_digest(
            expected_signature.encode("utf-8"), signature.encode("utf-8")
        )
        return token_ok and signature_ok

    def _sweep_locked(self, now: datetime) -> int:
        expired = [key for key, rec in self._records.items() if rec.is_expired(now)]
        for key in expired:
            del self._records[key]
        return len(expired)

    def _make_room(self, now: datetime) -> None:
        self._sweep_locked(now)
        if len(self._records) < self._max_tokens:
            return
        oldest = sorted(self._records.values(), key=lambda rec: rec.issued_at)
        evict_count = max(1, int(self._max_tokens * _OVERFLOW_EVICTION_RATIO))
        for record in oldest[:evict_count]:
            del self._records[record.session_id]
        LOGGER.warning(
            "CSRF token store full; evicted %d oldest tokens", evict_count
        )


__all__ = ["TokenStore", "sign_token_base"]
