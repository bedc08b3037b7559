"""Fixed-window rate limiting keyed by client identifier.

A fixed window allows a burst of up to twice the limit across a window
boundary. That is accepted for a low-volume contact form and kept as is.
"""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Mapping
from datetime import datetime, timedelta

from contact_gate.core.datetime_utils import serialize_datetime, to_epoch_millis
from contact_gate.core.models import GateResult, RateLimitCounter, RateLimitResult

LOGGER = logging.getLogger(__name__)

DEFAULT_LIMIT = 5
DEFAULT_WINDOW = timedelta(minutes=15)

# Counters are evicted once they have been stale for this many windows.
_EVICTION_WINDOWS = 2

_IP_HEADERS: tuple[str, ...] = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip")


def derive_identifier(
    headers: Mapping[str, str],
    client_host: str | None = None,
    *,
    now: datetime,
) -> str:
    """Derive the client identifier used as the rate-limit key.

    Priority: first ``X-Forwarded-For`` entry, ``X-Real-IP``,
    ``CF-Connecting-IP``, then the socket peer. Without any of those a
    timestamped fallback keeps unidentifiable clients apart; it is not a
    security boundary.
    """
    lowered = {key.lower(): value for key, value in headers.items()}
    for name in _IP_HEADERS:
        raw = lowered.get(name)
        if not raw:
            continue
        candidate = raw.split(",")[0].strip() if name == "x-forwarded-for" else raw.strip()
        if candidate:
            return candidate
    if client_host:
        return client_host
    return f"unknown-{to_epoch_millis(now)}"


def headers_for(result: RateLimitResult) -> dict[str, str]:
    """Map a limiter decision onto conventional rate-limit response headers."""
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": serialize_datetime(result.reset_at) or "",
    }
    if not result.allowed and result.retry_after_seconds is not None:
        headers["Retry-After"] = str(result.retry_after_seconds)
    return headers


def build_denied_response(result: RateLimitResult) -> GateResult:
    """Return the 429 response for a denied request."""
    retry_after = result.retry_after_seconds or 1
    return GateResult(
        status_code=429,
        body={
            "error": "Too many requests",
            "code": "RATE_LIMIT_EXCEEDED",
            "message": (
                f"Rate limit exceeded. Please wait {retry_after} seconds "
                "before trying again."
            ),
        },
        headers=headers_for(result),
    )


class RateLimiter:
    """Per-identifier fixed-window counters with lazy window resets."""

    def __init__(
        self,
        *,
        limit: int = DEFAULT_LIMIT,
        window: timedelta = DEFAULT_WINDOW,
        sweep_interval: timedelta = timedelta(minutes=30),
    ) -> None:
        self.limit = limit
        self.window = window
        self._sweep_interval = sweep_interval
        self._counters: dict[str, RateLimitCounter] = {}
        self._lock = threading.Lock()
        self._last_sweep: datetime | None = None

    def check_and_increment(self, identifier: str, now: datetime) -> RateLimitResult:
        """Count a request for ``identifier`` and decide whether to allow it."""
        with self._lock:
            counter = self._counters.get(identifier)
            if counter is None or now >= counter.reset_at:
                counter = RateLimitCounter(
                    identifier=identifier,
                    count=1,
                    window_start=now,
                    reset_at=now + self.window,
                )
                self._counters[identifier] = counter
                return RateLimitResult(
                    allowed=True,
                    limit=self.limit,
                    remaining=self.limit - 1,
                    reset_at=counter.reset_at,
                )

            counter.count += 1
            if counter.count <= self.limit:
                return RateLimitResult(
                    allowed=True,
                    limit=self.limit,
                    remaining=self.limit - counter.count,
                    reset_at=counter.reset_at,
                )
            reset_at = counter.reset_at
            count = counter.count

        LOGGER.warning(
            "Rate limit exceeded for %s (%d requests in window)", identifier, count
        )
        return RateLimitResult(
            allowed=False,
            limit=self.limit,
            remaining=0,
            reset_at=reset_at,
            retry_after_seconds=self._retry_after(reset_at, now),
        )

    def peek(self, identifier: str, now: datetime) -> RateLimitResult:
        """Describe the identifier's current allowance without counting."""
        with self._lock:
            counter = self._counters.get(identifier)
            if counter is None or now >= counter.reset_at:
                return RateLimitResult(
                    allowed=True,
                    limit=self.limit,
                    remaining=self.limit,
                    reset_at=now + self.window,
                )
            count = counter.count
            reset_at = counter.reset_at

        if count < self.limit:
            return RateLimitResult(
                allowed=True,
                limit=self.limit,
                remaining=self.limit - count,
                reset_at=reset_at,
            )
        return RateLimitResult(
            allowed=False,
            limit=self.limit,
            remaining=0,
            reset_at=reset_at,
            retry_after_seconds=self._retry_after(reset_at, now),
        )

    def sweep(self, now: datetime) -> int:
        """Evict counters whose window went stale at least two windows ago."""
        stale_after = self.window * (_EVICTION_WINDOWS - 1)
        with self._lock:
            stale = [
                key
                for key, counter in self._counters.items()
                if now >= counter.reset_at + stale_after
            ]
            for key in stale:
                del self._counters[key]
            self._last_sweep = now
        if stale:
            LOGGER.debug("Evicted %d stale rate-limit counters", len(stale))
        return len(stale)

    def maybe_sweep(self, now: datetime) -> int:
        """Sweep when the last sweep is older than the sweep interval."""
        last = self._last_sweep
        if last is not None and now - last < self._sweep_interval:
            return 0
        return self.sweep(now)

    def size(self) -> int:
        """Get current number of tracked identifiers."""
        return len(self._counters)

    @staticmethod
    def _retry_after(reset_at: datetime, now: datetime) -> int:
        return max(1, math.ceil((reset_at - now).total_seconds()))


__all__ = [
    "DEFAULT_LIMIT",
    "DEFAULT_WINDOW",
    "RateLimiter",
    "build_denied_response",
    "derive_identifier",
    "headers_for",
]
