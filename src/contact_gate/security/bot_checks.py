"""Secondary bot deterrence: honeypot field and minimum fill-in time."""

from __future__ import annotations

from datetime import datetime

from contact_gate.core.datetime_utils import to_epoch_millis

DEFAULT_MIN_SUBMIT_SECONDS = 3.0


def is_honeypot_triggered(value: object) -> bool:
    """Return ``True`` when the hidden field carries a value.

    Any non-empty string counts, whitespace included: real users never see
    the field. Other values count only when truthy, so ``false`` and ``0``
    from client-side serialisers pass.
    """
    if isinstance(value, str):
        return value != ""
    return bool(value)


def check_submission_timing(
    form_load_time: float | None,
    now: datetime,
    min_seconds: float = DEFAULT_MIN_SUBMIT_SECONDS,
) -> bool:
    """Return ``True`` when enough time passed since the form was loaded.

    ``form_load_time`` is the browser's epoch-millisecond timestamp. A
    missing timestamp passes; one from the future fails.
    """
    if form_load_time is None:
        return True
    elapsed_ms = to_epoch_millis(now) - form_load_time
    return elapsed_ms >= min_seconds * 1000


__all__ = [
    "DEFAULT_MIN_SUBMIT_SECONDS",
    "check_submission_timing",
    "is_honeypot_triggered",
]
