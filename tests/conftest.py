"""Shared fixtures for contact gate tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

import pytest

from contact_gate.core.errors import ConfigurationError, EmailSendError
from contact_gate.core.models import OutgoingEmail

FIXED_NOW = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)


class RecordingEmailSender:
    """Email sender capturing messages instead of delivering them."""

    def __init__(self) -> None:
        self.sent: list[OutgoingEmail] = []

    def send(self, message: OutgoingEmail) -> None:
        self.sent.append(message)


class FailingEmailSender:
    """Email sender simulating a provider outage."""

    def __init__(self) -> None:
        self.attempts = 0

    def send(self, message: OutgoingEmail) -> None:
        del message
        self.attempts += 1
        raise EmailSendError("provider said: API key sk_live_123 revoked")


class StaticSecretResolver:
    """Secret resolver reading from a fixed mapping."""

    def __init__(self, values: dict[str, str]) -> None:
        self._values = values

    def get(self, name: str) -> str:
        try:
            return self._values[name]
        except KeyError as exc:
            raise ConfigurationError(f"Missing required secret: {name}") from exc


class MutableClock:
    """Clock returning a settable instant."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def failing_sender() -> FailingEmailSender:
    return FailingEmailSender()


@pytest.fixture
def secret_resolver() -> StaticSecretResolver:
    return StaticSecretResolver(
        {"CONTACT_GATE_RECIPIENT_EMAIL": "owner@example.org"}
    )


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(FIXED_NOW)


@pytest.fixture
def make_static_resolver() -> Callable[[dict[str, str]], StaticSecretResolver]:
    return StaticSecretResolver
