"""Protocol interfaces for decoupling components."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from .models import OutgoingEmail, ValidationOutcome


class EmailSender(Protocol):
    """Abstraction over a transactional email provider."""

    def send(self, message: OutgoingEmail) -> None:
        """Deliver the message or raise ``EmailSendError``."""
        raise NotImplementedError


class SecretResolver(Protocol):
    """Abstraction over parameter/secret storage."""

    def get(self, name: str) -> str:
        """Return the secret value or raise ``ConfigurationError``."""
        raise NotImplementedError


class SubmissionValidator(Protocol):
    """Schema validation for the contact form payload."""

    def parse(self, payload: Mapping[str, Any]) -> ValidationOutcome:
        """Validate ``payload`` returning sanitised data or field errors."""
        raise NotImplementedError


__all__ = ["EmailSender", "SecretResolver", "SubmissionValidator"]
