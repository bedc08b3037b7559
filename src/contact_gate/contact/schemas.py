"""Pydantic schema for contact form submissions."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from contact_gate.core.models import ContactSubmission, ValidationOutcome

LOGGER = logging.getLogger(__name__)

_SCRIPT_BLOCK = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_HTML_TAG = re.compile(r"<[^>]+>")
_JS_PROTOCOL = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)

_NAME_PATTERN = re.compile(r"^[a-zA-Z\s'-]+$")
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_URL_PATTERN = re.compile(r"https?://\S+")
_REPEATED_CHARS = re.compile(r"(.)\1{9,}")

MAX_MESSAGE_URLS = 2
DISPOSABLE_DOMAINS: frozenset[str] = frozenset(
    {
        "tempmail.com",
        "throwaway.email",
        "guerrillamail.com",
        "mailinator.com",
        "10minutemail.com",
    }
)


def sanitize_input(value: str) -> str:
    """Strip markup, script URLs and inline event handlers from user text."""
    cleaned = _SCRIPT_BLOCK.sub("", value)
    cleaned = _HTML_TAG.sub("", cleaned)
    cleaned = _JS_PROTOCOL.sub("", cleaned)
    cleaned = _EVENT_HANDLER.sub("", cleaned)
    return cleaned.strip()


def _valid_email_structure(email: str) -> bool:
    local, _, domain = email.partition("@")
    if len(local) > 64 or local.startswith(".") or local.endswith("."):
        return False
    if ".." in local:
        return False
    if len(domain) > 253 or "." not in domain:
        return False
    return not (domain.startswith(".") or domain.endswith("."))


class ContactForm(BaseModel):
    """Name, email and message fields of the contact form."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str = Field(..., min_length=2, max_length=50)
    email: str = Field(..., min_length=5, max_length=254)
    message: str = Field(..., min_length=10, max_length=1000)

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, value: Any) -> Any:
        """Allow letters, spaces, hyphens and apostrophes only."""
        if not isinstance(value, str):
            return value
        if not _NAME_PATTERN.match(value.strip()):
            raise ValueError(
                "Name can only contain letters, spaces, hyphens, and apostrophes"
            )
        return sanitize_input(value)

    @field_validator("email", mode="before")
    @classmethod
    def validate_email(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        email = sanitize_input(value).lower()
        if not _EMAIL_PATTERN.match(email) or not _valid_email_structure(email):
            raise ValueError("Please enter a valid email address")
        if email.rsplit("@", 1)[1] in DISPOSABLE_DOMAINS:
            raise ValueError("Disposable email addresses are not allowed")
        return email

    @field_validator("message", mode="before")
    @classmethod
    def validate_message(cls, value: Any) -> Any:
        """Reject link-heavy and repeated-character spam."""
        if not isinstance(value, str):
            return value
        message = sanitize_input(value)
        if len(_URL_PATTERN.findall(message)) > MAX_MESSAGE_URLS:
            raise ValueError("Too many URLs detected. Maximum 2 URLs allowed.")
        if _REPEATED_CHARS.search(message):
            raise ValueError("Message appears to be spam")
        return message


def _format_errors(exc: PydanticValidationError) -> tuple[dict[str, str], ...]:
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "body"
        message = str(error.get("msg", "Invalid value")).removeprefix("Value error, ")
        details.append({"field": location, "message": message})
    return tuple(details)


class ContactFormValidator:
    """``SubmissionValidator`` implementation backed by :class:`ContactForm`."""

    def parse(self, payload: Mapping[str, Any]) -> ValidationOutcome:
        """Validate ``payload`` returning sanitised data or field errors."""
        try:
            form = ContactForm.model_validate(dict(payload))
        except PydanticValidationError as exc:
            errors = _format_errors(exc)
            LOGGER.info(
                "Contact form rejected: %s", ", ".join(e["field"] for e in errors)
            )
            return ValidationOutcome(success=False, errors=errors)
        return ValidationOutcome(
            success=True,
            data=ContactSubmission(
                name=form.name, email=form.email, message=form.message
            ),
        )


__all__ = ["ContactForm", "ContactFormValidator", "sanitize_input"]
