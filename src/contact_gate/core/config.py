"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field


class CsrfSettings(BaseModel):
    """Settings controlling CSRF token issuance and validation."""

    token_ttl_seconds: int = Field(
        default=60 * 60, ge=1, description="Lifetime of an issued token"
    )
    max_tokens: int = Field(
        default=10_000, ge=1, description="Upper bound on stored tokens"
    )
    sweep_interval_seconds: int = Field(
        default=10 * 60, ge=1, description="Minimum spacing between sweeps"
    )
    rotate_on_success: bool = Field(
        default=True, description="Issue a replacement token after validation"
    )
    cookie_name: str = Field(
        default="contact_session", description="Cookie carrying the session id"
    )
    secure_cookie: bool = Field(
        default=False, description="Mark the session cookie as Secure"
    )


class RateLimitSettings(BaseModel):
    """Fixed-window rate limiting for contact submissions."""

    max_requests: int = Field(default=5, ge=1, description="Requests per window")
    window_seconds: int = Field(
        default=15 * 60, ge=1, description="Fixed window length"
    )
    sweep_interval_seconds: int = Field(
        default=30 * 60, ge=1, description="Minimum spacing between sweeps"
    )


class BotSettings(BaseModel):
    """Secondary bot deterrence checks."""

    min_submit_seconds: float = Field(
        default=3.0, ge=0.0, description="Minimum time between form load and submit"
    )
    honeypot_policy: Literal["silent", "reject"] = Field(
        default="silent",
        description="Silently accept or reject submissions that fill the honeypot",
    )


class EmailSettings(BaseModel):
    """Contact notification addressing."""

    sender_address: str = Field(
        default="contact@localhost", description="Envelope sender address"
    )
    recipient_parameter: str = Field(
        default="CONTACT_GATE_RECIPIENT_EMAIL",
        description="Secret name holding the recipient address",
    )
    site_domain: str = Field(
        default="localhost", description="Domain mentioned in notification footers"
    )


class SmtpSettings(BaseModel):
    """Settings for the outgoing SMTP connection."""

    host: str | None = Field(default=None, description="SMTP hostname")
    port: int = Field(default=587, description="SMTP port")
    username: str | None = Field(default=None, description="Account username")
    password_parameter: str = Field(
        default="CONTACT_GATE_SMTP_PASSWORD",
        description="Secret name holding the SMTP password",
    )
    use_tls: bool = Field(default=True, description="STARTTLS instead of SSL")
    from_name: str | None = Field(default=None, description="Sender display name")
    timeout_seconds: int = Field(default=30, ge=1, description="Socket timeout")


class SecurityHeaderSettings(BaseModel):
    """Hardening headers added to every HTTP response."""

    hsts_enabled: bool = Field(
        default=False, description="Send Strict-Transport-Security (HTTPS deployments)"
    )
    hsts_max_age_seconds: int = Field(
        default=365 * 24 * 60 * 60, ge=0, description="HSTS max-age directive"
    )


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle JSON structured logging"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    csrf: CsrfSettings = Field(default_factory=CsrfSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    bot: BotSettings = Field(default_factory=BotSettings)
    email: EmailSettings = Field(default_factory=EmailSettings)
    smtp: SmtpSettings = Field(default_factory=SmtpSettings)
    headers: SecurityHeaderSettings = Field(default_factory=SecurityHeaderSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_PREFIX = "CONTACT_GATE_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool = True
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values: dict[str, str] = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        # Single-segment keys name secrets, not settings sections.
        if len(path) < 2:
            continue
        normalized_value: Any = value
        if isinstance(value, str) and value == "":
            normalized_value = None
        elif isinstance(value, str):
            lowercase_value = value.lower()
            if lowercase_value == "true":
                normalized_value = True
            elif lowercase_value == "false":
                normalized_value = False
        _merge_into_tree(collected, path, normalized_value)

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment=include_environment)
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AppSettings",
    "BotSettings",
    "CsrfSettings",
    "EmailSettings",
    "LoggingSettings",
    "RateLimitSettings",
    "SecurityHeaderSettings",
    "SmtpSettings",
    "load_app_settings",
]
