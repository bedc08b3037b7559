"""Core utilities for configuration, logging, and dependency wiring."""

from .config import AppSettings, SmtpSettings, load_app_settings
from .container import ServiceContainer
from .logging import configure_logging
from .secrets import EnvSecretResolver

__all__ = [
    "AppSettings",
    "EnvSecretResolver",
    "ServiceContainer",
    "SmtpSettings",
    "configure_logging",
    "load_app_settings",
]
