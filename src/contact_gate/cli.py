"""Command-line entry point for the contact gate."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from contact_gate.core import (
    AppSettings,
    EnvSecretResolver,
    configure_logging,
    load_app_settings,
)
from contact_gate.core.errors import ConfigurationError
from contact_gate.core.interfaces import SecretResolver


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Contact form abuse gate")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=["info", "check-config"],
        help="Operation to execute.",
    )
    return parser


def execute(
    args: argparse.Namespace, settings: AppSettings, resolver: SecretResolver
) -> int:
    """Execute the requested CLI command and return the exit status."""
    if args.command == "check-config":
        return _check_config(settings, resolver)

    print("Contact gate settings:")
    print(
        f"Rate limit: {settings.rate_limit.max_requests} request(s) per "
        f"{settings.rate_limit.window_seconds}s"
    )
    print(f"CSRF token lifetime: {settings.csrf.token_ttl_seconds}s")
    print(f"Minimum fill-in time: {settings.bot.min_submit_seconds}s")
    print(f"Honeypot policy: {settings.bot.honeypot_policy}")
    print(f"SMTP host: {settings.smtp.host or '(not configured)'}")
    return 0


def _check_config(settings: AppSettings, resolver: SecretResolver) -> int:
    """Resolve every secret the server needs at startup."""
    required = [settings.email.recipient_parameter]
    if settings.smtp.username:
        required.append(settings.smtp.password_parameter)
    try:
        if not settings.smtp.host:
            raise ConfigurationError("SMTP host not configured")
        for name in required:
            resolver.get(name)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1
    print("Configuration OK.")
    return 0


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    sys.exit(execute(args, settings, EnvSecretResolver(args.env_file)))


if __name__ == "__main__":
    main()
