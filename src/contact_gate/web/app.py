"""FastAPI application exposing the CSRF token and contact endpoints."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from contact_gate.contact import ContactFormValidator, SubmissionGate
from contact_gate.core import (
    AppSettings,
    EnvSecretResolver,
    ServiceContainer,
    load_app_settings,
)
from contact_gate.core.config import SecurityHeaderSettings
from contact_gate.core.datetime_utils import utc_now
from contact_gate.core.errors import ConfigurationError
from contact_gate.core.interfaces import EmailSender, SecretResolver
from contact_gate.core.models import GateResult, InboundRequest
from contact_gate.security import CsrfProtector, RateLimiter, TokenStore
from contact_gate.transport import SmtpEmailSender

LOGGER = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parents[3]
_DEFAULT_ENV_FILE = _PROJECT_ROOT / ".env"
_ENV_FILE_OVERRIDE_VAR = "CONTACT_GATE_ENV_FILE"

_CONTACT_METHODS = ["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"]


def _resolve_env_file() -> Path | None:
    override = os.environ.get(_ENV_FILE_OVERRIDE_VAR)
    if override:
        return Path(override)
    return _DEFAULT_ENV_FILE if _DEFAULT_ENV_FILE.is_file() else None


def build_container(
    settings: AppSettings,
    *,
    secret_resolver: SecretResolver,
    email_sender: EmailSender | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> ServiceContainer:
    """Wire stores, checks and collaborators for one application instance.

    Required secrets are resolved here so misconfiguration fails at startup.
    """
    container = ServiceContainer()
    recipient = secret_resolver.get(settings.email.recipient_parameter)

    if email_sender is None:
        if not settings.smtp.host:
            raise ConfigurationError("SMTP host not configured")
        password = None
        if settings.smtp.username:
            password = secret_resolver.get(settings.smtp.password_parameter)
        email_sender = SmtpEmailSender(settings.smtp, password)
    container.register_instance("email_sender", email_sender)

    container.register(
        "token_store",
        lambda _: TokenStore(
            max_tokens=settings.csrf.max_tokens,
            sweep_interval=timedelta(seconds=settings.csrf.sweep_interval_seconds),
        ),
    )
    container.register(
        "csrf",
        lambda c: CsrfProtector(
            store=c.resolve("token_store"),
            ttl=timedelta(seconds=settings.csrf.token_ttl_seconds),
            rotate_on_success=settings.csrf.rotate_on_success,
            cookie_name=settings.csrf.cookie_name,
        ),
    )
    container.register(
        "rate_limiter",
        lambda _: RateLimiter(
            limit=settings.rate_limit.max_requests,
            window=timedelta(seconds=settings.rate_limit.window_seconds),
            sweep_interval=timedelta(
                seconds=settings.rate_limit.sweep_interval_seconds
            ),
        ),
    )
    container.register(
        "gate",
        lambda c: SubmissionGate(
            csrf=c.resolve("csrf"),
            rate_limiter=c.resolve("rate_limiter"),
            email_sender=c.resolve("email_sender"),
            validator=ContactFormValidator(),
            recipient=recipient,
            sender_address=settings.email.sender_address,
            site_domain=settings.email.site_domain,
            min_submit_seconds=settings.bot.min_submit_seconds,
            honeypot_policy=settings.bot.honeypot_policy,
            clock=clock,
        ),
    )
    return container


def security_headers(settings: SecurityHeaderSettings) -> dict[str, str]:
    """Return the hardening headers attached to every response."""
    headers = {
        "X-Content-Type-Options": "nosniff",
        "X-Frame-Options": "DENY",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "X-XSS-Protection": "1; mode=block",
    }
    if settings.hsts_enabled:
        headers["Strict-Transport-Security"] = (
            f"max-age={settings.hsts_max_age_seconds}; includeSubDomains; preload"
        )
    return headers


def _to_inbound(request: Request, body: bytes = b"") -> InboundRequest:
    return InboundRequest(
        method=request.method,
        headers=dict(request.headers.items()),
        body=body,
        client_host=request.client.host if request.client else None,
    )


def _to_response(result: GateResult) -> JSONResponse:
    return JSONResponse(
        content=result.body, status_code=result.status_code, headers=result.headers
    )


def create_app(
    settings: AppSettings | None = None,
    *,
    email_sender: EmailSender | None = None,
    secret_resolver: SecretResolver | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    env_file = _resolve_env_file()
    app_settings = settings or load_app_settings(env_file=env_file)
    resolver = secret_resolver or EnvSecretResolver(env_file)
    container = build_container(
        app_settings,
        secret_resolver=resolver,
        email_sender=email_sender,
        clock=clock,
    )
    gate: SubmissionGate = container.resolve("gate")
    csrf: CsrfProtector = container.resolve("csrf")

    app = FastAPI(title="Contact Gate")
    app.state.container = container
    hardening_headers = security_headers(app_settings.headers)

    @app.middleware("http")
    async def add_security_headers(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        response = await call_next(request)
        response.headers.update(hardening_headers)
        return response

    def respond(request: Request, result: GateResult) -> JSONResponse:
        response = _to_response(result)
        session_id = result.body.get("sessionId")
        if session_id:
            secure = app_settings.csrf.secure_cookie or request.url.scheme == "https"
            csrf.set_cookie(response, session_id, secure=secure)
        return response

    @app.get("/healthz")
    async def healthz() -> dict[str, Any]:
        return {"status": "ok"}

    @app.get("/api/csrf")
    async def issue_csrf_token(request: Request) -> JSONResponse:
        """Issue a token bound to the caller's session, creating one if needed."""
        return respond(request, gate.handle(_to_inbound(request)))

    @app.api_route("/api/contact", methods=_CONTACT_METHODS)
    async def contact(request: Request) -> JSONResponse:
        body = await request.body()
        # SMTP delivery blocks, keep it off the event loop.
        result = await asyncio.to_thread(gate.handle, _to_inbound(request, body))
        return respond(request, result)

    LOGGER.info(
        "Contact gate ready (limit %d per %ds, honeypot policy %s)",
        app_settings.rate_limit.max_requests,
        app_settings.rate_limit.window_seconds,
        app_settings.bot.honeypot_policy,
    )
    return app


__all__ = ["build_container", "create_app", "security_headers"]
