"""Rendering of the contact notification email."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup, escape

from contact_gate.core.datetime_utils import serialize_datetime, utc_now
from contact_gate.core.models import ContactSubmission, OutgoingEmail

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"


def _nl2br(value: str) -> Markup:
    """Escape ``value`` and turn newlines into ``<br>`` tags."""
    return Markup("<br>\n").join(escape(line) for line in str(value).split("\n"))


_environment = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(enabled_extensions=("html",)),
    trim_blocks=True,
    lstrip_blocks=True,
)
_environment.filters["nl2br"] = _nl2br


def render_subject(submission: ContactSubmission) -> str:
    """Return the notification subject line."""
    return f"New Contact Form Submission from {submission.name}"


def render_contact_email(
    submission: ContactSubmission,
    *,
    recipient: str,
    sender: str,
    site_domain: str,
    submitted_at: datetime | None = None,
) -> OutgoingEmail:
    """Render HTML and plain text bodies for a validated submission."""
    context = {
        "name": submission.name,
        "email": submission.email,
        "message": submission.message,
        "submitted_at": serialize_datetime(submitted_at or utc_now()),
        "site_domain": site_domain,
    }
    html = _environment.get_template("contact_email.html").render(context)
    text = _environment.get_template("contact_email.txt").render(context)
    return OutgoingEmail(
        to=recipient,
        from_address=sender,
        reply_to=submission.email,
        subject=render_subject(submission),
        html=html.strip(),
        text=text.strip(),
    )


__all__ = ["render_contact_email", "render_subject"]
