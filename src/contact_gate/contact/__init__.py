"""Contact form admission, validation and notification rendering."""

from .gate import SubmissionGate
from .rendering import render_contact_email
from .schemas import ContactForm, ContactFormValidator, sanitize_input

__all__ = [
    "ContactForm",
    "ContactFormValidator",
    "SubmissionGate",
    "render_contact_email",
    "sanitize_input",
]
