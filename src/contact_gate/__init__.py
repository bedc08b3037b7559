"""Abuse-prevention gate for a contact form endpoint."""

__version__ = "0.1.0"
