"""Web application entry point for the contact gate.

Serve with an ASGI server in factory mode, e.g.
``uvicorn contact_gate.web:create_app --factory``.
"""

from .app import create_app

__all__ = ["create_app"]
