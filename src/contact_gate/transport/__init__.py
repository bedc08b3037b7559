"""Transport adapters for external email providers."""

from .smtp_client import SmtpClient, SmtpEmailSender, SmtpError

__all__ = ["SmtpClient", "SmtpEmailSender", "SmtpError"]
