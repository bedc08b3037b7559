"""SMTP delivery of contact notifications."""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import TYPE_CHECKING

from contact_gate.core.errors import EmailSendError
from contact_gate.core.models import OutgoingEmail

if TYPE_CHECKING:
    from contact_gate.core import SmtpSettings

LOGGER = logging.getLogger(__name__)


class SmtpError(EmailSendError):
    """Raised when SMTP connection, authentication, or sending fails."""


class SmtpClient:
    """SMTP client for sending emails.

    Provides context manager interface for automatic connection management.
    Supports both TLS (STARTTLS) and SSL connections.

    Example:
        >>> settings = SmtpSettings(host="smtp.example.com", username="me")
        >>> with SmtpClient(settings, password="secret") as client:
        ...     client.send(message)
    """

    def __init__(self, settings: SmtpSettings, password: str | None = None) -> None:
        """Initialize SMTP client with configuration.

        Args:
            settings: SMTP configuration settings
            password: Credential resolved from secret storage
        """
        self._settings = settings
        self._password = password
        self._connection: smtplib.SMTP | None = None

    def __enter__(self) -> SmtpClient:
        """Enter context manager, establishing connection."""
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        """Exit context manager, closing connection."""
        self.disconnect()

    def connect(self) -> None:
        """Establish SMTP connection and authenticate.

        Raises:
            SmtpError: If connection or authentication fails
        """
        if not self._settings.host:
            raise SmtpError("SMTP host not configured")

        LOGGER.info(
            "Attempting SMTP connection to %s:%d",
            self._settings.host,
            self._settings.port,
        )

        try:
            if self._settings.use_tls:
                LOGGER.debug("Using STARTTLS for SMTP connection")
                self._connection = smtplib.SMTP(
                    self._settings.host,
                    self._settings.port,
                    timeout=self._settings.timeout_seconds,
                )
                self._connection.starttls()
            else:
                LOGGER.debug("Using SSL for SMTP connection")
                self._connection = smtplib.SMTP_SSL(
                    self._settings.host,
                    self._settings.port,
                    timeout=self._settings.timeout_seconds,
                )

            if self._settings.username and self._password:
                LOGGER.debug("Authenticating as %s", self._settings.username)
                self._connection.login(self._settings.username, self._password)
                LOGGER.info("SMTP authentication successful")

            LOGGER.info("Connected to SMTP server: %s", self._settings.host)

        except smtplib.SMTPAuthenticationError as exc:
            LOGGER.error("SMTP authentication failed: %s", exc)
            raise SmtpError(f"SMTP authentication failed: {exc}") from exc
        except smtplib.SMTPConnectError as exc:
            LOGGER.error("SMTP connection failed: %s", exc)
            raise SmtpError(f"Failed to connect to SMTP server: {exc}") from exc
        except smtplib.SMTPException as exc:
            LOGGER.error("SMTP error: %s", exc)
            raise SmtpError(f"SMTP error: {exc}") from exc
        except OSError as exc:
            LOGGER.error("Network error connecting to SMTP server: %s", exc)
            raise SmtpError(f"Network error: {exc}") from exc

    def disconnect(self) -> None:
        """Close SMTP connection gracefully."""
        if self._connection:
            try:
                self._connection.quit()
                LOGGER.debug("SMTP connection closed")
            except smtplib.SMTPException as exc:
                LOGGER.warning("Error closing SMTP connection: %s", exc)
            finally:
                self._connection = None

    def send(self, message: OutgoingEmail) -> None:
        """Send a rendered notification.

        Raises:
            SmtpError: If sending fails or not connected
        """
        if not self._connection:
            raise SmtpError("Not connected to SMTP server")

        LOGGER.info("Sending contact notification to %s", message.to)

        try:
            refused = self._connection.send_message(self._build_mime_message(message))
        except smtplib.SMTPRecipientsRefused as exc:
            LOGGER.error("All recipients refused: %s", exc)
            raise SmtpError(f"All recipients refused: {exc}") from exc
        except smtplib.SMTPSenderRefused as exc:
            LOGGER.error("Sender refused: %s", exc)
            raise SmtpError(f"Sender refused: {exc}") from exc
        except smtplib.SMTPException as exc:
            LOGGER.error("Failed to send email: %s", exc)
            raise SmtpError(f"Failed to send email: {exc}") from exc

        if refused:
            LOGGER.warning("Some recipients were refused: %s", refused)
            raise SmtpError(f"Some recipients were refused: {refused}")

        LOGGER.info("Contact notification sent to %s", message.to)

    def _build_mime_message(self, message: OutgoingEmail) -> MIMEMultipart:
        """Build a multipart/alternative message with text and HTML parts."""
        mime_msg = MIMEMultipart("alternative")

        from_address = message.from_address
        if self._settings.from_name:
            from_address = formataddr((self._settings.from_name, message.from_address))

        mime_msg["From"] = from_address
        mime_msg["To"] = message.to
        mime_msg["Reply-To"] = message.reply_to
        mime_msg["Subject"] = message.subject

        # Plain text first so clients prefer the HTML part.
        mime_msg.attach(MIMEText(message.text, "plain", "utf-8"))
        mime_msg.attach(MIMEText(message.html, "html", "utf-8"))
        return mime_msg


class SmtpEmailSender:
    """``EmailSender`` that opens one SMTP session per notification."""

    def __init__(self, settings: SmtpSettings, password: str | None = None) -> None:
        self._settings = settings
        self._password = password

    def send(self, message: OutgoingEmail) -> None:
        with SmtpClient(self._settings, self._password) as client:
            client.send(message)


__all__ = ["SmtpClient", "SmtpEmailSender", "SmtpError"]
