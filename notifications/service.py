"""
notifications/service.py -- Email and SMS broadcast to students.

Email goes out over SMTP (STARTTLS + login), SMS through the Twilio REST API
using a shared requests.Session. Missing credentials disable a channel: the
send is refused with NotificationNotConfigured instead of crashing, and the
failure is logged.

Every send attempt, successful or not, appends one Notification row to the
audit log through the registrar store.

Layer rule: no imports from api/. The service receives its Settings and store
by reference from the caller (api/main.py lifespan).
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import TYPE_CHECKING

import requests

from registrar.models import Notification

if TYPE_CHECKING:
    from core.config import Settings
    from registrar.store import RegistrarStore

logger = logging.getLogger("enrollment.notifications")

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

_SENDER_NAME = "Enrollment Office"


class NotificationError(Exception):
    """Base class for delivery problems. Carries the audit row that was written."""

    def __init__(self, message: str, notification: Notification) -> None:
        super().__init__(message)
        self.notification = notification


class NotificationNotConfigured(NotificationError):
    """The channel has no credentials configured."""


class NotificationDeliveryError(NotificationError):
    """The provider refused the message or could not be reached."""


class NotificationService:
    """Send email/SMS and record each attempt.

    Usage:
        service = NotificationService(get_settings(), registrar_store)
        service.send_email(["a@example.com"], "Enrollment open", "<p>...</p>", sent_by=admin.id)
        service.send_sms(["+639171234567"], "Enrollment open", sent_by=admin.id)
    """

    def __init__(self, settings: Settings, store: RegistrarStore) -> None:
        self.settings = settings
        self.store = store
        # Shared for connection pooling across SMS recipients.
        self._session = requests.Session()
        self._session.max_redirects = 3
        if not settings.email_configured:
            logger.warning("SMTP credentials not configured. Email notifications are disabled.")
        if not settings.sms_configured:
            logger.warning("Twilio credentials not configured or invalid. SMS notifications are disabled.")

    # ------------------------------------------------------------------
    # Email
    # ------------------------------------------------------------------

    def send_email(self, recipients: list[str], subject: str, message: str, sent_by: int) -> Notification:
        """Send one message to every recipient (Bcc) and log the outcome.

        Raises NotificationNotConfigured or NotificationDeliveryError; the
        "failed" audit row is written before raising.
        """
        record = Notification(
            type="email", subject=subject, message=message, status="sent",
            sent_by=sent_by, recipient_count=len(recipients),
        )
        if not self.settings.email_configured:
            logger.warning("Email not sent: SMTP is not configured (%d recipients)", len(recipients))
            raise NotificationNotConfigured("Email service is not configured.", self._log_failed(record))

        s = self.settings
        sender = s.smtp_from or s.smtp_user
        msg = MIMEMultipart("alternative")
        msg["From"] = f'"{_SENDER_NAME}" <{sender}>'
        msg["To"] = sender
        msg["Subject"] = subject
        msg.attach(MIMEText(message, "html", "utf-8"))

        try:
            with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=10) as server:
                if s.smtp_use_tls:
                    server.starttls()
                server.login(s.smtp_user, s.smtp_pass)
                server.send_message(msg, from_addr=sender, to_addrs=recipients)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Email delivery failed (%d recipients): %s", len(recipients), e)
            raise NotificationDeliveryError(f"Failed to send email: {e}", self._log_failed(record)) from e

        logger.info("Email sent to %d recipients by user id=%s", len(recipients), sent_by)
        return self.store.log_notification(record)

    # ------------------------------------------------------------------
    # SMS
    # ------------------------------------------------------------------

    def send_sms(self, phone_numbers: list[str], message: str, sent_by: int) -> Notification:
        """Send message to every phone number through Twilio and log the outcome.

        Any single failed recipient marks the whole broadcast as failed.
        """
        record = Notification(
            type="sms", message=message, status="sent", sent_by=sent_by, recipient_count=len(phone_numbers)
        )
        if not self.settings.sms_configured:
            logger.warning("SMS not sent: Twilio is not configured (%d recipients)", len(phone_numbers))
            raise NotificationNotConfigured("SMS service is not configured.", self._log_failed(record))

        s = self.settings
        url = TWILIO_MESSAGES_URL.format(sid=s.twilio_account_sid)
        for phone in phone_numbers:
            try:
                resp = self._session.post(
                    url,
                    data={"To": phone, "From": s.twilio_phone_number, "Body": message},
                    auth=(s.twilio_account_sid, s.twilio_auth_token),
                    timeout=10,
                )
                resp.raise_for_status()
            except requests.RequestException as e:
                logger.error("SMS delivery failed: %s", e)
                raise NotificationDeliveryError(f"Failed to send SMS: {e}", self._log_failed(record)) from e

        logger.info("SMS sent to %d recipients by user id=%s", len(phone_numbers), sent_by)
        return self.store.log_notification(record)

    def _log_failed(self, record: Notification) -> Notification:
        record.status = "failed"
        return self.store.log_notification(record)

    def close(self) -> None:
        self._session.close()
