"""
TrailSafe - backend/notifications.py
Notification Sender: transactional delivery to a hiker's emergency contact.

Every sender implements send(to, subject, body) -> bool and never raises for
delivery problems; failures are logged and reported as False so the sweep can
record them per hike.
"""

import logging

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client as TwilioClient

from backend.config import require

logger = logging.getLogger(__name__)


class EmailSender:
    """SendGrid email delivery."""

    def __init__(self, api_key: str, from_email: str, timeout: float = 10.0, client=None):
        self.from_email = from_email
        self.client = client or SendGridAPIClient(api_key)
        # python_http_client reads the timeout from the root client
        self.client.client.timeout = timeout

    def send(self, to: str, subject: str, body: str) -> bool:
        try:
            mail = Mail(from_email=self.from_email, to_emails=to, subject=subject, plain_text_content=body)
            response = self.client.send(mail)
        except Exception as e:
            logger.error("SendGrid send to %s failed: %s", to, e)
            return False
        if response.status_code >= 300:
            logger.error("SendGrid rejected email to %s: HTTP %s", to, response.status_code)
            return False
        return True


class SmsSender:
    """Twilio SMS delivery for phone-number contacts."""

    def __init__(self, sid: str, token: str, from_number: str, timeout: float = 10.0, client=None):
        self.from_number = from_number
        self.client = client or TwilioClient(sid, token, http_client=TwilioHttpClient(timeout=timeout))

    def send(self, to: str, subject: str, body: str) -> bool:
        try:
            self.client.messages.create(body=f"{subject}\n\n{body}", from_=self.from_number, to=to)
            return True
        except Exception as e:
            logger.error("Twilio send to %s failed: %s", to, e)
            return False


class ContactNotifier:
    """Routes a message to email or SMS depending on the contact's shape."""

    def __init__(self, email_sender, sms_sender=None):
        self.email_sender = email_sender
        self.sms_sender = sms_sender

    def send(self, to: str, subject: str, body: str) -> bool:
        contact = (to or "").strip()
        if not contact:
            logger.warning("Empty emergency contact; nothing sent")
            return False
        if "@" in contact:
            return self.email_sender.send(contact, subject, body)
        if self.sms_sender is None:
            logger.warning("SMS not configured; cannot notify phone contact %s", contact)
            return False
        return self.sms_sender.send(contact, subject, body)


def build_sender(config) -> ContactNotifier:
    """Build the production sender from app config.

    Raises ConfigurationError when the email credentials are missing; SMS is
    optional and only enabled when all three Twilio settings are present.
    """
    require(config)
    timeout = config.get("NOTIFY_TIMEOUT_SECONDS", 10.0)
    email = EmailSender(config["SENDGRID_API_KEY"], config["NOTIFY_FROM_EMAIL"], timeout=timeout)
    sms = None
    if config.get("TWILIO_SID") and config.get("TWILIO_TOKEN") and config.get("TWILIO_FROM"):
        sms = SmsSender(config["TWILIO_SID"], config["TWILIO_TOKEN"], config["TWILIO_FROM"], timeout=timeout)
        logger.info("Twilio SMS enabled for phone contacts")
    return ContactNotifier(email, sms)
