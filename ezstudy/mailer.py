import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from .config import Settings, get_settings
from .errors import ConfigurationError
from .models import ContactRequest

logger = logging.getLogger(__name__)


class Mailer:
    """Sends contact-form messages through an SMTP relay with STARTTLS."""

    def __init__(self, host: str, port: int, username: str | None, password: str | None, recipient: str | None):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.recipient = recipient or username

    def is_configured(self) -> bool:
        return bool(self.username and self.password and self.recipient)

    def build_message(self, contact: ContactRequest) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = contact.subject or f"EzStudy contact form: {contact.name}"
        msg["From"] = self.username
        msg["To"] = self.recipient
        msg["Reply-To"] = str(contact.email)
        body = f"Name: {contact.name}\nEmail: {contact.email}\n\n{contact.message}"
        msg.attach(MIMEText(body, "plain"))
        return msg

    def send(self, contact: ContactRequest) -> None:
        """Deliver the message; SMTP errors propagate to the caller."""
        if not self.is_configured():
            raise ConfigurationError("Email delivery is not configured on server")
        msg = self.build_message(contact)
        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            server.starttls()
            server.login(self.username, self.password)
            server.send_message(msg)
        logger.info("Contact email sent for %s", contact.email)


def get_mailer() -> Mailer:
    settings: Settings = get_settings()
    return Mailer(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_user,
        password=settings.smtp_password,
        recipient=settings.contact_recipient,
    )
