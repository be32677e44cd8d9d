"""
Mail Transports

SMTPMailer delivers through an SMTP relay; LogMailer only logs the
message and is selected when no SMTP host is configured (development).
"""

import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Optional

from reqapprove.errors import MailDeliveryFailure
from reqapprove.utils.config_loader import SMTPSettings


class Mailer(ABC):
    """Contract for the mail transport"""

    @abstractmethod
    def send(self, to: str, subject: str, html_body: str, text_body: Optional[str] = None) -> None:
        """
        Send one HTML email.

        Raises:
            MailDeliveryFailure: The message could not be handed to the transport
        """


class SMTPMailer(Mailer):
    """Deliver mail through an SMTP relay"""

    def __init__(self, settings: SMTPSettings, timeout: float = 15.0):
        if not settings.host:
            raise ValueError("SMTPMailer requires an SMTP host")

        self.settings = settings
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _build_message(sender: str, to: str, subject: str, html_body: str, text_body: Optional[str]) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = to
        msg.set_content(text_body or "This message requires an HTML-capable mail client.")
        msg.add_alternative(html_body, subtype="html")
        return msg

    def send(self, to: str, subject: str, html_body: str, text_body: Optional[str] = None) -> None:
        # Header values containing CR/LF are refused by the email package
        try:
            msg = self._build_message(self.settings.from_address, to, subject, html_body, text_body)
        except ValueError as exc:
            raise MailDeliveryFailure(to, f"Unusable message header: {exc}") from exc

        try:
            with smtplib.SMTP(self.settings.host, self.settings.port, timeout=self.timeout) as server:
                if self.settings.use_tls:
                    server.starttls()
                if self.settings.username and self.settings.password:
                    server.login(self.settings.username, self.settings.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailDeliveryFailure(to, f"{type(exc).__name__}: {exc}") from exc

        self.logger.info(f"Sent '{subject}' to {to}")


class LogMailer(Mailer):
    """Development transport: log instead of sending"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def send(self, to: str, subject: str, html_body: str, text_body: Optional[str] = None) -> None:
        self.logger.info(
            f"[dev mail] to={to} subject={subject!r}",
            extra={'extra_fields': {'html_length': len(html_body)}}
        )


def create_mailer(settings: SMTPSettings) -> Mailer:
    """SMTPMailer when a host is configured, otherwise LogMailer"""
    if settings.host:
        return SMTPMailer(settings)
    logging.getLogger(__name__).warning("No SMTP host configured, using LogMailer")
    return LogMailer()
