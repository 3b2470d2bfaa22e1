"""
Mail transport - sends HTML email over SMTP (Gmail app password by default).
Synchronous, one attempt per call, no built-in retry.
"""

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Optional

from huduma.config import HudumaConfig, get_config
from huduma.exceptions import NotificationDeliveryError
from huduma.models import DeliveryResult, NotificationChannel

logger = logging.getLogger(__name__)


class EmailChannel:
    """SMTP email channel"""

    channel = NotificationChannel.EMAIL

    def __init__(self, config: Optional[HudumaConfig] = None):
        self.config = config or get_config()

    def _connect(self) -> smtplib.SMTP:
        host = self.config.smtp_host
        port = self.config.smtp_port
        timeout = self.config.smtp_timeout
        context = ssl.create_default_context()

        if port == 465:
            return smtplib.SMTP_SSL(host, port, context=context, timeout=timeout)

        server = smtplib.SMTP(host, port, timeout=timeout)
        server.starttls(context=context)
        return server

    def send(self, to: str, subject: str, html: str) -> DeliveryResult:
        """
        Send one HTML email.

        Args:
            to: Recipient address
            subject: Subject line
            html: HTML body

        Returns:
            DeliveryResult with the generated Message-ID

        Raises:
            NotificationDeliveryError: On any SMTP, network or credential failure
        """
        if not self.config.email_enabled:
            raise NotificationDeliveryError("SMTP credentials not configured")

        sender = self.config.smtp_user
        message_id = make_msgid(domain=sender.split("@")[-1])

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.config.get_sender_address()
        msg["To"] = to
        msg["Message-ID"] = message_id
        msg.attach(MIMEText(html, "html", "utf-8"))

        try:
            server = self._connect()
            try:
                server.login(sender, self.config.smtp_password)
                server.sendmail(sender, [to], msg.as_string())
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP send to {to} failed: {e}")
            raise NotificationDeliveryError(str(e) or e.__class__.__name__) from e

        logger.info(f"Email sent to {to} via {self.config.smtp_host}")
        return DeliveryResult(provider_message_id=message_id)
