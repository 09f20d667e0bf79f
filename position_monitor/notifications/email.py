"""Email notification service."""
import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from ..config import EmailConfig
from ..models import AlertChannel

logger = logging.getLogger(__name__)


class EmailNotifier:
    """Send notifications via email."""

    def __init__(self, config: EmailConfig) -> None:
        self.alert_email = config.alert_email
        self.smtp_server = config.smtp_server
        self.smtp_port = config.smtp_port
        self.sender_email = config.sender_email
        self.sender_password = config.sender_password

    @property
    def channel(self) -> AlertChannel:
        return AlertChannel.EMAIL

    def _deliver(self, msg: MIMEMultipart) -> None:
        server = smtplib.SMTP(self.smtp_server, self.smtp_port)
        try:
            server.starttls()
            server.login(self.sender_email, self.sender_password)
            server.send_message(msg)
        finally:
            server.quit()

    async def send_alert(
        self, message: str, subject: str = "", recipient: str | None = None
    ) -> bool:
        """Send email alert; ``recipient`` overrides the configured address."""
        to_address = recipient or self.alert_email
        if not to_address:
            logger.debug("No alert email configured, skipping email")
            return False

        if not self.sender_email or not self.sender_password:
            logger.warning("Email credentials not configured")
            return False

        msg = MIMEMultipart()
        msg["From"] = self.sender_email
        msg["To"] = to_address
        msg["Subject"] = subject

        msg.attach(MIMEText(message, "plain"))

        try:
            await asyncio.to_thread(self._deliver, msg)
            logger.info("Alert email sent to %s", to_address)
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email: %s", e)
            return False

    async def send_log(self, message: str, silent: bool = True) -> bool:
        """Email notifier does not support log messages — no-op."""
        return False
