# vms_monitor/services/delivery_channels.py
"""
Outbound delivery channels: email over SMTP, SMS over Twilio.

Both expose the same narrow contract:  await channel.send(destination, ...)
  - returns on success
  - raises ChannelDeliveryError on failure (never fails silently)
  - raises ConfigurationError when the channel is not configured

smtplib and the Twilio client are blocking, so sends run in a worker thread.
"""

import asyncio
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from vms_monitor.config import Settings
from vms_monitor.errors import ChannelDeliveryError, ConfigurationError
from vms_monitor.utils.logger import get_logger

logger = get_logger(__name__)


class EmailChannel:
    name = "email"

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def enabled(self) -> bool:
        return bool(self.settings.SMTP_HOST)

    async def send(self, to: str, subject: str, body: str):
        if not self.enabled:
            raise ConfigurationError("Email channel disabled: SMTP_HOST not set")
        if not to:
            raise ConfigurationError("Email recipient missing")
        await asyncio.to_thread(self._send_sync, to, subject, body)
        logger.info(f"[DELIVERY] Email sent to {to}: {subject}")

    def _send_sync(self, to: str, subject: str, body: str):
        s = self.settings
        msg = MIMEMultipart()
        msg["From"] = s.SMTP_FROM
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain", "utf-8"))

        try:
            with smtplib.SMTP(s.SMTP_HOST, s.SMTP_PORT, timeout=s.SMTP_TIMEOUT_SECONDS) as server:
                if s.SMTP_USE_TLS:
                    server.starttls()
                if s.SMTP_USERNAME and s.SMTP_PASSWORD:
                    server.login(s.SMTP_USERNAME, s.SMTP_PASSWORD)
                server.sendmail(s.SMTP_FROM, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise ChannelDeliveryError(self.name, to, str(e)) from e


class SmsChannel:
    name = "sms"

    def __init__(self, settings: Settings):
        self.settings = settings
        self._client = None

    @property
    def enabled(self) -> bool:
        s = self.settings
        return bool(s.TWILIO_ACCOUNT_SID and s.TWILIO_AUTH_TOKEN and s.TWILIO_FROM_NUMBER)

    def _get_client(self) -> Client:
        if self._client is None:
            self._client = Client(self.settings.TWILIO_ACCOUNT_SID, self.settings.TWILIO_AUTH_TOKEN)
        return self._client

    async def send(self, to: str, message: str):
        if not self.enabled:
            raise ConfigurationError("SMS channel disabled: Twilio credentials not set")
        if not to:
            raise ConfigurationError("SMS recipient missing")
        sid = await asyncio.to_thread(self._send_sync, to, message)
        logger.info(f"[DELIVERY] SMS sent to {to} (sid={sid})")

    def _send_sync(self, to: str, message: str) -> str:
        try:
            result = self._get_client().messages.create(
                body=message,
                from_=self.settings.TWILIO_FROM_NUMBER,
                to=to,
            )
        except (TwilioException, OSError) as e:
            raise ChannelDeliveryError(self.name, to, str(e)) from e
        return result.sid


class DeliveryChannels:
    """Bundle of the outbound channels handed to each tick."""

    def __init__(self, email: EmailChannel, sms: SmsChannel):
        self.email = email
        self.sms = sms

    @classmethod
    def from_settings(cls, settings: Settings) -> "DeliveryChannels":
        return cls(EmailChannel(settings), SmsChannel(settings))
