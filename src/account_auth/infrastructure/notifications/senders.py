"""
Notification senders for one-time passcodes.

Delivers codes over email (SMTP) and SMS (Twilio REST API), or records
them locally in mock mode when no provider is configured.
"""

import asyncio
import logging
import smtplib
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import httpx

from account_auth.application.config import NotificationConfig
from account_auth.application.interfaces import (
    DeliveryResult,
    INotificationSender,
    NotificationPayload,
)
from account_auth.domain.value_objects import DeliveryChannel, OtpPurpose, mask_identifier

logger = logging.getLogger(__name__)


SUBJECTS = {
    OtpPurpose.EMAIL_VERIFY: "Verify your email address",
    OtpPurpose.PHONE_VERIFY: "Verify your phone number",
    OtpPurpose.PASSWORD_RESET: "Reset your password",
    OtpPurpose.TWO_FA_SETUP: "Confirm two-factor authentication",
    OtpPurpose.TWO_FA_LOGIN: "Your sign-in code",
    OtpPurpose.EMAIL_UPDATE: "Confirm your new email address",
    OtpPurpose.PHONE_UPDATE: "Confirm your new phone number",
    OtpPurpose.GENERIC_RESEND: "Your verification code",
}


def render_text(payload: NotificationPayload, app_name: str) -> str:
    """Plain text body shared by email and SMS."""
    subject = payload.subject or SUBJECTS.get(payload.purpose, "Your verification code")
    return (
        f"{app_name}: {subject}. Your code is {payload.code}. "
        f"It expires in {payload.expires_in_minutes} minutes. "
        "If you did not request this, you can ignore this message."
    )


@dataclass
class SentNotification:
    """Notification captured by the console sender."""

    channel: DeliveryChannel
    destination: str
    payload: NotificationPayload
    sent_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class ConsoleNotificationSender:
    """
    Mock sender used when no email or SMS provider is configured.

    Keeps every notification in ``outbox`` and logs the delivery. Codes are
    only written to the log when ``reveal_codes`` is set (local development).
    """

    def __init__(self, app_name: str = "Account Auth", reveal_codes: bool = False) -> None:
        self.app_name = app_name
        self.reveal_codes = reveal_codes
        self.outbox: list[SentNotification] = []

    async def send(
        self, channel: DeliveryChannel, destination: str, payload: NotificationPayload
    ) -> DeliveryResult:
        self.outbox.append(SentNotification(channel, destination, payload))
        masked = mask_identifier(destination)
        if self.reveal_codes:
            logger.info(
                f"[mock {channel.value}] {payload.purpose.value} for {masked}: {payload.code}"
            )
        else:
            logger.info(f"[mock {channel.value}] {payload.purpose.value} sent to {masked}")
        return DeliveryResult(delivered=True, provider_message_id=f"mock-{len(self.outbox)}")


class SmtpEmailSender:
    """Email sender over SMTP; the blocking client runs in the default executor."""

    def __init__(self, config: NotificationConfig) -> None:
        self.smtp_host = config.smtp_host
        self.smtp_port = config.smtp_port
        self.smtp_username = config.smtp_username
        self.smtp_password = config.smtp_password
        self.email_from = config.email_from
        self.app_name = config.app_name
        self.timeout = config.timeout_seconds

    async def send(
        self, channel: DeliveryChannel, destination: str, payload: NotificationPayload
    ) -> DeliveryResult:
        if channel is not DeliveryChannel.EMAIL:
            return DeliveryResult(delivered=False, error=f"Unsupported channel {channel.value}")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = (
            f"{self.app_name}: {payload.subject or SUBJECTS.get(payload.purpose, 'Verification')}"
        )
        msg["From"] = self.email_from
        msg["To"] = destination

        text_body = render_text(payload, self.app_name)
        html_body = f"""
        <html>
          <body>
            <p>{SUBJECTS.get(payload.purpose, "Your verification code")}</p>
            <p style="font-size: 24px; letter-spacing: 4px;"><strong>{payload.code}</strong></p>
            <p>This code expires in {payload.expires_in_minutes} minutes.</p>
          </body>
        </html>
        """
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._send_email_sync, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {mask_identifier(destination)}: {e}")
            return DeliveryResult(delivered=False, error=str(e))

        logger.info(f"Email sent to {mask_identifier(destination)}")
        return DeliveryResult(delivered=True)

    def _send_email_sync(self, msg: MIMEMultipart) -> None:
        """Send email synchronously."""
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
            server.starttls()
            if self.smtp_username and self.smtp_password:
                server.login(self.smtp_username, self.smtp_password)
            server.send_message(msg)


class TwilioSmsSender:
    """SMS sender using the Twilio Messages REST API."""

    BASE_URL = "https://api.twilio.com/2010-04-01"

    def __init__(self, config: NotificationConfig, client: httpx.AsyncClient | None = None) -> None:
        self.account_sid = config.twilio_account_sid
        self.auth_token = config.twilio_auth_token
        self.from_number = config.twilio_from_number
        self.app_name = config.app_name
        self.timeout = config.timeout_seconds
        self._client = client

    async def send(
        self, channel: DeliveryChannel, destination: str, payload: NotificationPayload
    ) -> DeliveryResult:
        if channel is not DeliveryChannel.SMS:
            return DeliveryResult(delivered=False, error=f"Unsupported channel {channel.value}")

        url = f"{self.BASE_URL}/Accounts/{self.account_sid}/Messages.json"
        data = {
            "To": destination,
            "From": self.from_number,
            "Body": render_text(payload, self.app_name),
        }
        masked = mask_identifier(destination)

        try:
            if self._client is not None:
                response = await self._client.post(
                    url, data=data, auth=(self.account_sid, self.auth_token)
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        url, data=data, auth=(self.account_sid, self.auth_token)
                    )
        except httpx.HTTPError as e:
            logger.error(f"Twilio request error for {masked}: {e}")
            return DeliveryResult(delivered=False, error=str(e))

        if response.status_code in (200, 201):
            message_id = response.json().get("sid")
            logger.info(f"SMS sent successfully to {masked}")
            return DeliveryResult(delivered=True, provider_message_id=message_id)

        logger.error(f"Twilio HTTP error {response.status_code} for {masked}")
        return DeliveryResult(delivered=False, error=f"Twilio HTTP {response.status_code}")


class CompositeNotificationSender:
    """Routes each notification to the sender registered for its channel."""

    def __init__(self, senders: dict[DeliveryChannel, INotificationSender]) -> None:
        self.senders = senders

    async def send(
        self, channel: DeliveryChannel, destination: str, payload: NotificationPayload
    ) -> DeliveryResult:
        sender = self.senders.get(channel)
        if sender is None:
            logger.warning(f"No notification sender configured for {channel.value}")
            error = f"No sender configured for {channel.value}"
            return DeliveryResult(delivered=False, error=error)
        return await sender.send(channel, destination, payload)


def build_notification_sender(
    config: NotificationConfig, reveal_codes: bool = False
) -> INotificationSender:
    """
    Build the sender for the configured providers.

    Channels without a configured provider fall back to the console sender.
    """
    console = ConsoleNotificationSender(app_name=config.app_name, reveal_codes=reveal_codes)
    email_sender: INotificationSender = console
    sms_sender: INotificationSender = console
    if config.email_configured:
        email_sender = SmtpEmailSender(config)
    if config.sms_configured:
        sms_sender = TwilioSmsSender(config)

    if not (config.email_configured and config.sms_configured):
        logger.warning("Notification provider missing - using mock delivery for some channels")

    return CompositeNotificationSender(
        {DeliveryChannel.EMAIL: email_sender, DeliveryChannel.SMS: sms_sender}
    )
