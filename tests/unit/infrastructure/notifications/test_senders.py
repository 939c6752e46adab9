"""
Unit tests for OTP notification senders.
"""

import smtplib
from unittest.mock import patch

import httpx
import pytest

from account_auth.application.config import NotificationConfig
from account_auth.application.interfaces import NotificationPayload
from account_auth.domain.value_objects import DeliveryChannel, OtpPurpose
from account_auth.infrastructure.notifications import (
    CompositeNotificationSender,
    ConsoleNotificationSender,
    SmtpEmailSender,
    TwilioSmsSender,
    build_notification_sender,
)
from account_auth.infrastructure.notifications.senders import render_text

PAYLOAD = NotificationPayload(purpose=OtpPurpose.PHONE_VERIFY, code="482913", expires_in_minutes=2)


@pytest.fixture
def twilio_config():
    return NotificationConfig(
        twilio_account_sid="AC123",
        twilio_auth_token="auth-token",
        twilio_from_number="+15005550006",
        app_name="Acme",
    )


def test_render_text():
    text = render_text(PAYLOAD, "Acme")

    assert text.startswith("Acme: Verify your phone number.")
    assert "482913" in text
    assert "2 minutes" in text


class TestConsoleNotificationSender:
    @pytest.mark.asyncio
    async def test_records_outbox(self):
        sender = ConsoleNotificationSender()

        result = await sender.send(DeliveryChannel.SMS, "+14155550100", PAYLOAD)

        assert result.delivered
        assert result.provider_message_id == "mock-1"
        assert sender.outbox[0].destination == "+14155550100"
        assert sender.outbox[0].payload.code == "482913"

    @pytest.mark.asyncio
    async def test_codes_hidden_from_logs_by_default(self, caplog):
        with caplog.at_level("INFO"):
            await ConsoleNotificationSender().send(DeliveryChannel.SMS, "+14155550100", PAYLOAD)

        assert "482913" not in caplog.text
        assert "+14155550100" not in caplog.text

    @pytest.mark.asyncio
    async def test_reveal_codes(self, caplog):
        with caplog.at_level("INFO"):
            await ConsoleNotificationSender(reveal_codes=True).send(
                DeliveryChannel.SMS, "+14155550100", PAYLOAD
            )

        assert "482913" in caplog.text


class TestTwilioSmsSender:
    @pytest.mark.asyncio
    async def test_send_success(self, twilio_config):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"sid": "SM42"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            sender = TwilioSmsSender(twilio_config, client=client)
            result = await sender.send(DeliveryChannel.SMS, "+14155550100", PAYLOAD)

        assert result.delivered
        assert result.provider_message_id == "SM42"
        request = requests[0]
        assert request.url.path == "/2010-04-01/Accounts/AC123/Messages.json"
        assert request.headers["authorization"].startswith("Basic ")
        body = request.content.decode()
        assert "To=%2B14155550100" in body
        assert "482913" in body

    @pytest.mark.asyncio
    async def test_http_error_status(self, twilio_config):
        transport = httpx.MockTransport(lambda request: httpx.Response(400, json={}))
        async with httpx.AsyncClient(transport=transport) as client:
            result = await TwilioSmsSender(twilio_config, client=client).send(
                DeliveryChannel.SMS, "+14155550100", PAYLOAD
            )

        assert not result.delivered
        assert result.error == "Twilio HTTP 400"

    @pytest.mark.asyncio
    async def test_network_error(self, twilio_config):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await TwilioSmsSender(twilio_config, client=client).send(
                DeliveryChannel.SMS, "+14155550100", PAYLOAD
            )

        assert not result.delivered
        assert "connection refused" in result.error

    @pytest.mark.asyncio
    async def test_rejects_email_channel(self, twilio_config):
        result = await TwilioSmsSender(twilio_config).send(
            DeliveryChannel.EMAIL, "jane@example.com", PAYLOAD
        )

        assert not result.delivered


class TestSmtpEmailSender:
    @pytest.mark.asyncio
    async def test_send(self):
        sender = SmtpEmailSender(NotificationConfig(smtp_host="smtp.example.com"))

        with patch.object(sender, "_send_email_sync") as send_sync:
            result = await sender.send(DeliveryChannel.EMAIL, "jane@example.com", PAYLOAD)

        assert result.delivered
        message = send_sync.call_args.args[0]
        assert message["To"] == "jane@example.com"
        assert message["Subject"] == "Account Auth: Verify your phone number"

    @pytest.mark.asyncio
    async def test_smtp_failure(self):
        sender = SmtpEmailSender(NotificationConfig(smtp_host="smtp.example.com"))

        with patch.object(
            sender, "_send_email_sync", side_effect=smtplib.SMTPException("relay denied")
        ):
            result = await sender.send(DeliveryChannel.EMAIL, "jane@example.com", PAYLOAD)

        assert not result.delivered
        assert result.error == "relay denied"


class TestCompositeNotificationSender:
    @pytest.mark.asyncio
    async def test_routes_by_channel(self):
        email, sms = ConsoleNotificationSender(), ConsoleNotificationSender()
        sender = CompositeNotificationSender(
            {DeliveryChannel.EMAIL: email, DeliveryChannel.SMS: sms}
        )

        await sender.send(DeliveryChannel.SMS, "+14155550100", PAYLOAD)

        assert len(sms.outbox) == 1
        assert email.outbox == []

    @pytest.mark.asyncio
    async def test_missing_channel(self):
        result = await CompositeNotificationSender({}).send(
            DeliveryChannel.EMAIL, "jane@example.com", PAYLOAD
        )

        assert not result.delivered

    def test_build_falls_back_to_console(self, twilio_config):
        sender = build_notification_sender(twilio_config)

        assert isinstance(sender.senders[DeliveryChannel.EMAIL], ConsoleNotificationSender)
        assert isinstance(sender.senders[DeliveryChannel.SMS], TwilioSmsSender)
