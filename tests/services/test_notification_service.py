"""Tests for the notification dispatcher and the Brevo email sender."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from annotation_hub.services.email_sender import EmailDeliveryError, EmailSender
from annotation_hub.services.notification_service import (
    Notification,
    NotificationDispatcher,
    NotificationKind,
)


def note(to_email, ref=None, kind=NotificationKind.APPLICATION_APPROVED):
    return Notification.build(kind, to_email, ("Subject", "<p>Body</p>", "Body"), ref=ref)


class TestNotificationDispatcher:
    """Tests for NotificationDispatcher."""

    @pytest.mark.asyncio
    async def test_empty_outbox(self):
        sender = MagicMock()
        sender.send = AsyncMock()

        report = await NotificationDispatcher(sender=sender).dispatch([])

        assert report.sent == 0
        assert report.all_sent
        sender.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failures_are_reported_not_raised(self):
        sender = MagicMock()

        async def send(to_email, **kwargs):
            if to_email == "down@example.com":
                raise EmailDeliveryError("Email API returned 500")
            return "msg"

        sender.send = AsyncMock(side_effect=send)
        outbox = [note("a@example.com", "inv-1"), note("down@example.com", "inv-2"), note("b@example.com")]

        report = await NotificationDispatcher(sender=sender).dispatch(outbox)

        assert report.sent == 2
        assert report.failed == 1
        assert not report.all_sent
        assert report.failed_refs() == {"inv-2"}
        failure = report.to_dict()["failures"][0]
        assert failure["to_email"] == "down@example.com"
        assert failure["kind"] == "application_approved"
        assert "500" in failure["error"]

    @pytest.mark.asyncio
    async def test_sender_receives_rendered_fields(self):
        sender = MagicMock()
        sender.send = AsyncMock(return_value="msg")
        notification = Notification.build(
            NotificationKind.INVOICE_REMINDER, "ada@example.com", ("Reminder", "<b>pay</b>", "pay"), to_name="Ada"
        )

        await NotificationDispatcher(sender=sender).dispatch([notification])

        sender.send.assert_awaited_once_with(
            to_email="ada@example.com", subject="Reminder", html="<b>pay</b>", text="pay", to_name="Ada"
        )

    @pytest.mark.asyncio
    async def test_large_outbox_sends_are_capped(self):
        in_flight = {"now": 0, "peak": 0}

        async def send(**kwargs):
            in_flight["now"] += 1
            in_flight["peak"] = max(in_flight["peak"], in_flight["now"])
            await asyncio.sleep(0)
            in_flight["now"] -= 1
            return "msg"

        sender = MagicMock()
        sender.send = AsyncMock(side_effect=send)
        outbox = [note(f"worker{i}@example.com", f"inv-{i}") for i in range(25)]

        report = await NotificationDispatcher(sender=sender, max_concurrency=4).dispatch(outbox)

        assert report.sent == 25
        assert in_flight["peak"] == 4


class TestEmailSender:
    """Tests for EmailSender."""

    @pytest.mark.asyncio
    async def test_disabled_sender_skips(self):
        sender = EmailSender(api_key="key", enabled=False)

        with patch("annotation_hub.services.email_sender.httpx.AsyncClient") as mock_client:
            assert await sender.send("ada@example.com", "Hi", "<p>Hi</p>") is None
            mock_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        sender = EmailSender(api_key="", enabled=True)

        with pytest.raises(EmailDeliveryError, match="not configured"):
            await sender.send("ada@example.com", "Hi", "<p>Hi</p>")

    @pytest.mark.asyncio
    async def test_posts_payload_and_returns_message_id(self):
        sender = EmailSender(api_url="https://mail.example.com/send", api_key="key", enabled=True)
        response = httpx.Response(
            201, json={"messageId": "<abc@mail>"}, request=httpx.Request("POST", "https://mail.example.com/send")
        )
        client = MagicMock()
        client.post = AsyncMock(return_value=response)

        with patch("annotation_hub.services.email_sender.httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value = client
            message_id = await sender.send("ada@example.com", "Hi", "<p>Hi</p>", text="Hi", to_name="Ada")

        assert message_id == "<abc@mail>"
        payload = client.post.await_args.kwargs["json"]
        assert payload["to"] == [{"email": "ada@example.com", "name": "Ada"}]
        assert payload["textContent"] == "Hi"
        assert client.post.await_args.kwargs["headers"]["api-key"] == "key"

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        sender = EmailSender(api_url="https://mail.example.com/send", api_key="key", enabled=True)
        response = httpx.Response(
            401, text="unauthorized", request=httpx.Request("POST", "https://mail.example.com/send")
        )
        client = MagicMock()
        client.post = AsyncMock(return_value=response)

        with patch("annotation_hub.services.email_sender.httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value = client
            with pytest.raises(EmailDeliveryError, match="401"):
                await sender.send("ada@example.com", "Hi", "<p>Hi</p>")

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        sender = EmailSender(api_key="key", enabled=True)
        client = MagicMock()
        client.post = AsyncMock(side_effect=httpx.ReadTimeout("slow"))

        with patch("annotation_hub.services.email_sender.httpx.AsyncClient") as mock_client:
            mock_client.return_value.__aenter__.return_value = client
            with pytest.raises(EmailDeliveryError, match="timed out"):
                await sender.send("ada@example.com", "Hi", "<p>Hi</p>")
