"""Offline notification providers."""

import json

import httpx
import pytest

from app.core.config import Settings
from app.services.realtime.notifier import (
    ConsoleNotificationProvider,
    MessageNotification,
    OfflineNotifier,
    WebhookNotificationProvider,
    build_notifier,
    build_preview,
)
from app.services.realtime.store import UserRecord


def _notification() -> MessageNotification:
    return MessageNotification(
        recipient=UserRecord(id="u2", username="bob", email="bob@example.com"),
        sender_id="u1",
        sender_username="alice",
        conversation_id="c1",
        message_id="m1",
        preview="hello",
    )


@pytest.mark.asyncio
async def test_webhook_posts_json():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(204)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        provider = WebhookNotificationProvider("https://hooks.example.com/n", client=client)
        assert await OfflineNotifier(provider).notify(_notification())

    assert seen[0]["recipientId"] == "u2"
    assert seen[0]["senderUsername"] == "alice"
    assert seen[0]["preview"] == "hello"


@pytest.mark.asyncio
async def test_webhook_failure_is_reported_not_raised():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        provider = WebhookNotificationProvider("https://hooks.example.com/n", client=client)
        assert await OfflineNotifier(provider).notify(_notification()) is False


def test_build_notifier_selects_provider():
    console = build_notifier(Settings(notification_provider="console"))
    webhook = build_notifier(
        Settings(notification_provider="webhook", notification_webhook_url="https://x.example")
    )
    no_url = build_notifier(Settings(notification_provider="webhook", notification_webhook_url=" "))

    assert isinstance(console.provider, ConsoleNotificationProvider)
    assert isinstance(webhook.provider, WebhookNotificationProvider)
    assert isinstance(no_url.provider, ConsoleNotificationProvider)


def test_preview_is_truncated():
    assert build_preview("  short  ") == "short"
    long = build_preview("x" * 200)
    assert len(long) == 80
    assert long.endswith("...")
    assert build_preview(None) == ""
