# backend/app/services/realtime/notifier.py
"""
New-message notifications for conversation members who are offline.

Runs after the message has already been broadcast; a provider failure is
logged and never reaches the sender.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from ...core.config import Settings, settings as default_settings
from .store import UserRecord

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 80


@dataclass(frozen=True)
class MessageNotification:
    recipient: UserRecord
    sender_id: str
    sender_username: str
    conversation_id: str
    message_id: str
    preview: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "recipientId": self.recipient.id,
            "recipientEmail": self.recipient.email,
            "recipientPhone": self.recipient.phone_number,
            "senderId": self.sender_id,
            "senderUsername": self.sender_username,
            "conversationId": self.conversation_id,
            "messageId": self.message_id,
            "preview": self.preview,
        }


def build_preview(text: Optional[str]) -> str:
    if not text:
        return ""
    text = text.strip()
    return text if len(text) <= PREVIEW_LENGTH else text[: PREVIEW_LENGTH - 3] + "..."


class NotificationProvider(Protocol):
    async def send(self, notification: MessageNotification) -> None: ...


class ConsoleNotificationProvider:
    """Development provider: writes the notification to the log."""

    async def send(self, notification: MessageNotification) -> None:
        logger.info(
            f"[NOTIFY] New message for {notification.recipient.username} "
            f"from {notification.sender_username}: {notification.preview!r}",
            extra={
                "recipient_id": notification.recipient.id,
                "conversation_id": notification.conversation_id,
            },
        )


class WebhookNotificationProvider:
    """POSTs each notification as JSON to a configured URL."""

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def send(self, notification: MessageNotification) -> None:
        if self._client is not None:
            response = await self._client.post(
                self.url, json=notification.to_payload(), timeout=self.timeout_seconds
            )
        else:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(self.url, json=notification.to_payload())
        response.raise_for_status()


class OfflineNotifier:
    def __init__(self, provider: NotificationProvider) -> None:
        self.provider = provider

    async def notify(self, notification: MessageNotification) -> bool:
        try:
            await self.provider.send(notification)
            return True
        except Exception as exc:
            logger.warning(
                f"[NOTIFY] Failed to notify {notification.recipient.id} "
                f"about message {notification.message_id}: {exc}"
            )
            return False


def build_notifier(config: Optional[Settings] = None) -> OfflineNotifier:
    config = config or default_settings
    if config.notification_provider == "webhook":
        if not config.notification_webhook_url:
            logger.warning("[NOTIFY] Webhook provider selected without a URL; using console")
            return OfflineNotifier(ConsoleNotificationProvider())
        return OfflineNotifier(
            WebhookNotificationProvider(
                config.notification_webhook_url, config.notification_timeout_seconds
            )
        )
    return OfflineNotifier(ConsoleNotificationProvider())
