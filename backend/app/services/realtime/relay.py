# backend/app/services/realtime/relay.py
"""
Message relay and typing indicators.

Sends into the same conversation are serialized by a per-conversation lock
held across persist and broadcast, so every subscriber observes messages
in the order the store accepted them. Sends into different conversations
do not wait on each other.
"""

import asyncio
from contextlib import asynccontextmanager
import logging
from typing import Any, AsyncIterator, Coroutine, Dict, Optional, Set

from ...core.constants import MAX_MESSAGE_LENGTH
from ...core.enums import MessageType
from ...core.exceptions import ForbiddenException, PersistenceException, ValidationException
from ...monitoring.prometheus_metrics import prometheus_metrics
from .broadcaster import Broadcaster, conversation_room
from .connection import Connection, Identity
from .events import ServerEvent, build_new_message, build_typing
from .notifier import MessageNotification, OfflineNotifier, build_preview
from .presence import PresenceRegistry
from .rooms import require_id
from .store import MessageRecord, RealtimeStore

logger = logging.getLogger(__name__)


class _ConversationLocks:
    """Refcounted asyncio locks keyed by conversation id."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._users[conversation_id] = self._users.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[conversation_id] -= 1
            if not self._users[conversation_id]:
                del self._users[conversation_id]
                del self._locks[conversation_id]

    def __len__(self) -> int:
        return len(self._locks)


def parse_message_type(value: Optional[str]) -> MessageType:
    if value is None or value == "":
        return MessageType.TEXT
    try:
        return MessageType(str(value).upper())
    except ValueError:
        raise ValidationException(f"Unsupported message type: {value}", code="invalid_payload")


class MessageRelay:
    def __init__(
        self,
        broadcaster: Broadcaster,
        presence: PresenceRegistry,
        store: RealtimeStore,
        notifier: OfflineNotifier,
    ) -> None:
        self.broadcaster = broadcaster
        self.presence = presence
        self.store = store
        self.notifier = notifier
        self._locks = _ConversationLocks()
        self._background: Set["asyncio.Task[None]"] = set()

    async def send_message(
        self,
        sender: Identity,
        conversation_id: str,
        text: Optional[str],
        *,
        message_type: Optional[str] = None,
        content_url: Optional[str] = None,
    ) -> MessageRecord:
        """
        Persist a message and broadcast it to the conversation room.

        Order inside the conversation lock: membership check, persist
        (which also bumps the conversation's last activity), broadcast.
        Offline members are notified afterwards without blocking the sender.

        Raises:
            ValidationException: empty or oversized text, unknown message type
            ForbiddenException: sender is not a member
            PersistenceException: store failed or timed out; nothing is broadcast
        """
        conversation_id = require_id(conversation_id, "conversationId")
        if not isinstance(text, str) or not text.strip():
            raise ValidationException("Message content cannot be empty", code="empty_message")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise ValidationException(
                f"Message exceeds {MAX_MESSAGE_LENGTH} characters", code="message_too_long"
            )
        kind = parse_message_type(message_type)

        async with self._locks.hold(conversation_id):
            if not await self.store.is_member(conversation_id, sender.user_id):
                raise ForbiddenException(
                    "Not authorized to send to this conversation", code="not_a_member"
                )
            message = await self.store.save_message(
                conversation_id=conversation_id,
                sender_id=sender.user_id,
                content_text=text,
                message_type=kind,
                content_url=content_url,
            )
            payload = build_new_message(
                message_id=message.id,
                conversation_id=message.conversation_id,
                sender_id=message.sender_id,
                message_type=message.message_type.value,
                content_text=message.content_text,
                content_url=message.content_url,
                status=message.status,
                created_at=message.created_at,
                sender_username=sender.display_name,
                sender_photo=sender.photo_url,
            )
            delivered = await self.broadcaster.emit_to_room(
                conversation_room(conversation_id), ServerEvent.NEW_MESSAGE.value, payload
            )

        prometheus_metrics.record_message_sent(kind.value)
        logger.info(
            f"[RELAY] Message {message.id} in {conversation_id} delivered to {delivered} connection(s)"
        )
        self._spawn(self._notify_offline_members(sender, message))
        return message

    async def typing_start(self, connection: Connection, conversation_id: str) -> None:
        await self._relay_typing(connection, conversation_id, ServerEvent.USER_TYPING)

    async def typing_stop(self, connection: Connection, conversation_id: str) -> None:
        await self._relay_typing(connection, conversation_id, ServerEvent.USER_STOPPED_TYPING)

    async def _relay_typing(
        self, connection: Connection, conversation_id: str, event: ServerEvent
    ) -> None:
        conversation_id = require_id(conversation_id, "conversationId")
        room = conversation_room(conversation_id)
        if not self.broadcaster.is_subscribed(connection, room):
            raise ForbiddenException(
                "Join the conversation before sending typing indicators", code="not_in_room"
            )
        await self.broadcaster.emit_to_room(
            room,
            event.value,
            build_typing(connection.user_id, connection.display_name, conversation_id),
            exclude_user_id=connection.user_id,
        )

    async def _notify_offline_members(self, sender: Identity, message: MessageRecord) -> None:
        try:
            members = await self.store.get_members_except(message.conversation_id, sender.user_id)
        except PersistenceException as exc:
            logger.warning(f"[RELAY] Skipping offline notifications for {message.id}: {exc}")
            return
        preview = build_preview(message.content_text)
        for member in members:
            if self.presence.is_online(member.id):
                continue
            await self.notifier.notify(
                MessageNotification(
                    recipient=member,
                    sender_id=sender.user_id,
                    sender_username=sender.display_name,
                    conversation_id=message.conversation_id,
                    message_id=message.id,
                    preview=preview,
                )
            )

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for pending background notifications (shutdown and tests)."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    @property
    def active_conversation_locks(self) -> int:
        return len(self._locks)
