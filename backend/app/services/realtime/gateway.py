# backend/app/services/realtime/gateway.py
"""
Realtime gateway: wires the realtime services together and dispatches
inbound socket events to them.

Each connection's events are handled one at a time in arrival order. A
handler failure becomes an ``error`` event for the originating connection
only; the connection stays open and other connections are unaffected.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ...core.exceptions import AuthenticationException, DomainException, ValidationException
from ...monitoring.prometheus_metrics import prometheus_metrics
from ...schemas.realtime import (
    CallAnswerPayload,
    CallIdPayload,
    CallOfferPayload,
    ConversationPayload,
    IceCandidatePayload,
    SendMessagePayload,
)
from .authenticator import SocketAuthenticator
from .broadcaster import Broadcaster
from .calls import CallSignalingBroker
from .connection import Connection, Transport, TransportClosed
from .events import ClientEvent, ServerEvent, build_error
from .lifecycle import ConnectionLifecycleManager
from .notifier import OfflineNotifier, build_notifier
from .presence import PresenceRegistry
from .relay import MessageRelay
from .rooms import RoomRouter
from .store import RealtimeStore

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=BaseModel)
Handler = Callable[[Connection, Dict[str, Any]], Awaitable[None]]


def parse_payload(model: Type[P], data: Dict[str, Any]) -> P:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ValidationException(
            "Invalid event payload",
            code="invalid_payload",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


class RealtimeGateway:
    def __init__(
        self,
        store: Optional[RealtimeStore] = None,
        notifier: Optional[OfflineNotifier] = None,
        *,
        broadcast_scope: Optional[str] = None,
        auth_timeout_seconds: Optional[float] = None,
    ) -> None:
        self.store = store or RealtimeStore()
        self.presence = PresenceRegistry()
        self.broadcaster = Broadcaster()
        self.authenticator = SocketAuthenticator(self.store, auth_timeout_seconds)
        self.rooms = RoomRouter(self.broadcaster, self.store)
        self.relay = MessageRelay(
            self.broadcaster, self.presence, self.store, notifier or build_notifier()
        )
        self.calls = CallSignalingBroker(self.broadcaster, self.store)
        self.lifecycle = ConnectionLifecycleManager(
            self.presence, self.broadcaster, self.rooms, self.store, broadcast_scope=broadcast_scope
        )
        self._handlers: Dict[str, Handler] = {
            ClientEvent.JOIN_CONVERSATION.value: self._on_join_conversation,
            ClientEvent.LEAVE_CONVERSATION.value: self._on_leave_conversation,
            ClientEvent.SEND_MESSAGE.value: self._on_send_message,
            ClientEvent.TYPING_START.value: self._on_typing_start,
            ClientEvent.TYPING_STOP.value: self._on_typing_stop,
            ClientEvent.CALL_OFFER.value: self._on_call_offer,
            ClientEvent.CALL_ANSWER.value: self._on_call_answer,
            ClientEvent.CALL_REJECT.value: self._on_call_reject,
            ClientEvent.CALL_END.value: self._on_call_end,
            ClientEvent.ICE_CANDIDATE.value: self._on_ice_candidate,
        }

    async def serve(self, transport: Transport, token: Optional[str]) -> None:
        """
        Run one socket from handshake to teardown.

        The transport must already be accepted. Rejected handshakes get an
        ``error`` event and a close code; accepted ones are registered,
        served until the peer goes away, and then torn down.
        """
        try:
            user = await self.authenticator.authenticate(token)
        except AuthenticationException as exc:
            await self.lifecycle.reject(transport, exc)
            return

        connection = Connection(
            transport=transport,
            user_id=user.user_id,
            display_name=user.username,
            photo_url=user.photo_url,
        )
        await self.lifecycle.connect(connection)
        try:
            while True:
                try:
                    event, data = await transport.receive_event()
                except TransportClosed:
                    break
                except ValidationException as exc:
                    await connection.emit(ServerEvent.ERROR.value, build_error(exc.message, exc.code))
                    continue
                await self.handle_event(connection, event, data)
        finally:
            await self.lifecycle.disconnect(connection)

    async def handle_event(self, connection: Connection, event: str, data: Dict[str, Any]) -> None:
        handler = self._handlers.get(event)
        if handler is None:
            logger.info(f"[WS] Unknown event {event!r} from {connection.user_id}")
            await connection.emit(
                ServerEvent.ERROR.value, build_error(f"Unknown event: {event}", "unknown_event")
            )
            return
        try:
            await handler(connection, data)
        except DomainException as exc:
            prometheus_metrics.record_handler_error(event, exc.__class__.__name__)
            logger.info(
                f"[WS] {event} from {connection.user_id} failed: {exc.message}",
                extra={"event": event, "code": exc.code},
            )
            await connection.emit(ServerEvent.ERROR.value, build_error(exc.message, exc.code))
        except Exception as exc:
            prometheus_metrics.record_handler_error(event, exc.__class__.__name__)
            logger.exception(f"[WS] Unhandled error in {event} handler for {connection.user_id}")
            await connection.emit(
                ServerEvent.ERROR.value, build_error("Internal server error", "internal_error")
            )

    async def shutdown(self) -> None:
        await self.lifecycle.stop_sweeper()
        await self.relay.drain()
        for connection in self.presence.connections():
            await connection.transport.close(code=1001, reason="Server shutting down")
            await self.lifecycle.disconnect(connection, reason="shutdown")

    # Handlers

    async def _on_join_conversation(self, connection: Connection, data: Dict[str, Any]) -> None:
        payload = parse_payload(ConversationPayload, data)
        await self.rooms.join_conversation(connection, payload.conversation_id)

    async def _on_leave_conversation(self, connection: Connection, data: Dict[str, Any]) -> None:
        payload = parse_payload(ConversationPayload, data)
        await self.rooms.leave_conversation(connection, payload.conversation_id)

    async def _on_send_message(self, connection: Connection, data: Dict[str, Any]) -> None:
        payload = parse_payload(SendMessagePayload, data)
        await self.relay.send_message(
            connection,
            payload.conversation_id,
            payload.message,
            message_type=payload.message_type,
            content_url=payload.content_url,
        )

    async def _on_typing_start(self, connection: Connection, data: Dict[str, Any]) -> None:
        payload = parse_payload(ConversationPayload, data)
        await self.relay.typing_start(connection, payload.conversation_id)

    async def _on_typing_stop(self, connection: Connection, data: Dict[str, Any]) -> None:
        payload = parse_payload(ConversationPayload, data)
        await self.relay.typing_stop(connection, payload.conversation_id)

    async def _on_call_offer(self, connection: Connection, data: Dict[str, Any]) -> None:
        payload = parse_payload(CallOfferPayload, data)
        await self.calls.offer(connection, payload.target_user_id, payload.offer, payload.call_type)

    async def _on_call_answer(self, connection: Connection, data: Dict[str, Any]) -> None:
        payload = parse_payload(CallAnswerPayload, data)
        await self.calls.answer(connection, payload.call_id, payload.answer)

    async def _on_call_reject(self, connection: Connection, data: Dict[str, Any]) -> None:
        payload = parse_payload(CallIdPayload, data)
        await self.calls.reject(connection, payload.call_id)

    async def _on_call_end(self, connection: Connection, data: Dict[str, Any]) -> None:
        payload = parse_payload(CallIdPayload, data)
        await self.calls.end(connection, payload.call_id)

    async def _on_ice_candidate(self, connection: Connection, data: Dict[str, Any]) -> None:
        payload = parse_payload(IceCandidatePayload, data)
        await self.calls.ice_candidate(connection, payload.target_user_id, payload.candidate)
