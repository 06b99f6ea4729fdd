# backend/app/services/realtime/connection.py
"""
Connection handles and the transport seam beneath them.

A ``Connection`` exists only for an authenticated socket: it is created after
the handshake succeeds and is owned by the presence registry until the
socket closes. Everything above this module talks to ``Transport`` so the
same services run over a FastAPI WebSocket or an in-memory test double.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import logging
from typing import Any, Dict, Optional, Protocol, Tuple

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState
import ulid

from ...core.exceptions import ValidationException
from .events import build_frame

logger = logging.getLogger(__name__)


class TransportClosed(Exception):
    """The peer went away; the receive loop should stop."""


class MalformedFrameException(ValidationException):
    """Inbound frame is not a JSON object with an ``event`` name."""


class Transport(Protocol):
    @property
    def is_connected(self) -> bool: ...

    async def send_event(self, event: str, data: Any) -> None: ...

    async def receive_event(self) -> Tuple[str, Dict[str, Any]]: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...


class Identity(Protocol):
    """Anything that can author a message: a socket connection or a REST caller."""

    user_id: str
    display_name: str
    photo_url: Optional[str]


@dataclass(frozen=True)
class SenderIdentity:
    user_id: str
    display_name: str
    photo_url: Optional[str] = None


@dataclass(eq=False)
class Connection:
    """
    One authenticated socket.

    Attributes:
        transport: Underlying socket
        user_id: Owning user (always set; unauthenticated sockets never get a Connection)
        display_name: Username shown on outbound events
        photo_url: Avatar shown on outbound events
        connection_id: Opaque id, unique per handle
        connected_at: When the handshake completed
    """

    transport: Transport
    user_id: str
    display_name: str
    photo_url: Optional[str] = None
    connection_id: str = field(default_factory=lambda: str(ulid.ULID()))
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _send_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def is_connected(self) -> bool:
        return self.transport.is_connected

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        return ((now or datetime.now(timezone.utc)) - self.connected_at).total_seconds()

    async def emit(self, event: str, data: Any) -> bool:
        """
        Send one event to this connection.

        Returns False instead of raising when the socket is gone; a dead peer
        must never fail delivery to the other subscribers of a room.
        """
        async with self._send_lock:
            try:
                await self.transport.send_event(event, data)
                return True
            except Exception as exc:
                logger.warning(
                    f"[WS] Failed to deliver {event} to connection {self.connection_id}: {exc}",
                    extra={"user_id": self.user_id, "connection_id": self.connection_id},
                )
                return False


class WebSocketTransport:
    """Transport over a Starlette/FastAPI WebSocket using JSON text frames."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    @property
    def is_connected(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_event(self, event: str, data: Any) -> None:
        await self.websocket.send_json(build_frame(event, data))

    async def receive_event(self) -> Tuple[str, Dict[str, Any]]:
        try:
            raw = await self.websocket.receive_text()
        except WebSocketDisconnect as exc:
            raise TransportClosed(f"client closed ({exc.code})") from exc
        except RuntimeError as exc:
            # Starlette raises RuntimeError once the socket is no longer connected
            raise TransportClosed(str(exc)) from exc
        return parse_frame(raw)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.websocket.close(code=code, reason=reason)
        except RuntimeError:
            logger.debug("[WS] close() on an already closed socket")


def parse_frame(raw: str) -> Tuple[str, Dict[str, Any]]:
    """Decode ``{"event": ..., "data": {...}}``; ``data`` defaults to an empty dict."""
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedFrameException("Frame is not valid JSON", code="malformed_frame") from exc
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        raise MalformedFrameException("Frame must include an event name", code="malformed_frame")
    data = frame.get("data")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedFrameException("Frame data must be an object", code="malformed_frame")
    return frame["event"], data
