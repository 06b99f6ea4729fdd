# backend/tests/helpers/realtime.py
"""Fakes and small helpers shared by the realtime tests."""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from app.auth import create_access_token
from app.models.user import User
from app.services.realtime.connection import Connection, TransportClosed
from app.services.realtime.notifier import MessageNotification


class FakeTransport:
    """In-memory transport that records outbound frames."""

    def __init__(self, *, fail_sends: bool = False) -> None:
        self.sent: List[Tuple[str, Any]] = []
        self.connected = True
        self.fail_sends = fail_sends
        self.closed_with: Optional[Tuple[int, str]] = None
        self.inbound: "asyncio.Queue[Optional[Tuple[str, Dict[str, Any]]]]" = asyncio.Queue()

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def send_event(self, event: str, data: Any) -> None:
        if self.fail_sends or not self.connected:
            raise RuntimeError("socket is closed")
        self.sent.append((event, data))

    async def receive_event(self) -> Tuple[str, Dict[str, Any]]:
        frame = await self.inbound.get()
        if frame is None:
            raise TransportClosed("client closed")
        return frame

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.connected = False
        self.closed_with = (code, reason)

    def push(self, event: str, data: Optional[Dict[str, Any]] = None) -> None:
        self.inbound.put_nowait((event, data or {}))

    def hang_up(self) -> None:
        self.inbound.put_nowait(None)

    def events(self, name: str) -> List[Any]:
        return [data for event, data in self.sent if event == name]

    def names(self) -> List[str]:
        return [event for event, _ in self.sent]

    def clear(self) -> None:
        self.sent.clear()


class RecordingProvider:
    """Notification provider that keeps what it was asked to send."""

    def __init__(self, *, fail: bool = False) -> None:
        self.sent: List[MessageNotification] = []
        self.fail = fail

    async def send(self, notification: MessageNotification) -> None:
        if self.fail:
            raise RuntimeError("provider unavailable")
        self.sent.append(notification)


def frames(connection: Connection) -> FakeTransport:
    transport = connection.transport
    assert isinstance(transport, FakeTransport)
    return transport


def token_for(user: User) -> str:
    return create_access_token(user.id)


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user)}"}
