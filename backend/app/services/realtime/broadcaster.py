# backend/app/services/realtime/broadcaster.py
"""
Room subscription table and event delivery.

Rooms are plain strings: ``user:<id>`` is a user's personal room (every
device of that user), ``conversation:<id>`` is a conversation room.
Delivery to a room iterates over a snapshot of its subscribers, so joins
and leaves that happen while a send is awaiting never corrupt the table.
A failed send to one connection is logged and skipped.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from ...core.constants import CONVERSATION_ROOM_PREFIX, PERSONAL_ROOM_PREFIX
from .connection import Connection

logger = logging.getLogger(__name__)


def personal_room(user_id: str) -> str:
    return f"{PERSONAL_ROOM_PREFIX}{user_id}"


def conversation_room(conversation_id: str) -> str:
    return f"{CONVERSATION_ROOM_PREFIX}{conversation_id}"


class Broadcaster:
    """
    Owns which connection is subscribed to which room and delivers events.

    Injected into every component that emits; nothing reaches for a global.
    """

    def __init__(self) -> None:
        self._connections: Dict[str, Connection] = {}
        self._rooms: Dict[str, Set[str]] = {}
        self._memberships: Dict[str, Set[str]] = {}

    # Subscription table

    def attach(self, connection: Connection) -> None:
        self._connections[connection.connection_id] = connection
        self._memberships.setdefault(connection.connection_id, set())

    def detach(self, connection: Connection) -> Set[str]:
        """Drop the connection from every room; returns the rooms it was in."""
        rooms = self._memberships.pop(connection.connection_id, set())
        for room in rooms:
            subscribers = self._rooms.get(room)
            if subscribers is None:
                continue
            subscribers.discard(connection.connection_id)
            if not subscribers:
                del self._rooms[room]
        self._connections.pop(connection.connection_id, None)
        return rooms

    def subscribe(self, connection: Connection, room: str) -> bool:
        """Add ``connection`` to ``room``; a connection that is not attached is refused."""
        if connection.connection_id not in self._connections:
            logger.debug(f"[WS] Refusing {room} for detached connection {connection.connection_id}")
            return False
        self._rooms.setdefault(room, set()).add(connection.connection_id)
        self._memberships[connection.connection_id].add(room)
        return True

    def unsubscribe(self, connection: Connection, room: str) -> bool:
        subscribers = self._rooms.get(room)
        if not subscribers or connection.connection_id not in subscribers:
            return False
        subscribers.discard(connection.connection_id)
        if not subscribers:
            del self._rooms[room]
        self._memberships.get(connection.connection_id, set()).discard(room)
        return True

    def is_subscribed(self, connection: Connection, room: str) -> bool:
        return connection.connection_id in self._rooms.get(room, ())

    def subscribers(self, room: str) -> List[Connection]:
        return [
            self._connections[cid]
            for cid in list(self._rooms.get(room, ()))
            if cid in self._connections
        ]

    def rooms_of(self, connection: Connection) -> Set[str]:
        return set(self._memberships.get(connection.connection_id, ()))

    # Delivery

    async def emit_to_connection(self, connection: Connection, event: str, data: Any) -> bool:
        return await connection.emit(event, data)

    async def emit_to_room(
        self,
        room: str,
        event: str,
        data: Any,
        *,
        exclude: Optional[Connection] = None,
        exclude_user_id: Optional[str] = None,
    ) -> int:
        """
        Deliver ``event`` to every current subscriber of ``room``.

        Returns the number of connections that accepted the frame.
        """
        targets = [
            conn
            for conn in self.subscribers(room)
            if conn is not exclude and (exclude_user_id is None or conn.user_id != exclude_user_id)
        ]
        return await self._deliver(targets, event, data)

    async def emit_to_user(self, user_id: str, event: str, data: Any) -> int:
        """Deliver to every device of ``user_id``; zero when the user is offline."""
        return await self.emit_to_room(personal_room(user_id), event, data)

    async def emit_to_users(self, user_ids: Iterable[str], event: str, data: Any) -> int:
        targets: List[Connection] = []
        for user_id in set(user_ids):
            targets.extend(self.subscribers(personal_room(user_id)))
        return await self._deliver(targets, event, data)

    async def emit_to_all(
        self, event: str, data: Any, *, exclude_user_id: Optional[str] = None
    ) -> int:
        targets = [
            conn
            for conn in list(self._connections.values())
            if exclude_user_id is None or conn.user_id != exclude_user_id
        ]
        return await self._deliver(targets, event, data)

    async def _deliver(self, targets: List[Connection], event: str, data: Any) -> int:
        if not targets:
            return 0
        results = await asyncio.gather(*(conn.emit(event, data) for conn in targets))
        delivered = sum(1 for ok in results if ok)
        if delivered < len(targets):
            logger.info(f"[WS] {event}: delivered to {delivered}/{len(targets)} connections")
        return delivered
