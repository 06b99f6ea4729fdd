# backend/app/services/realtime/presence.py
"""
Presence registry.

Tracks which connections each user holds. A user is online exactly while
they hold at least one connection, so ``register`` reports a transition
only for the first connection and ``deregister`` only for the last.

The registry is mutated from the event loop thread only. Handlers that
hop to worker threads (store calls) never touch it.
"""

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Dict, List, Optional, Set

from ...core.enums import PresenceStatus
from .connection import Connection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PresenceTransition:
    user_id: str
    status: PresenceStatus


class PresenceRegistry:
    def __init__(self) -> None:
        self._connections: Dict[str, Connection] = {}
        self._by_user: Dict[str, Set[str]] = {}

    def register(self, connection: Connection) -> Optional[PresenceTransition]:
        """
        Add a connection for its user.

        Returns an ONLINE transition when this is the user's first live
        connection, otherwise None.
        """
        if connection.connection_id in self._connections:
            return None
        self._connections[connection.connection_id] = connection
        held = self._by_user.setdefault(connection.user_id, set())
        first = not held
        held.add(connection.connection_id)
        logger.info(
            f"[PRESENCE] User {connection.user_id} connected ({len(held)} connection(s))",
            extra={"user_id": connection.user_id, "connection_id": connection.connection_id},
        )
        return PresenceTransition(connection.user_id, PresenceStatus.ONLINE) if first else None

    def deregister(self, user_id: str, connection_id: str) -> Optional[PresenceTransition]:
        """
        Remove a connection.

        Returns an OFFLINE transition when it was the user's last connection.
        Removing an unknown connection is a no-op that returns None.
        """
        held = self._by_user.get(user_id)
        if held is None or connection_id not in held:
            return None
        held.discard(connection_id)
        self._connections.pop(connection_id, None)
        if held:
            logger.info(f"[PRESENCE] User {user_id} closed a connection ({len(held)} left)")
            return None
        del self._by_user[user_id]
        logger.info(f"[PRESENCE] User {user_id} is offline")
        return PresenceTransition(user_id, PresenceStatus.OFFLINE)

    def is_online(self, user_id: str) -> bool:
        return bool(self._by_user.get(user_id))

    def has_connection(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def connections(self) -> List[Connection]:
        return list(self._connections.values())

    def connections_for(self, user_id: str) -> List[Connection]:
        return [self._connections[cid] for cid in self._by_user.get(user_id, ())]

    def online_user_ids(self) -> Set[str]:
        return set(self._by_user)

    def list_online_users(self) -> List[Dict[str, str]]:
        """Every online user with a display name taken from one of their connections."""
        users: List[Dict[str, str]] = []
        for user_id, held in self._by_user.items():
            conn = self._connections[next(iter(held))]
            users.append({"userId": user_id, "username": conn.display_name})
        return users

    def stale_connections(self, older_than_seconds: float, now: datetime) -> List[Connection]:
        """Connections older than the threshold whose transport reports disconnected."""
        return [
            conn
            for conn in self.connections()
            if conn.age_seconds(now) > older_than_seconds and not conn.is_connected
        ]

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    @property
    def user_count(self) -> int:
        return len(self._by_user)
