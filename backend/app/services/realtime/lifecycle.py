# backend/app/services/realtime/lifecycle.py
"""
Connection lifecycle: connect, disconnect and the stale connection sweep.

Presence changes fan out only on real transitions (first connection in,
last connection out). By default they reach the user's contacts and
conversation co-members; ``presence_broadcast_scope = "global"`` sends
them to every live connection instead.
"""

import asyncio
from datetime import datetime, timezone
import logging
from typing import List, Optional

from ...core.config import settings
from ...core.constants import WS_CLOSE_AUTH_TIMEOUT, WS_CLOSE_UNAUTHENTICATED
from ...core.enums import PresenceStatus
from ...core.exceptions import AuthenticationException, PersistenceException
from ...monitoring.prometheus_metrics import prometheus_metrics
from .broadcaster import Broadcaster
from .connection import Connection, Transport
from .events import ServerEvent, build_error, build_online_users, build_status_change
from .presence import PresenceRegistry, PresenceTransition
from .rooms import RoomRouter
from .store import RealtimeStore

logger = logging.getLogger(__name__)


class ConnectionLifecycleManager:
    def __init__(
        self,
        presence: PresenceRegistry,
        broadcaster: Broadcaster,
        rooms: RoomRouter,
        store: RealtimeStore,
        *,
        broadcast_scope: Optional[str] = None,
        sweep_interval_seconds: Optional[float] = None,
        stale_threshold_seconds: Optional[float] = None,
    ) -> None:
        self.presence = presence
        self.broadcaster = broadcaster
        self.rooms = rooms
        self.store = store
        self.broadcast_scope = broadcast_scope or settings.presence_broadcast_scope
        self.sweep_interval_seconds = (
            sweep_interval_seconds
            if sweep_interval_seconds is not None
            else settings.stale_sweep_interval_seconds
        )
        self.stale_threshold_seconds = (
            stale_threshold_seconds
            if stale_threshold_seconds is not None
            else settings.stale_connection_threshold_seconds
        )
        self._sweeper: Optional["asyncio.Task[None]"] = None

    async def connect(self, connection: Connection) -> None:
        """Register an authenticated connection and announce presence."""
        transition = self.presence.register(connection)
        self.broadcaster.attach(connection)
        self.rooms.join_personal_room(connection)
        self._update_gauges()

        if transition is not None:
            await self._broadcast_presence(transition)

        online = await self._visible_online_users(connection.user_id)
        await connection.emit(ServerEvent.ONLINE_USERS.value, build_online_users(online))

    async def disconnect(self, connection: Connection, reason: str = "closed") -> None:
        """Tear down a connection. Safe to call more than once for the same handle."""
        if not self.presence.has_connection(connection.connection_id):
            return
        self.broadcaster.detach(connection)
        transition = self.presence.deregister(connection.user_id, connection.connection_id)
        self._update_gauges()
        logger.info(
            f"[WS] Connection {connection.connection_id} of {connection.user_id} closed ({reason})"
        )
        if transition is not None:
            await self._broadcast_presence(transition)

    async def reject(self, transport: Transport, exc: AuthenticationException) -> None:
        """Refuse a handshake: error event first, then close."""
        code = WS_CLOSE_AUTH_TIMEOUT if exc.is_timeout else WS_CLOSE_UNAUTHENTICATED
        try:
            await transport.send_event(ServerEvent.ERROR.value, build_error(exc.message, exc.code))
        except Exception as send_exc:
            logger.debug(f"[AUTH-WS] Could not deliver rejection: {send_exc}")
        await transport.close(code=code, reason=exc.message)

    async def _broadcast_presence(self, transition: PresenceTransition) -> None:
        payload = build_status_change(transition.user_id, transition.status)
        if self.broadcast_scope == "global":
            await self.broadcaster.emit_to_all(
                ServerEvent.USER_STATUS_CHANGE.value, payload, exclude_user_id=transition.user_id
            )
            return
        try:
            audience = await self.store.get_presence_audience(transition.user_id)
        except PersistenceException as exc:
            logger.warning(
                f"[PRESENCE] Could not resolve audience for {transition.user_id}: {exc}"
            )
            return
        if self._is_superseded(transition):
            logger.info(
                f"[PRESENCE] Dropping stale {transition.status.value} for {transition.user_id}"
            )
            return
        online_audience = audience & self.presence.online_user_ids()
        await self.broadcaster.emit_to_users(
            online_audience, ServerEvent.USER_STATUS_CHANGE.value, payload
        )

    def _is_superseded(self, transition: PresenceTransition) -> bool:
        """True when the registry no longer agrees with ``transition`` (a newer one won)."""
        online_now = self.presence.is_online(transition.user_id)
        return online_now != (transition.status is PresenceStatus.ONLINE)

    async def _visible_online_users(self, user_id: str) -> List[dict]:
        online = self.presence.list_online_users()
        if self.broadcast_scope == "global":
            return online
        try:
            audience = await self.store.get_presence_audience(user_id)
        except PersistenceException as exc:
            logger.warning(f"[PRESENCE] Could not resolve contacts for {user_id}: {exc}")
            return []
        return [u for u in online if u["userId"] in audience]

    def _update_gauges(self) -> None:
        prometheus_metrics.set_presence(self.presence.connection_count, self.presence.user_count)

    # Stale sweep

    async def sweep_once(self, now: Optional[datetime] = None) -> int:
        """Prune connections past the age threshold whose transport is gone."""
        now = now or datetime.now(timezone.utc)
        stale = self.presence.stale_connections(self.stale_threshold_seconds, now)
        for connection in stale:
            await self.disconnect(connection, reason="stale")
        if stale:
            prometheus_metrics.record_stale_pruned(len(stale))
            logger.info(f"[SWEEP] Pruned {len(stale)} stale connection(s)")
        return len(stale)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                await self.sweep_once()
            except Exception:
                logger.exception("[SWEEP] Stale connection sweep failed")

    def start_sweeper(self) -> None:
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep_loop())
            logger.info(f"[SWEEP] Started (every {self.sweep_interval_seconds}s)")

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None
        logger.info("[SWEEP] Stopped")
