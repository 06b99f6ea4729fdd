# backend/app/services/realtime/calls.py
"""
Call signaling broker.

Relays WebRTC offers, answers and ICE candidates between two users and
keeps the persisted call record in step. Every status change goes through
the store's guarded transition: a request that the current status does not
allow (answering a call that was already rejected, ending twice) changes
nothing and delivers nothing.

Signaling targets a user's personal room, so every device of the target
rings and a user with no live connections simply receives nothing.
"""

import logging
from typing import Any, Optional

from ...core.enums import CallStatus, CallType
from ...core.exceptions import ForbiddenException, PersistenceException, ValidationException
from ...monitoring.prometheus_metrics import prometheus_metrics
from .broadcaster import Broadcaster
from .connection import Connection
from .events import ServerEvent, build_error, build_incoming_call
from .rooms import require_id
from .store import CallRecord, RealtimeStore

logger = logging.getLogger(__name__)

_CALL_TYPE_ALIASES = {"voice": CallType.AUDIO}


def parse_call_type(value: Optional[str]) -> CallType:
    if value is None or value == "":
        return CallType.VIDEO
    normalized = str(value).lower()
    if normalized in _CALL_TYPE_ALIASES:
        return _CALL_TYPE_ALIASES[normalized]
    try:
        return CallType(normalized)
    except ValueError:
        raise ValidationException(f"Unsupported call type: {value}", code="invalid_payload")


class CallSignalingBroker:
    def __init__(self, broadcaster: Broadcaster, store: RealtimeStore) -> None:
        self.broadcaster = broadcaster
        self.store = store

    async def offer(
        self,
        connection: Connection,
        target_user_id: str,
        offer: Any,
        call_type: Optional[str] = None,
    ) -> Optional[CallRecord]:
        """
        Create a RINGING call and ring every device of the target.

        A store failure is reported to the caller as ``call_error``.
        """
        target_user_id = require_id(target_user_id, "targetUserId")
        if target_user_id == connection.user_id:
            raise ValidationException("Cannot call yourself", code="invalid_target")
        kind = parse_call_type(call_type)

        try:
            call = await self.store.create_call(connection.user_id, target_user_id, kind)
        except PersistenceException as exc:
            logger.error(f"[CALLS] Failed to create call from {connection.user_id}: {exc}")
            await connection.emit(
                ServerEvent.CALL_ERROR.value,
                build_error("Failed to initiate call", code="call_create_failed"),
            )
            return None

        prometheus_metrics.record_call_transition(CallStatus.RINGING.value)
        await connection.emit(
            ServerEvent.CALL_INITIATED.value,
            {"callId": call.id, "targetUserId": target_user_id, "callType": kind.value},
        )
        delivered = await self.broadcaster.emit_to_user(
            target_user_id,
            ServerEvent.INCOMING_CALL.value,
            build_incoming_call(
                call_id=call.id,
                caller_id=connection.user_id,
                caller_username=connection.display_name,
                offer=offer,
                call_type=kind.value,
            ),
        )
        logger.info(
            f"[CALLS] Call {call.id} {connection.user_id} -> {target_user_id} ringing "
            f"on {delivered} device(s)"
        )
        return call

    async def answer(self, connection: Connection, call_id: str, answer: Any) -> None:
        call = await self._load_for(connection, call_id, callee_only=True, action="answer")
        if call is None:
            return
        updated = await self._transition(call, CallStatus.ACTIVE)
        if updated is None:
            return
        await self.broadcaster.emit_to_user(
            updated.caller_id,
            ServerEvent.CALL_ANSWERED.value,
            {"callId": updated.id, "answer": answer},
        )

    async def reject(self, connection: Connection, call_id: str) -> None:
        call = await self._load_for(connection, call_id, callee_only=True, action="reject")
        if call is None:
            return
        updated = await self._transition(call, CallStatus.REJECTED)
        if updated is None:
            return
        await self.broadcaster.emit_to_user(
            updated.caller_id, ServerEvent.CALL_REJECTED.value, {"callId": updated.id}
        )

    async def end(self, connection: Connection, call_id: str) -> None:
        call = await self._load_for(connection, call_id, callee_only=False, action="end")
        if call is None:
            return
        updated = await self._transition(call, CallStatus.ENDED)
        if updated is None:
            return
        payload = {"callId": updated.id}
        await self.broadcaster.emit_to_users(
            (updated.caller_id, updated.callee_id), ServerEvent.CALL_ENDED.value, payload
        )

    async def ice_candidate(
        self, connection: Connection, target_user_id: str, candidate: Any
    ) -> None:
        """Forward a candidate to every device of the target; no persistence."""
        target_user_id = require_id(target_user_id, "targetUserId")
        await self.broadcaster.emit_to_user(
            target_user_id,
            ServerEvent.ICE_CANDIDATE.value,
            {"candidate": candidate, "fromUserId": connection.user_id},
        )

    async def _load_for(
        self, connection: Connection, call_id: str, *, callee_only: bool, action: str
    ) -> Optional[CallRecord]:
        call_id = require_id(call_id, "callId")
        call = await self.store.get_call(call_id)
        if call is None:
            logger.warning(f"[CALLS] {action} for unknown call {call_id} by {connection.user_id}")
            await connection.emit(
                ServerEvent.CALL_ERROR.value,
                {"callId": call_id, **build_error("Call not found", code="call_not_found")},
            )
            return None
        if callee_only and connection.user_id != call.callee_id:
            raise ForbiddenException(f"Only the callee can {action} this call", code="not_callee")
        if not call.is_participant(connection.user_id):
            raise ForbiddenException("Not a participant in this call", code="not_a_participant")
        return call

    async def _transition(self, call: CallRecord, target: CallStatus) -> Optional[CallRecord]:
        updated, changed = await self.store.transition_call(call.id, target)
        if updated is None:
            logger.warning(f"[CALLS] Call {call.id} disappeared before {target.value}")
            return None
        if not changed:
            logger.warning(
                f"[CALLS] Ignoring {updated.status.value} -> {target.value} for call {call.id}"
            )
            return None
        prometheus_metrics.record_call_transition(target.value)
        logger.info(f"[CALLS] Call {call.id} is now {target.value}")
        return updated
