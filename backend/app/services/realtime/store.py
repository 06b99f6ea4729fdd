# backend/app/services/realtime/store.py
"""
Async facade over the relational store for the realtime gateway.

Repositories are synchronous SQLAlchemy code. Each store call opens its own
session in a worker thread, commits or rolls back, and returns detached
plain records so no ORM state crosses back into the event loop. Every call
is bounded by a timeout; a timeout or database error surfaces as
``PersistenceException`` and the operation has no visible side effects.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
import logging
import threading
from typing import Any, Callable, Generator, List, Optional, Sequence, Set, Tuple, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...core.config import settings
from ...core.constants import MAX_CONVERSATION_PARTICIPANTS
from ...core.enums import CallStatus, CallType, MessageType
from ...core.exceptions import PersistenceException, RepositoryException, ValidationException
from ...database import SessionLocal
from ...models.call import Call
from ...models.conversation import Conversation
from ...models.message import Message
from ...models.user import User
from ...repositories.call_repository import CallRepository
from ...repositories.contact_repository import ContactRepository
from ...repositories.conversation_repository import ConversationRepository
from ...repositories.message_repository import MessageRepository
from ...repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class UserRecord:
    id: str
    username: str
    photo_url: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    full_name: Optional[str] = None

    @classmethod
    def from_model(cls, user: User) -> "UserRecord":
        return cls(
            id=user.id,
            username=user.username,
            full_name=user.full_name,
            photo_url=user.profile_photo_url,
            email=user.email,
            phone_number=user.phone_number,
        )


@dataclass(frozen=True)
class MessageRecord:
    id: str
    conversation_id: str
    sender_id: str
    message_type: MessageType
    content_text: Optional[str]
    content_url: Optional[str]
    status: str
    created_at: datetime

    @classmethod
    def from_model(cls, message: Message) -> "MessageRecord":
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            message_type=MessageType(message.message_type),
            content_text=message.content_text,
            content_url=message.content_url,
            status=getattr(message.status, "value", message.status),
            created_at=message.created_at,
        )


@dataclass(frozen=True)
class ConversationMemberRecord:
    user: UserRecord
    role: str


@dataclass(frozen=True)
class ConversationRecord:
    id: str
    is_group: bool
    group_name: Optional[str]
    group_photo_url: Optional[str]
    last_message_at: Optional[datetime]
    created_at: datetime
    members: Tuple[ConversationMemberRecord, ...] = ()
    last_message: Optional[MessageRecord] = None
    unread_count: int = 0

    def display_for(self, viewer_id: str) -> Tuple[Optional[str], Optional[str]]:
        """Name and photo to show ``viewer_id``: the other person in a direct chat."""
        if not self.is_group and len(self.members) == 2:
            for member in self.members:
                if member.user.id != viewer_id:
                    return member.user.full_name or member.user.username, member.user.photo_url
        return self.group_name, self.group_photo_url


@dataclass(frozen=True)
class CallRecord:
    id: str
    caller_id: str
    callee_id: str
    call_type: CallType
    status: CallStatus
    started_at: datetime
    answered_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None

    @classmethod
    def from_model(cls, call: Call) -> "CallRecord":
        return cls(
            id=call.id,
            caller_id=call.caller_id,
            callee_id=call.callee_id,
            call_type=CallType(call.call_type),
            status=CallStatus(call.status),
            started_at=call.started_at,
            answered_at=call.answered_at,
            ended_at=call.ended_at,
            duration_seconds=call.duration_seconds,
        )

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.caller_id, self.callee_id)

    def other_party_id(self, user_id: str) -> str:
        return self.callee_id if user_id == self.caller_id else self.caller_id


@dataclass(frozen=True)
class CallHistoryRecord:
    call: CallRecord
    is_incoming: bool
    other_party: Optional[UserRecord]


def _conversation_record(
    conversation: Conversation,
    repository: ConversationRepository,
    *,
    last_message: Optional[MessageRecord] = None,
    unread_count: int = 0,
) -> ConversationRecord:
    members = tuple(
        ConversationMemberRecord(user=UserRecord.from_model(user), role=role.value)
        for user, role in repository.get_members(conversation.id)
    )
    return ConversationRecord(
        id=conversation.id,
        is_group=bool(conversation.is_group),
        group_name=conversation.group_name,
        group_photo_url=conversation.group_photo_url,
        last_message_at=conversation.last_message_at,
        created_at=conversation.created_at,
        members=members,
        last_message=last_message,
        unread_count=unread_count,
    )


class _CommitGate:
    """
    Decides, under a lock, whether worker-thread work may still commit.

    Once the awaiting side has given up the gate is abandoned and the work
    is rolled back. Once a commit has started the awaiting side can no
    longer abandon it and must wait for the outcome.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = "open"

    def claim_commit(self) -> bool:
        with self._lock:
            if self._state == "abandoned":
                return False
            self._state = "committing"
            return True

    def abandon(self) -> bool:
        with self._lock:
            if self._state == "committing":
                return False
            self._state = "abandoned"
            return True


@contextmanager
def _managed_session(
    session_factory: Callable[[], Session], gate: Optional[_CommitGate] = None
) -> Generator[Session, None, None]:
    """Context manager that yields a session and guarantees cleanup."""
    session = session_factory()
    try:
        yield session
        if gate is None or gate.claim_commit():
            session.commit()
        else:
            session.rollback()
            logger.warning("[STORE] Rolled back work that finished after its timeout")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


class RealtimeStore:
    """Persistence collaborator for socket handlers and the REST companions."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self._session_factory = session_factory
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.persistence_timeout_seconds
        )
        self._abandoned: Set["asyncio.Future[Any]"] = set()

    def _track_abandoned(self, task: "asyncio.Future[Any]", operation: str) -> None:
        """Hold abandoned worker tasks until they finish and log how they ended."""
        self._abandoned.add(task)

        def _done(finished: "asyncio.Future[Any]") -> None:
            self._abandoned.discard(finished)
            if not finished.cancelled() and finished.exception() is not None:
                logger.warning(
                    f"[STORE] Abandoned {operation} failed: {finished.exception()}"
                )

        task.add_done_callback(_done)

    async def _run(
        self,
        operation: str,
        work: Callable[[Session], T],
        *,
        timeout: Optional[float] = None,
    ) -> T:
        gate = _CommitGate()

        def _in_thread() -> T:
            with _managed_session(self._session_factory, gate) as db:
                return work(db)

        limit = timeout if timeout is not None else self.timeout_seconds
        task = asyncio.ensure_future(asyncio.to_thread(_in_thread))
        try:
            try:
                return await asyncio.wait_for(asyncio.shield(task), timeout=limit)
            except asyncio.TimeoutError as exc:
                if gate.abandon():
                    self._track_abandoned(task, operation)
                    logger.error(f"[STORE] {operation} timed out after {limit}s")
                    raise PersistenceException(
                        f"Timed out while trying to {operation}", code="persistence_timeout"
                    ) from exc
                # Commit already under way; its outcome is the result.
                logger.warning(f"[STORE] {operation} exceeded {limit}s while committing")
                return await task
        except (RepositoryException, SQLAlchemyError) as exc:
            logger.error(f"[STORE] {operation} failed: {exc}")
            raise PersistenceException(
                f"Failed to {operation}", code="persistence_error"
            ) from exc

    # Users

    async def get_live_user(
        self, user_id: str, *, timeout: Optional[float] = None
    ) -> Optional[UserRecord]:
        def work(db: Session) -> Optional[UserRecord]:
            user = UserRepository(db).get_live_by_id(user_id)
            return UserRecord.from_model(user) if user else None

        return await self._run("look up user", work, timeout=timeout)

    async def get_presence_audience(self, user_id: str) -> Set[str]:
        return await self._run(
            "resolve presence audience",
            lambda db: ContactRepository(db).get_presence_audience(user_id),
        )

    # Conversations and messages

    async def is_member(self, conversation_id: str, user_id: str) -> bool:
        return await self._run(
            "check conversation membership",
            lambda db: ConversationRepository(db).is_member(conversation_id, user_id),
        )

    async def get_members_except(
        self, conversation_id: str, excluded_user_id: str
    ) -> List[UserRecord]:
        def work(db: Session) -> List[UserRecord]:
            members = ConversationRepository(db).get_members_except(
                conversation_id, excluded_user_id
            )
            return [UserRecord.from_model(u) for u in members]

        return await self._run("list conversation members", work)

    async def save_message(
        self,
        *,
        conversation_id: str,
        sender_id: str,
        content_text: str,
        message_type: MessageType = MessageType.TEXT,
        content_url: Optional[str] = None,
    ) -> MessageRecord:
        """Insert the message and bump the conversation's last activity in one transaction."""

        def work(db: Session) -> MessageRecord:
            message = MessageRepository(db).create_message(
                conversation_id=conversation_id,
                sender_id=sender_id,
                content_text=content_text,
                message_type=message_type,
                content_url=content_url,
            )
            ConversationRepository(db).touch_last_message_at(conversation_id, message.created_at)
            return MessageRecord.from_model(message)

        return await self._run("save message", work)

    async def list_messages(
        self,
        conversation_id: str,
        *,
        limit: int,
        before_id: Optional[str] = None,
        mark_read_by: Optional[str] = None,
    ) -> List[MessageRecord]:
        """
        Load a history page, newest first.

        With ``mark_read_by`` every message from other members is marked READ
        in the same transaction; the returned page shows statuses as they were
        before the reader opened it.
        """

        def work(db: Session) -> List[MessageRecord]:
            messages = MessageRepository(db)
            rows = messages.list_for_conversation(
                conversation_id, limit=limit, before_id=before_id
            )
            page = [MessageRecord.from_model(m) for m in rows]
            if mark_read_by is not None:
                messages.mark_read(conversation_id, mark_read_by)
            return page

        return await self._run("load messages", work)

    async def list_conversations(
        self, user_id: str, *, limit: int, offset: int
    ) -> List[ConversationRecord]:
        def work(db: Session) -> List[ConversationRecord]:
            conversations = ConversationRepository(db)
            messages = MessageRepository(db)
            records = []
            for conversation in conversations.list_for_user(user_id, limit=limit, offset=offset):
                latest = messages.latest_for_conversation(conversation.id)
                records.append(
                    _conversation_record(
                        conversation,
                        conversations,
                        last_message=MessageRecord.from_model(latest) if latest else None,
                        unread_count=messages.count_unread(conversation.id, user_id),
                    )
                )
            return records

        return await self._run("list conversations", work)

    async def create_conversation(
        self,
        creator_id: str,
        participant_ids: Sequence[str],
        *,
        is_group: bool = False,
        group_name: Optional[str] = None,
    ) -> Tuple[ConversationRecord, bool]:
        """
        Create a conversation with ``creator_id`` as admin.

        A direct (non-group) chat between two users that already have one
        returns the existing conversation. Returns ``(conversation, created)``.

        Raises:
            ValidationException: too many participants, or one of them is
                unknown or deleted
        """
        member_ids = list(dict.fromkeys([creator_id, *participant_ids]))
        if len(member_ids) > MAX_CONVERSATION_PARTICIPANTS:
            raise ValidationException(
                f"Maximum {MAX_CONVERSATION_PARTICIPANTS} participants allowed",
                code="too_many_participants",
            )

        def work(db: Session) -> Tuple[ConversationRecord, bool]:
            conversations = ConversationRepository(db)
            if not is_group and len(member_ids) == 2:
                existing = conversations.find_direct_between(*member_ids)
                if existing is not None:
                    return _conversation_record(existing, conversations), False

            live = {
                u.id for u in UserRepository(db).get_many(member_ids) if not u.is_deleted
            }
            if live != set(member_ids):
                raise ValidationException(
                    "One or more participants not found", code="participant_not_found"
                )
            conversation = conversations.create_with_members(
                member_ids,
                is_group=is_group,
                group_name=group_name if is_group else None,
                admin_id=creator_id,
            )
            logger.info(
                f"[STORE] Conversation {conversation.id} created by {creator_id} "
                f"({len(member_ids)} members, group={is_group})"
            )
            return _conversation_record(conversation, conversations), True

        return await self._run("create conversation", work)

    # Calls

    async def create_call(
        self, caller_id: str, callee_id: str, call_type: CallType
    ) -> CallRecord:
        return await self._run(
            "create call",
            lambda db: CallRecord.from_model(
                CallRepository(db).create_ringing(caller_id, callee_id, call_type)
            ),
        )

    async def get_call(self, call_id: str) -> Optional[CallRecord]:
        def work(db: Session) -> Optional[CallRecord]:
            call = CallRepository(db).get_by_id(call_id)
            return CallRecord.from_model(call) if call else None

        return await self._run("load call", work)

    async def transition_call(
        self, call_id: str, target: CallStatus
    ) -> Tuple[Optional[CallRecord], bool]:
        def work(db: Session) -> Tuple[Optional[CallRecord], bool]:
            call, changed = CallRepository(db).transition(call_id, target)
            return (CallRecord.from_model(call) if call else None), changed

        return await self._run("update call", work)

    async def list_call_history(
        self, user_id: str, *, limit: int, offset: int
    ) -> List[CallHistoryRecord]:
        def work(db: Session) -> List[CallHistoryRecord]:
            calls: Sequence[Call] = CallRepository(db).list_for_user(
                user_id, limit=limit, offset=offset
            )
            other_ids = {c.other_party_id(user_id) for c in calls}
            others = {u.id: UserRecord.from_model(u) for u in UserRepository(db).get_many(other_ids)}
            return [
                CallHistoryRecord(
                    call=CallRecord.from_model(c),
                    is_incoming=c.callee_id == user_id,
                    other_party=others.get(c.other_party_id(user_id)),
                )
                for c in calls
            ]

        return await self._run("load call history", work)
