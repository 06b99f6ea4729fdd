"""Repository layer: every SQL query the realtime backend issues lives here."""

from .base_repository import BaseRepository
from .call_repository import CallRepository
from .contact_repository import ContactRepository
from .conversation_repository import ConversationRepository
from .message_repository import MessageRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "CallRepository",
    "ContactRepository",
    "ConversationRepository",
    "MessageRepository",
    "UserRepository",
]
