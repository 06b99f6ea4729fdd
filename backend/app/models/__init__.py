"""
Database models for the Marketchat realtime backend.

The models are organized by functionality:
- Users and their saved contacts
- Conversations, membership and messages
- Call records for audio/video calls
"""

from .call import Call
from .contact import UserContact
from .conversation import Conversation, ConversationMember, ConversationRole
from .message import Message
from .user import User

__all__ = [
    "Call",
    "Conversation",
    "ConversationMember",
    "ConversationRole",
    "Message",
    "User",
    "UserContact",
]
