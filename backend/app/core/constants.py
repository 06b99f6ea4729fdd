"""Application-wide constants for the Marketchat realtime backend."""

from __future__ import annotations

BRAND_NAME = "Marketchat"

# Realtime gateway
WS_PATH = "/ws"
PERSONAL_ROOM_PREFIX = "user:"
CONVERSATION_ROOM_PREFIX = "conversation:"

# WebSocket close codes (4000-4999 is the application range)
WS_CLOSE_UNAUTHENTICATED = 4401
WS_CLOSE_AUTH_TIMEOUT = 4504

# Message constraints
MAX_MESSAGE_LENGTH = 2000

# Conversations: the creator plus at most seven invited participants
MAX_CONVERSATION_PARTICIPANTS = 8
MAX_INVITED_PARTICIPANTS = 7
MAX_GROUP_NAME_LENGTH = 50

# Query limits
DEFAULT_QUERY_LIMIT = 50
MAX_QUERY_LIMIT = 100
