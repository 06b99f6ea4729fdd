"""Realtime messaging, presence and call signaling over WebSockets."""

from .gateway import RealtimeGateway
from .store import RealtimeStore

__all__ = ["RealtimeGateway", "RealtimeStore"]
