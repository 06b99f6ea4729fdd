# backend/app/routes/v1/__init__.py
"""
API v1 Routes

Versioned API endpoints under /api/v1, plus the socket, health and
metrics routers that are mounted at the root.
"""

from . import calls, conversations, health, presence, prometheus, realtime

__all__ = [
    "calls",
    "conversations",
    "health",
    "presence",
    "prometheus",
    "realtime",
]
