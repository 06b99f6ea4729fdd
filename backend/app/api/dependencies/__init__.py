# backend/app/api/dependencies/__init__.py
"""
Central export point for all dependencies.

This module re-exports all dependencies from submodules
for convenient access throughout the application.
"""

from ...auth import get_current_user
from ...database import get_db
from .services import get_realtime_gateway, get_realtime_gateway_ws, get_realtime_store

__all__ = [
    # Auth
    "get_current_user",
    # Database
    "get_db",
    # Services
    "get_realtime_gateway",
    "get_realtime_gateway_ws",
    "get_realtime_store",
]
