# backend/app/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

The realtime gateway is created once per application in the lifespan hook
and stored on ``app.state``; REST routes and the socket endpoint both read
it from there so they share presence and room state.
"""

import logging

from fastapi import HTTPException, Request, WebSocket, status

from ...services.realtime import RealtimeGateway, RealtimeStore

logger = logging.getLogger(__name__)


def _gateway_from_state(state: object) -> RealtimeGateway:
    gateway = getattr(state, "realtime_gateway", None)
    if gateway is None:
        logger.error("Realtime gateway requested before application startup")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Realtime service is not ready",
        )
    return gateway


def get_realtime_gateway(request: Request) -> RealtimeGateway:
    """Get the application's realtime gateway for HTTP routes."""
    return _gateway_from_state(request.app.state)


def get_realtime_gateway_ws(websocket: WebSocket) -> RealtimeGateway:
    """Get the application's realtime gateway for the socket endpoint."""
    return _gateway_from_state(websocket.app.state)


def get_realtime_store(request: Request) -> RealtimeStore:
    return get_realtime_gateway(request).store
