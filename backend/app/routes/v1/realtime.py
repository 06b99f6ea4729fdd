# backend/app/routes/v1/realtime.py
"""
WebSocket endpoint for realtime messaging, presence and call signaling.

Clients connect to ``/ws`` with a JWT in the ``token`` query parameter, an
``Authorization: Bearer`` header, or the ``access_token`` cookie. Frames are
JSON objects ``{"event": ..., "data": {...}}`` in both directions.
"""

import logging

from fastapi import APIRouter, Depends, WebSocket

from ...api.dependencies import get_realtime_gateway_ws
from ...core.constants import WS_PATH
from ...services.realtime import RealtimeGateway
from ...services.realtime.authenticator import extract_token
from ...services.realtime.connection import WebSocketTransport

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket(WS_PATH)
async def realtime_socket(
    websocket: WebSocket,
    gateway: RealtimeGateway = Depends(get_realtime_gateway_ws),
) -> None:
    """Accept the socket, then hand it to the gateway until it closes."""
    await websocket.accept()
    token = extract_token(websocket.query_params, websocket.headers, websocket.cookies)
    await gateway.serve(WebSocketTransport(websocket), token)
