# backend/app/routes/v1/presence.py
"""
Presence routes - API v1

GET /online - users currently holding at least one live socket, filtered
to the caller's contacts unless presence is broadcast globally.
"""

import logging

from fastapi import APIRouter, Depends

from ...api.dependencies import get_current_user, get_realtime_gateway
from ...models.user import User
from ...schemas.presence import OnlineUser, OnlineUsersResponse
from ...services.realtime import RealtimeGateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["presence"])


@router.get("/online", response_model=OnlineUsersResponse)
async def list_online_users(
    current_user: User = Depends(get_current_user),
    gateway: RealtimeGateway = Depends(get_realtime_gateway),
) -> OnlineUsersResponse:
    online = gateway.presence.list_online_users()
    if gateway.lifecycle.broadcast_scope != "global":
        audience = await gateway.store.get_presence_audience(current_user.id)
        online = [u for u in online if u["userId"] in audience]
    users = [OnlineUser(user_id=u["userId"], username=u["username"]) for u in online]
    return OnlineUsersResponse(users=users, count=len(users))
