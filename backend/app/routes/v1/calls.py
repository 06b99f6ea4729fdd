# backend/app/routes/v1/calls.py
"""
Call history routes - API v1

GET / - paged call history for the current user, most recent first.
"""

from fastapi import APIRouter, Depends, Query

from ...api.dependencies import get_current_user, get_realtime_store
from ...models.user import User
from ...schemas.calls import CallHistoryItem, CallHistoryResponse, CallParty
from ...services.realtime import RealtimeStore

router = APIRouter(tags=["calls"])


@router.get("", response_model=CallHistoryResponse)
async def get_call_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    store: RealtimeStore = Depends(get_realtime_store),
) -> CallHistoryResponse:
    history = await store.list_call_history(
        current_user.id, limit=limit, offset=(page - 1) * limit
    )
    items = [
        CallHistoryItem(
            id=entry.call.id,
            call_type=entry.call.call_type.value,
            status=entry.call.status.value,
            started_at=entry.call.started_at,
            answered_at=entry.call.answered_at,
            ended_at=entry.call.ended_at,
            duration_seconds=entry.call.duration_seconds,
            is_incoming=entry.is_incoming,
            other_party=(
                CallParty(
                    id=entry.other_party.id,
                    username=entry.other_party.username,
                    profile_photo_url=entry.other_party.photo_url,
                )
                if entry.other_party
                else None
            ),
        )
        for entry in history
    ]
    return CallHistoryResponse(calls=items, page=page, limit=limit)
