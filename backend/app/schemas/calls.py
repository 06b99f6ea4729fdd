# backend/app/schemas/calls.py
from datetime import datetime
from typing import List, Optional

from ._strict_base import StrictModel


class CallParty(StrictModel):
    id: str
    username: str
    profile_photo_url: Optional[str] = None


class CallHistoryItem(StrictModel):
    id: str
    call_type: str
    status: str
    started_at: datetime
    answered_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    is_incoming: bool
    other_party: Optional[CallParty] = None



class CallHistoryResponse(StrictModel):
    calls: List[CallHistoryItem]
    page: int
    limit: int
