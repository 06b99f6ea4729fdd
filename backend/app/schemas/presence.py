# backend/app/schemas/presence.py
from typing import List

from ._strict_base import StrictModel


class OnlineUser(StrictModel):
    user_id: str
    username: str


class OnlineUsersResponse(StrictModel):
    users: List[OnlineUser]
    count: int
