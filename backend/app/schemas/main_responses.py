# backend/app/schemas/main_responses.py
from pydantic import Field

from ._strict_base import StrictModel


class HealthResponse(StrictModel):
    """Response for the health check endpoint."""

    status: str = Field(description="Service health status")
    service: str = Field(description="Service name")
    environment: str = Field(description="Current environment")
    timestamp: str = Field(description="Current server time (ISO 8601, UTC)")
    connections: int = Field(description="Live socket connections on this instance")
    online_users: int = Field(description="Users with at least one live connection")
