# backend/app/routes/v1/health.py
"""
Health check endpoint for monitoring and load balancer probes.
"""

from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends

from ...api.dependencies import get_realtime_gateway
from ...core.config import settings
from ...core.constants import BRAND_NAME
from ...schemas.main_responses import HealthResponse
from ...services.realtime import RealtimeGateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
def health_check(gateway: RealtimeGateway = Depends(get_realtime_gateway)) -> HealthResponse:
    """
    Health check endpoint.

    Does not touch the database; reports this instance's socket counts.
    """
    return HealthResponse(
        status="healthy",
        service=f"{BRAND_NAME.lower()}-realtime",
        environment=settings.environment,
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        connections=gateway.presence.connection_count,
        online_users=gateway.presence.user_count,
    )
