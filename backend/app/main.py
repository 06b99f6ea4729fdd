# backend/app/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import is_running_tests, settings
from .core.constants import BRAND_NAME
from .database import Base, engine
from .errors import register_error_handlers
from .routes.v1 import (
    calls as calls_v1,
    conversations as conversations_v1,
    health as health_v1,
    presence as presence_v1,
    prometheus as prometheus_v1,
    realtime as realtime_v1,
)
from .services.realtime import RealtimeGateway

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def build_gateway() -> RealtimeGateway:
    """Compose the realtime services from settings."""
    return RealtimeGateway()


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown without deprecated events."""
    logger.info(f"{BRAND_NAME} realtime API starting up...")
    logger.info(f"Environment: {settings.environment}")
    if is_running_tests():
        logger.info("Running under pytest (test mode active)")

    Base.metadata.create_all(bind=engine)

    # Tests may install their own gateway before startup
    gateway = getattr(app.state, "realtime_gateway", None)
    if gateway is None:
        gateway = build_gateway()
        app.state.realtime_gateway = gateway
    gateway.lifecycle.start_sweeper()

    yield

    logger.info(f"{BRAND_NAME} realtime API shutting down...")
    await gateway.shutdown()


app = FastAPI(
    title=settings.app_title,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)
register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "HEAD", "OPTIONS", "POST"],
    allow_headers=["*"],
)
logger.info("CORS allow_origins=%s allow_credentials=%s", settings.cors_allowed_origins, True)

# Create API v1 router
api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(presence_v1.router, prefix="/presence")
api_v1.include_router(conversations_v1.router, prefix="/conversations")
api_v1.include_router(calls_v1.router, prefix="/calls")

app.include_router(api_v1)
app.include_router(realtime_v1.router)
app.include_router(health_v1.router)
app.include_router(prometheus_v1.router)
