import logging
import os
from pathlib import Path
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import BRAND_NAME


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path} (exists: {env_path.exists()})")
    load_dotenv(env_path)


class Settings(BaseSettings):
    secret_key: SecretStr = Field(
        default=SecretStr("dev-secret-key-change-me"),
        description="Secret key for JWT tokens",
    )
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 720  # 12 hours

    environment: str = Field(default="development", description="Deployment environment")
    is_testing: bool = Field(default=False, description="Set by the test harness")

    database_url: str = Field(
        default="sqlite:///./marketchat.db",
        description="SQLAlchemy database URL",
    )

    # Realtime gateway
    auth_lookup_timeout_seconds: float = Field(
        default=5.0,
        description="Upper bound for the user lookup performed during socket authentication",
    )
    persistence_timeout_seconds: float = Field(
        default=10.0,
        description="Upper bound for every other store call made by socket handlers",
    )
    stale_sweep_interval_seconds: float = Field(
        default=60.0, description="How often the stale connection sweep runs"
    )
    stale_connection_threshold_seconds: float = Field(
        default=300.0,
        description="Minimum connection age before the sweep may prune it",
    )
    presence_broadcast_scope: Literal["contacts", "global"] = Field(
        default="contacts",
        description="Who receives user_status_change events: contacts only, or every connection",
    )

    # Offline member notifications
    notification_provider: Literal["console", "webhook"] = Field(
        default="console",
        description="Delivery channel for new-message notifications to offline members",
    )
    notification_webhook_url: Optional[str] = Field(
        default=None, description="Target URL when notification_provider is 'webhook'"
    )
    notification_timeout_seconds: float = 5.0

    cors_allowed_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"],
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("database_url")
    @classmethod
    def _normalize_postgres_scheme(cls, value: str) -> str:
        # Heroku-style URLs use the deprecated postgres:// scheme
        if value.startswith("postgres://"):
            return value.replace("postgres://", "postgresql://", 1)
        return value

    @field_validator("notification_webhook_url")
    @classmethod
    def _blank_webhook_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def app_title(self) -> str:
        return f"{BRAND_NAME} Realtime API"


settings = Settings()
