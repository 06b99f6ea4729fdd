# backend/app/database.py
from datetime import datetime
import logging
from typing import Any, Dict, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from .core.config import settings

logger = logging.getLogger(__name__)


def _engine_kwargs(database_url: str) -> Dict[str, Any]:
    if database_url.startswith("sqlite"):
        kwargs: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            # In-memory databases only exist on a single shared connection
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {
        "poolclass": QueuePool,
        "pool_size": 20,  # Number of persistent connections
        "max_overflow": 10,  # Maximum overflow connections
        "pool_timeout": 30,  # Timeout for getting connection
        "pool_recycle": 3600,  # Recycle connections after 1 hour
        "pool_pre_ping": True,  # Test connections before using
        "connect_args": {"connect_timeout": 10, "application_name": "marketchat_realtime"},
    }


def build_engine(database_url: str) -> Engine:
    engine = create_engine(database_url, **_engine_kwargs(database_url))

    # Log pool events for monitoring
    @event.listens_for(engine, "connect")
    def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
        connection_record.info["connect_time"] = datetime.now()
        logger.debug("Database connection established")

    @event.listens_for(engine, "checkout")
    def receive_checkout(
        dbapi_connection: Any, connection_record: Any, connection_proxy: Any
    ) -> None:
        logger.debug("Connection checked out from pool")

    return engine


engine: Engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
