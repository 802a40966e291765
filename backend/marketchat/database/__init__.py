"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool

from marketchat.core.config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str, **overrides: Any) -> Engine:
    """
    Create an engine for the durable store.

    SQLite (local runs and tests) gets a thread-shareable connection and a
    busy timeout so concurrent writers wait instead of failing immediately.
    Every other dialect gets a bounded QueuePool.
    """
    if database_url.startswith("sqlite"):
        kwargs: dict[str, Any] = {
            "connect_args": {"check_same_thread": False, "timeout": 15},
        }
    else:
        kwargs = {
            "poolclass": QueuePool,
            "pool_size": settings.database_pool_size,
            "max_overflow": settings.database_max_overflow,
            "pool_timeout": 5,
            "pool_recycle": 1800,
            "pool_pre_ping": True,
        }
    kwargs.update(overrides)
    new_engine = create_engine(database_url, **kwargs)
    _add_pool_events(new_engine)
    return new_engine


def _add_pool_events(target: Engine) -> None:
    @event.listens_for(target, "connect")
    def receive_connect(dbapi_connection: Any, connection_record: Any) -> None:
        connection_record.info["connect_time"] = datetime.now()
        logger.debug("Database connection established")

    @event.listens_for(target, "checkout")
    def receive_checkout(
        dbapi_connection: Any, connection_record: Any, connection_proxy: Any
    ) -> None:
        logger.debug("Connection checked out from pool")


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
