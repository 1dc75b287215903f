"""
Database engine and session factory.

Every repository call opens its own short-lived session from ``SessionLocal``;
objects are not expired on commit so they stay readable once detached.
"""

from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.utils.logger import get_logger

logger = get_logger(__name__)


def _engine_options(database_url: str) -> Dict[str, Any]:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            # A single shared connection keeps the in-memory database alive
            options["poolclass"] = StaticPool
        return options

    return {
        "pool_pre_ping": True,
        "pool_size": settings.DB_MAX_IDLE_CONNS,
        "max_overflow": max(settings.DB_MAX_OPEN_CONNS - settings.DB_MAX_IDLE_CONNS, 0),
    }


def build_engine(database_url: str) -> Engine:
    return create_engine(database_url, **_engine_options(database_url))


def build_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False, autoflush=False, expire_on_commit=False, bind=bind
    )


engine = build_engine(settings.database_url)
SessionLocal = build_session_factory(engine)


def init_db(bind: Engine = None) -> None:
    """Create missing tables (used when DB_AUTO_CREATE is enabled)."""
    from app.db.base import Base

    target = bind or engine
    Base.metadata.create_all(bind=target)
    logger.info("Database schema ensured", backend=target.url.get_backend_name())

