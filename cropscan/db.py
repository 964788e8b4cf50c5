from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from cropscan.config import Settings
from cropscan.errors import PersistenceError
from cropscan.models import Base

logger = logging.getLogger(__name__)

T = TypeVar("T")


engine: Engine | None = None
_session_factory: sessionmaker | None = None


class _SessionWrapper:
    """Callable proxy returning sessions from the current factory."""

    def __call__(self, *args: Any, **kwargs: Any):
        if _session_factory is None:
            raise RuntimeError("Database not initialized")
        return _session_factory(*args, **kwargs)


SessionLocal = _SessionWrapper()


def init_db(cfg: Settings) -> None:
    """Create engine and session factory using SQLAlchemy's ``create_engine``."""
    global engine, _session_factory

    engine = create_engine(
        cfg.database_url,
        future=True,
        pool_size=20,
        max_overflow=0,
        pool_recycle=30,
        pool_pre_ping=True,
    )
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_fks)
    _session_factory = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )

    if cfg.db_create_all:
        Base.metadata.create_all(engine)
    logger.info("Database initialized (%s)", engine.dialect.name)


def _enable_sqlite_fks(dbapi_connection, _record) -> None:
    # ON DELETE CASCADE from farms to diagnostics needs this on SQLite
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async def run_in_session(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run ``func(db, *args, **kwargs)`` in a worker thread with a fresh session."""

    def _run() -> T:
        with SessionLocal() as db:
            return func(db, *args, **kwargs)

    try:
        return await asyncio.to_thread(_run)
    except SQLAlchemyError as exc:
        logger.exception("Database call %s failed", getattr(func, "__name__", func))
        raise PersistenceError("Database unavailable") from exc
