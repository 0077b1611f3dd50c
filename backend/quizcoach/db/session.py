"""Engine and session helpers for the database-backed result store."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import Settings, get_settings
from . import models  # noqa: F401 registers tables
from .base import Base

logger = logging.getLogger(__name__)

_MEMORY_SQLITE_URLS = {"sqlite://", "sqlite:///:memory:"}

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker[Session]] = None


def engine_options(database_url: str, settings: Settings) -> Dict[str, Any]:
    """Keyword arguments for ``create_engine``; SQLite gets no pool sizing."""
    options: Dict[str, Any] = {"echo": settings.database_echo, "pool_pre_ping": True}
    if make_url(database_url).get_backend_name() == "sqlite":
        options["connect_args"] = {"check_same_thread": False}
        if database_url in _MEMORY_SQLITE_URLS:
            # every connection must see the same in-memory database
            options["poolclass"] = StaticPool
        return options
    options["pool_size"] = settings.database_pool_size
    options["max_overflow"] = settings.database_max_overflow
    return options


def get_engine() -> Engine:
    """Create the process engine on first use and make sure the result tables exist."""
    global _engine, _session_factory
    if _engine is not None:
        return _engine

    settings = get_settings()
    if not settings.database_url:
        raise RuntimeError("QUIZCOACH_DATABASE_URL must be configured before using the database.")
    engine = create_engine(settings.database_url, **engine_options(settings.database_url, settings))
    Base.metadata.create_all(engine)
    logger.info(
        "Result database ready at %s",
        make_url(settings.database_url).render_as_string(hide_password=True),
    )
    _engine = engine
    _session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return engine


def get_session_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        get_engine()
    assert _session_factory is not None
    return _session_factory


@contextmanager
def session_scope(*, commit: bool = True) -> Generator[Session, None, None]:
    """Yield a session; commit on success when ``commit`` is set, roll back on error."""
    session = get_session_factory()()
    try:
        yield session
        if commit:
            session.commit()
    except Exception:  # noqa: BLE001
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engine() -> None:
    global _engine, _session_factory
    engine, _engine, _session_factory = _engine, None, None
    if engine is not None:
        engine.dispose()


__all__ = [
    "dispose_engine",
    "engine_options",
    "get_engine",
    "get_session_factory",
    "session_scope",
]
