"""
Database base module - engine, session management and initialization.
"""
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


engine: Optional[Engine] = None
SessionLocal = sessionmaker(expire_on_commit=False)


def _is_memory_sqlite(url: str) -> bool:
    parsed = make_url(url)
    return parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:")


def _sqlite_pragmas(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


def configure_database(url: str) -> Engine:
    """(Re)bind the session factory to a database URL."""
    global engine

    kwargs = {}
    is_sqlite = make_url(url).get_backend_name() == "sqlite"
    if is_sqlite:
        # Sessions are opened from worker and callback threads
        kwargs["connect_args"] = {"check_same_thread": False}
        if _is_memory_sqlite(url):
            kwargs["poolclass"] = StaticPool

    if engine is not None:
        engine.dispose()
    engine = create_engine(url, **kwargs)
    if is_sqlite:
        event.listen(engine, "connect", _sqlite_pragmas)
    SessionLocal.configure(bind=engine)
    return engine


def get_engine() -> Engine:
    if engine is None:
        from ..config import get_settings
        return configure_database(get_settings().db_url)
    return engine


def init_db():
    """Create all tables."""
    current = get_engine()
    if current.url.get_backend_name() == "sqlite" and current.url.database not in (None, "", ":memory:"):
        Path(current.url.database).parent.mkdir(parents=True, exist_ok=True)

    from . import models  # noqa: F401  registers the tables on Base.metadata
    Base.metadata.create_all(current)
    logger.info(f"Database initialized at {current.url.render_as_string(hide_password=True)}")


@contextmanager
def get_db() -> Iterator[Session]:
    """Context manager for one unit of work: commit on success, rollback on error."""
    get_engine()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_session() -> Iterator[Session]:
    """FastAPI dependency yielding a session per request."""
    with get_db() as session:
        yield session
