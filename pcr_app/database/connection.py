"""
Database engine and session factory.

One engine (and its connection pool) is shared by request handlers, the
scheduled tasks and the session sweep.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


def create_db_engine(url: str, **engine_kwargs: Any) -> Engine:
    """Create the application engine.

    SQLite needs a couple of tweaks: the file's directory must exist, the
    connection is used from several threads, and ``:memory:`` databases must
    share a single connection or every checkout sees an empty schema.
    """
    parsed = make_url(url)
    kwargs: dict = {"echo": False, "future": True}

    if parsed.get_backend_name() == "sqlite":
        kwargs["connect_args"] = {"check_same_thread": False}
        database = parsed.database or ""
        if database in ("", ":memory:"):
            kwargs["poolclass"] = StaticPool
        else:
            Path(database).parent.mkdir(parents=True, exist_ok=True)
    else:
        kwargs["pool_pre_ping"] = True

    kwargs.update(engine_kwargs)
    engine = create_engine(url, **kwargs)

    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Transaction scope: commit on success, roll back on any exception."""
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def ping(engine: Engine) -> bool:
    """``SELECT 1`` against the engine.  Returns False instead of raising."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.warning("Database ping failed", exc_info=True)
        return False
