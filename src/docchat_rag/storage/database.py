"""Engine and session factory setup."""

from __future__ import annotations

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from docchat_rag.storage.models import Base

logger = logging.getLogger(__name__)

SessionFactory = sessionmaker[Session]


def create_db_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Create an engine; SQLite connections get foreign keys switched on.

    In-memory SQLite uses a single shared connection so every session
    (and every worker thread) sees the same database.
    """
    kwargs: dict = {"echo": echo, "future": True}
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True

    engine = create_engine(database_url, **kwargs)

    if is_sqlite:

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record) -> None:  # noqa: ANN001
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_factory(engine: Engine) -> SessionFactory:
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_schema(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(engine)
    logger.info("Database schema ready (%s)", engine.url.render_as_string(hide_password=True))
