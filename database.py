"""SQLAlchemy engine, session, and declarative base."""

from __future__ import annotations

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from config import settings

logger = logging.getLogger(__name__)

engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in settings.DATABASE_URL else {},
    echo=False,
)

# Enable WAL mode and foreign keys for SQLite
if "sqlite" in settings.DATABASE_URL:
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def get_db():
    """FastAPI dependency that yields a SQLAlchemy session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None) -> None:
    """Create every table that does not exist yet."""
    import models  # noqa: F401: register all models with Base

    Base.metadata.create_all(bind=bind or engine)


def reset_database(bind=None) -> list[str]:
    """Drop and recreate the designer tables (cases, fields, views, checkpoints).

    User profiles and API keys survive the reset. Returns the recreated table names.
    """
    import models  # noqa: F401

    bind = bind or engine
    tables = [
        Base.metadata.tables[name]
        for name in ("case_checkpoints", "views", "fields", "cases")
    ]
    Base.metadata.drop_all(bind=bind, tables=tables)
    Base.metadata.create_all(bind=bind, tables=list(reversed(tables)))
    logger.info("Database reset: recreated %s", ", ".join(t.name for t in reversed(tables)))
    return [t.name for t in reversed(tables)]
