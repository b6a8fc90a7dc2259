"""SQLAlchemy engine, session factory and declarative base."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterator
from uuid import uuid4

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ..core.config import settings


def sqlite_connect_args(url: str, busy_timeout: float | None = None) -> dict[str, object]:
    """Connection arguments for SQLite; other engines ignore this helper.

    ``check_same_thread=False`` lets FastAPI worker threads share the pool.
    ``timeout`` is how long a writer waits on another writer's lock before
    SQLite reports ``database is locked``.
    """

    if not url.startswith("sqlite"):
        return {}
    timeout = settings.DB_BUSY_TIMEOUT_S if busy_timeout is None else busy_timeout
    return {"check_same_thread": False, "timeout": timeout}


def build_engine(url: str) -> Engine:
    return create_engine(url, connect_args=sqlite_connect_args(url))


# One engine per process; sessions are cheap and built per request.
engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db() -> Iterator[Session]:
    """FastAPI dependency that yields a session and guarantees cleanup."""

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def utc_timestamp(moment: datetime | None = None) -> str:
    """Render a UTC instant the way every timestamp column stores it."""

    moment = moment or datetime.now(tz=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def new_id() -> str:
    return uuid4().hex
