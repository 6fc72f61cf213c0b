"""Engine and sessions for the wallet-link store."""

from __future__ import annotations

from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from creatorhub.core.settings import settings


class Base(DeclarativeBase):
    """Declarative base for the gateway's tables."""


def _connect_args(url: str) -> dict[str, Any]:
    # Request handlers run in a threadpool; SQLite refuses cross-thread use by default
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    echo=settings.sql_debug,
    connect_args=_connect_args(settings.database_url),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for scripts running outside a request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables() -> None:
    """Create the ``linked_wallet`` table if it does not exist."""
    import creatorhub.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
