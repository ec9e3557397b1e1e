"""Helpers for configuring SQLAlchemy engine and session factories."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from ..config import get_settings
from . import Base


def get_engine(database_url: str | None = None, **kwargs: object) -> Engine:
    """Create a SQLAlchemy engine.

    Args:
        database_url: Optional database URL. When ``None`` the ``DATABASE_URL``
            setting is used.
        **kwargs: Additional keyword arguments forwarded to
            :func:`sqlalchemy.create_engine`.

    Returns:
        Configured SQLAlchemy :class:`~sqlalchemy.engine.Engine` instance.
    """

    url = database_url or get_settings().database_url
    if not url:
        raise RuntimeError("DATABASE_URL is not configured.")

    if url.startswith("sqlite"):
        connect_args = dict(kwargs.pop("connect_args", None) or {})  # type: ignore[call-overload]
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 30)
        kwargs["connect_args"] = connect_args

    engine = create_engine(url, **kwargs)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _configure_sqlite(dbapi_connection, _connection_record):  # pragma: no cover - dialect hook
            dbapi_connection.execute("PRAGMA foreign_keys=ON")

    return engine


def get_sessionmaker(
    database_url: str | None = None, *, engine: Engine | None = None, **kwargs: object
) -> sessionmaker[Session]:
    """Return a session factory bound to the configured engine."""

    bound = engine or get_engine(database_url=database_url, **kwargs)
    return sessionmaker(bind=bound, expire_on_commit=False, future=True)


def create_schema(engine: Engine) -> None:
    """Create every table known to :class:`Base` (idempotent)."""

    Base.metadata.create_all(engine)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = ["Base", "create_schema", "get_engine", "get_sessionmaker", "session_scope"]
