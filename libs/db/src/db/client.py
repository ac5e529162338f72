"""SQLAlchemy engine/session ownership for the workspace.

Usage
-----
from db.client import Database

database = Database.from_env()
with database.session_scope() as s:
    s.execute(...)

A ``Database`` is created once by the entrypoint and passed to whatever needs
it; there is no module-level engine.
"""

from __future__ import annotations

import os
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


def _database_url(override: str | None = None, env: Mapping[str, str] | None = None) -> str:
    source = os.environ if env is None else env
    url = override or source.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; cannot initialize database client")
    return url


def _enable_sqlite_foreign_keys(dbapi_conn: Any, _record: Any) -> None:
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys = ON")
    finally:
        cursor.close()


class Database:
    """Own one engine and its session factory."""

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self._url = url
        self._engine: Engine = create_engine(url, pool_pre_ping=True, echo=echo)
        if self._engine.dialect.name == "sqlite":
            event.listen(self._engine, "connect", _enable_sqlite_foreign_keys)
        self._session_maker: sessionmaker[Session] = sessionmaker(
            bind=self._engine, expire_on_commit=False, class_=Session
        )

    @classmethod
    def from_env(
        cls, *, database_url: str | None = None, env: Mapping[str, str] | None = None
    ) -> Database:
        return cls(_database_url(database_url, env))

    @property
    def url(self) -> str:
        return self._url

    @property
    def engine(self) -> Engine:
        return self._engine

    def session(self) -> Session:
        """Return a new session; the caller owns commit and close."""

        return self._session_maker()

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Provide a transactional scope around a series of operations."""

        session = self.session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        """Create every mapped table (local development and tests; use Alembic elsewhere)."""

        from .models.finance import Base

        Base.metadata.create_all(bind=self._engine)

    def dispose(self) -> None:
        self._engine.dispose()


__all__ = [
    "Database",
]
