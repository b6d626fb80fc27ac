"""Database handle: one engine plus a session factory, owned by whoever creates it."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from qualityiq.storage.models import Base

__all__ = ["Database"]

logger = logging.getLogger(__name__)


def _enable_sqlite_pragmas(dbapi_connection, connection_record) -> None:  # noqa: ARG001
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Explicitly constructed store handle; there is no module-level state."""

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self.url = url
        self.engine: Engine = create_engine(url, echo=echo)
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_pragmas)
        self._session_factory = sessionmaker(self.engine, expire_on_commit=False)

    @classmethod
    def for_path(cls, path: str | Path, *, echo: bool = False) -> "Database":
        """Open (and create) a SQLite database file, making parent directories."""
        db_path = Path(path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        db = cls(f"sqlite:///{db_path}", echo=echo)
        db.create_all()
        logger.debug("Opened database at %s", db_path)
        return db

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a session inside one transaction; commit on success, roll back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
