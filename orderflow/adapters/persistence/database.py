# orderflow/adapters/persistence/database.py

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from typing import Generator

import structlog
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker

from orderflow.adapters.persistence.tables import Base

logger = structlog.get_logger()


class Database:
    """
    Owns the SQLAlchemy engine and session factory.

    Repositories call the sync ORM from worker threads (asyncio.to_thread),
    one short session per operation.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url

        # SQLite needs a special flag when used from several threads, plus a
        # busy timeout so concurrent writers wait instead of failing at once.
        connect_args: dict[str, object] = {}
        if url.startswith("sqlite"):
            connect_args = {"check_same_thread": False, "timeout": 30}

        self.engine = create_engine(url, echo=echo, future=True, connect_args=connect_args)

        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _sqlite_pragmas)

        self.session_factory = sessionmaker(
            bind=self.engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            class_=Session,
        )

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Transactional scope: commits on success, rolls back on error.

            with database.session() as db:
                ...
        """
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.info("database_schema_ready", url=self.engine.url.render_as_string(hide_password=True))

    async def connect(self) -> None:
        """Creates missing tables (called on app startup)."""
        await asyncio.to_thread(self.create_all)

    async def disconnect(self) -> None:
        await asyncio.to_thread(self.engine.dispose)
        logger.info("database_disconnected")

    async def health_check(self) -> bool:
        def _ping() -> bool:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True

        return await asyncio.to_thread(_ping)


def _sqlite_pragmas(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()
