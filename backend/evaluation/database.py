"""Database handle and session helpers.

The engine lives inside a `Database` object that the application factory
constructs and stores on `app.state.db`. Nothing here is a process-wide
global: scripts and tests build their own handle for whatever URL they
need. The default URL is a local SQLite file next to the package
(`evaluation.db`).
"""

import logging
from typing import Optional

from fastapi import Request
from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from . import models  # noqa: F401  registers the tables on SQLModel.metadata

logger = logging.getLogger("evaluation.db")


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record):
    # SQLite ignores FOREIGN KEY / ON DELETE CASCADE unless asked per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Lazily opened engine plus session factory for one database URL."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.echo = echo
        self._engine: Optional[Engine] = None

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        return self.open()

    def open(self) -> Engine:
        """Create the engine on first use; later calls return the same one."""
        if self._engine is not None:
            return self._engine
        connect_args = {"check_same_thread": False} if self.is_sqlite else {}
        engine = create_engine(self.url, echo=self.echo, connect_args=connect_args)
        if self.is_sqlite:
            event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        self._engine = engine
        logger.info("database opened %s", engine.url.render_as_string(hide_password=True))
        return engine

    def close(self) -> None:
        """Dispose of the engine. Safe to call on a handle that was never opened."""
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        logger.info("database closed")

    def create_all(self) -> None:
        """Create the `subjects` and `competencies` tables if missing.

        Intended for local development, tests and the bootstrap script;
        it never alters existing tables.
        """
        SQLModel.metadata.create_all(self.engine)

    def session(self) -> Session:
        return Session(self.engine)

    def ping(self) -> bool:
        """Return True when a trivial query succeeds."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("database ping failed")
            return False


def get_session(request: Request):
    """Yield a `Session` for FastAPI dependency injection.

    The session comes from the `Database` stored on the application state
    and is closed when the request scope finishes.
    """
    db: Database = request.app.state.db
    with db.session() as session:
        yield session
