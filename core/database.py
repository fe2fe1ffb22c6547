"""
core/database.py -- Process-wide relational store handle.

One Database is constructed at startup (api/main.py lifespan or the CLI) and
passed by reference to every store that needs it. Stores register their
tables on the shared `metadata` below and call create_all() on construction,
so the schema is complete no matter which store is built first.

SQLAlchemy provides a database-agnostic abstraction: swapping the local
SQLite fallback for PostgreSQL is a DATABASE_URL change, not a rewrite.

Layer rule: core/ is the kernel. No imports from api/, auth/, registrar/,
sessions/, or notifications/.
"""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import MetaData, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger("enrollment.database")

DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'enrollment.db'}"

metadata = MetaData()


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


class Database:
    """Engine owner for the relational store.

    Usage:
        db = Database()                                   # SQLite fallback
        db = Database("postgresql://user:pw@host/db")     # PostgreSQL
        users = UserStore(db)
        registrar = RegistrarStore(db)
        db.close()
    """

    def __init__(self, db_url: str = "") -> None:
        self.url = db_url or DEFAULT_DB_URL
        connect_args: dict = {}
        if self.url.startswith("sqlite"):
            # SQLite requires check_same_thread=False when used from FastAPI's
            # threadpool, where one pooled connection may serve several threads.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(self.url, connect_args=connect_args)
        if self.url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        logger.info("Database engine created (%s)", self.engine.url.render_as_string(hide_password=True))

    def create_all(self) -> None:
        """Create every table registered on the shared metadata. Idempotent."""
        metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if a trivial query succeeds. Used by the health endpoint."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()
