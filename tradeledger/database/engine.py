"""
SQLAlchemy engine factory for Trade Ledger.

Builds an engine for either SQLite or PostgreSQL (the dialect is selected
from the URL prefix) together with the dialect-specific ``insert()`` used for
``ON CONFLICT DO NOTHING`` statements.  Nothing here is module-level state;
the DatabaseManager owns the returned engine and disposes of it on close().
"""

import logging
import os
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///trade_ledger.db"


@dataclass
class EngineBundle:
    """An engine plus the dialect facts resolved once at creation time."""
    engine: Engine
    dialect: str  # "sqlite" or "postgresql"
    insert_func: Callable


def build_engine(db_url: Optional[str] = None) -> EngineBundle:
    """Create a SQLAlchemy engine.

    Args:
        db_url: Full SQLAlchemy database URL. If None, reads DATABASE_URL
                from environment. Falls back to sqlite:///trade_ledger.db.
    """
    if db_url is None:
        db_url = os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)

    dialect = "postgresql" if db_url.startswith("postgresql") else "sqlite"

    if dialect == "sqlite":
        engine = create_engine(
            db_url,
            echo=False,
            connect_args={"check_same_thread": False},  # required for FastAPI
        )

        # position_trades cascades rely on this (SQLite-specific)
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        from sqlalchemy.dialects.sqlite import insert as insert_func

    else:
        engine = create_engine(
            db_url,
            echo=False,
            pool_size=5,
            max_overflow=10,
        )

        from sqlalchemy.dialects.postgresql import insert as insert_func

    logger.info("SQLAlchemy engine created (%s): %s", dialect,
                db_url.split("@")[-1] if "@" in db_url else db_url)
    return EngineBundle(engine=engine, dialect=dialect, insert_func=insert_func)
