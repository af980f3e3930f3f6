"""
Alembic environment for Trade Ledger.

- Connects through tradeledger.database.engine.build_engine, so SQLite
  migrations run with foreign keys enabled, same as the application
- render_as_batch=True on SQLite (ALTER TABLE support), off for PostgreSQL
- DATABASE_URL from the environment, falling back to the local SQLite file
"""

import os
from logging.config import fileConfig

from sqlalchemy.types import Boolean, Float, Integer, String

from alembic import context

from tradeledger.database.engine import DEFAULT_DATABASE_URL, build_engine
from tradeledger.database.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

_db_url = os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)
_is_sqlite = _db_url.startswith("sqlite")

# Declared types SQLite reports back under its own affinity names
_SQLITE_AFFINITY = {
    "TEXT": String,
    "VARCHAR": String,
    "REAL": Float,
    "FLOAT": Float,
    "BOOLEAN": Boolean,
    "INTEGER": Integer,
}


def _compare_type(context, inspected_column, metadata_column, inspected_type, metadata_type):
    """Ignore SQLite affinity renames so autogenerate only reports real changes."""
    expected = _SQLITE_AFFINITY.get(type(inspected_type).__name__.upper())
    if expected is not None and isinstance(metadata_type, expected):
        return False
    return None


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        render_as_batch=_is_sqlite,
        compare_type=_compare_type if _is_sqlite else True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(url=_db_url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    bundle = build_engine(_db_url)
    try:
        with bundle.engine.connect() as connection:
            _configure(connection=connection)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        bundle.engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
