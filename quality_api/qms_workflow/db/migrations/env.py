"""
Alembic environment for the quality workflow tables.

Online runs use the asyncpg engine; offline runs render SQL against the
driverless postgresql:// URL. Only the three quality tables are managed, so the
schema can share a database with other services.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

# Allow `alembic -c ...` runs from a source checkout without installing the package.
SOURCE_ROOT = Path(__file__).resolve().parents[3]
if str(SOURCE_ROOT) not in sys.path:
    sys.path.insert(0, str(SOURCE_ROOT))

from qms_workflow.db import models  # noqa: E402,F401
from qms_workflow.db.base import Base  # noqa: E402
from qms_workflow.db.config import get_settings  # noqa: E402

config = context.config
db_settings = get_settings()
target_metadata = Base.metadata
MANAGED_TABLES = set(target_metadata.tables)


def include_object(obj, name, type_, reflected, compare_to):
    # Autogenerate ignores tables owned by other services in the same database.
    if type_ == "table":
        return name in MANAGED_TABLES
    return True


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        include_object=include_object,
        compare_type=True,
        compare_server_default=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(
        url=db_settings.sync_database_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_sync(sync_conn) -> None:
    _configure(connection=sync_conn)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_async_engine(db_settings.async_database_url, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_sync)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
