from __future__ import annotations

import logging
from functools import lru_cache
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import get_settings

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    """Process-wide AsyncEngine for the postgres record store, created on first use."""
    settings = get_settings()
    logger.info("Creating record store engine (pool_size=%s)", settings.DB_POOL_SIZE)
    return create_async_engine(
        settings.async_database_url,
        echo=settings.SQL_ECHO,
        pool_pre_ping=True,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
    )


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Session factory handed to sql_uow_factory; one session per workflow operation."""
    return async_sessionmaker(bind=get_engine(), expire_on_commit=False, autoflush=False)


# PUBLIC_INTERFACE
async def dispose_engine() -> None:
    """Close pooled connections at shutdown. A no-op when the engine was never created."""
    if get_engine.cache_info().currsize == 0:
        return
    await get_engine().dispose()
    get_session_maker.cache_clear()
    get_engine.cache_clear()


# PUBLIC_INTERFACE
async def ping_database() -> bool:
    """Readiness check: True when a trivial query round-trips."""
    async with get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))
    return True


# PUBLIC_INTERFACE
async def set_current_tenant(session: AsyncSession, tenant_id: UUID, local: bool = True) -> None:
    """
    Bind the tenant to the session's transaction through the app.tenant_id GUC.

    The RLS policies on quality_records, quality_audit_entries and
    quality_number_sequences compare tenant_id with current_setting('app.tenant_id', true).
    With local=True the setting ends with the transaction, so pooled connections
    never carry a previous request's tenant.
    """
    await session.execute(
        text("SELECT set_config('app.tenant_id', :tenant_id, :is_local)"),
        {"tenant_id": str(tenant_id), "is_local": local},
    )
