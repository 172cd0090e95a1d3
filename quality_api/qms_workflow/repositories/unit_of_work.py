"""
Units of work.

One unit of work covers one workflow operation: read the record(s), write the
new snapshot(s), append the audit entry. Leaving the ``async with`` block
cleanly commits; an exception rolls everything back, so a failed mutation leaves
neither a record change nor an audit entry behind.
"""

from __future__ import annotations

import abc
import logging
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from qms_workflow.db.session import set_current_tenant

from .memory import InMemoryAuditRepository, InMemoryQualityDatabase, InMemoryRecordRepository
from .records import SqlAuditRepository, SqlRecordRepository

logger = logging.getLogger(__name__)


class AbstractUnitOfWork(abc.ABC):
    records: SqlRecordRepository | InMemoryRecordRepository
    audit: SqlAuditRepository | InMemoryAuditRepository

    def __init__(self, tenant_id: UUID) -> None:
        self.tenant_id = tenant_id
        self._committed = False

    async def __aenter__(self) -> "AbstractUnitOfWork":
        self._committed = False
        await self._begin()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            if exc_type is None and not self._committed:
                await self.commit()
            elif exc_type is not None:
                await self.rollback()
        finally:
            await self._close()

    async def commit(self) -> None:
        await self._commit()
        self._committed = True

    @abc.abstractmethod
    async def _begin(self) -> None: ...

    @abc.abstractmethod
    async def _commit(self) -> None: ...

    @abc.abstractmethod
    async def rollback(self) -> None: ...

    async def _close(self) -> None:
        return None


UnitOfWorkFactory = Callable[[UUID], AbstractUnitOfWork]


class SqlUnitOfWork(AbstractUnitOfWork):
    """Session-per-operation unit of work with the tenant GUC set for the transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], tenant_id: UUID) -> None:
        super().__init__(tenant_id)
        self.session_factory = session_factory
        self.session: Optional[AsyncSession] = None

    async def _begin(self) -> None:
        self.session = self.session_factory()
        if self.session.bind is not None and self.session.bind.dialect.name == "postgresql":
            await set_current_tenant(self.session, self.tenant_id)
        self.records = SqlRecordRepository(self.session, self.tenant_id)
        self.audit = SqlAuditRepository(self.session, self.tenant_id)

    async def _commit(self) -> None:
        if self.session is None:
            raise RuntimeError("Unit of work committed outside its async with block")
        await self.session.commit()

    async def rollback(self) -> None:
        if self.session is not None:
            logger.debug("Rolling back quality workflow transaction")
            await self.session.rollback()

    async def _close(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None


class InMemoryUnitOfWork(AbstractUnitOfWork):
    """
    Stages writes in its repositories and applies them under the database lock.

    Number sequences advance outside the staged writes, so a rolled-back create
    leaves a gap in the numbering.
    """

    def __init__(self, db: InMemoryQualityDatabase, tenant_id: UUID) -> None:
        super().__init__(tenant_id)
        self.db = db

    async def _begin(self) -> None:
        self.records = InMemoryRecordRepository(self.db, self.tenant_id)
        self.audit = InMemoryAuditRepository(self.db, self.tenant_id)

    async def _commit(self) -> None:
        async with self.db.lock:
            self.records._check()
            self.audit._check()
            self.records._apply()
            self.audit._apply()

    async def rollback(self) -> None:
        logger.debug("Discarding %d staged record writes", len(self.records.pending))
        self.records.pending.clear()
        self.audit.pending = []


# PUBLIC_INTERFACE
def sql_uow_factory(session_factory: async_sessionmaker[AsyncSession]) -> UnitOfWorkFactory:
    """Return a factory producing SQL units of work bound to session_factory."""
    return lambda tenant_id: SqlUnitOfWork(session_factory, tenant_id)


# PUBLIC_INTERFACE
def memory_uow_factory(db: InMemoryQualityDatabase) -> UnitOfWorkFactory:
    """Return a factory producing in-memory units of work over db."""
    return lambda tenant_id: InMemoryUnitOfWork(db, tenant_id)
