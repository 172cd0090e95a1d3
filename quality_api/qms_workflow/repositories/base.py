from __future__ import annotations

from typing import Any, List, Optional
from uuid import UUID

from sqlalchemy import Executable
from sqlalchemy.ext.asyncio import AsyncSession


class TenantScopedRepository:
    """
    Shared plumbing for the SQL repositories of one unit of work.

    Every statement is filtered on tenant_id in Python as well as by the Postgres
    RLS policies, so SQLite test databases see the same isolation.
    """

    tenant_column: Any = None

    def __init__(self, session: AsyncSession, tenant_id: UUID) -> None:
        self.session = session
        self.tenant_id = tenant_id

    def _scoped(self, stmt):
        # Read off the class: on an instance the mapped attribute would resolve as a descriptor.
        return stmt.where(type(self).tenant_column == self.tenant_id)

    async def execute(self, statement: Executable):
        return await self.session.execute(statement)

    async def first_value(self, statement: Executable) -> Optional[Any]:
        """Single scalar or None; raises if the statement matches several rows."""
        result = await self.execute(statement)
        return result.scalar_one_or_none()

    async def all_values(self, statement: Executable) -> List[Any]:
        result = await self.execute(statement)
        return list(result.scalars())
