"""
SQL repositories over the quality tables.

Records are stored as JSON documents next to the columns that are filtered on
(type, number, status, version). Audit entries are insert-only, and record
numbers come from a per-tenant, per-type, per-year counter row.
"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError

from qms_workflow.core.errors import RecordValidationError, StaleWriteConflictError
from qms_workflow.db.models.quality import AuditEntryRow, NumberSequenceRow, QualityRecordRow
from qms_workflow.schemas.audit import AuditEntry
from qms_workflow.schemas.enums import ItemType
from qms_workflow.schemas.registry import NUMBER_PREFIXES, QualityRecord, dump_record, item_type_of, load_record

from .base import TenantScopedRepository


def format_number(item_type: ItemType, year: int, value: int) -> str:
    return f"{NUMBER_PREFIXES[item_type]}-{year}-{value:04d}"


class SqlRecordRepository(TenantScopedRepository):
    """
    Record documents in the quality_records table.

    Reads select the document column only, so no ORM identity map is involved and
    compare-and-swap updates are always observed.
    """

    tenant_column = QualityRecordRow.tenant_id

    async def get(self, record_id: str, item_type: Optional[ItemType] = None) -> Optional[QualityRecord]:
        stmt = self._scoped(select(QualityRecordRow.document)).where(QualityRecordRow.id == record_id)
        if item_type is not None:
            stmt = stmt.where(QualityRecordRow.item_type == item_type.value)
        doc = await self.first_value(stmt)
        return load_record(doc) if doc is not None else None

    async def get_by_number(self, item_type: ItemType, number: str) -> Optional[QualityRecord]:
        stmt = self._scoped(select(QualityRecordRow.document)).where(
            QualityRecordRow.item_type == item_type.value,
            QualityRecordRow.number == number,
        )
        doc = await self.first_value(stmt)
        return load_record(doc) if doc is not None else None

    async def list(
        self,
        *,
        item_type: Optional[ItemType] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[QualityRecord]:
        stmt = self._scoped(select(QualityRecordRow.document))
        if item_type is not None:
            stmt = stmt.where(QualityRecordRow.item_type == item_type.value)
        if status:
            stmt = stmt.where(QualityRecordRow.status == status)
        stmt = stmt.order_by(QualityRecordRow.created_at.desc(), QualityRecordRow.number.desc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        docs = await self.all_values(stmt)
        return [load_record(d) for d in docs]

    async def add(self, record: QualityRecord) -> None:
        """Insert a new record; a taken id or number is a ValidationError."""
        try:
            await self.execute(
                insert(QualityRecordRow).values(
                    id=record.id,
                    tenant_id=self.tenant_id,
                    item_type=item_type_of(record).value,
                    number=record.number,
                    status=record.status.value,
                    version=record.version,
                    document=dump_record(record),
                    created_at=record.created_at,
                    updated_at=record.updated_at,
                )
            )
        except IntegrityError as exc:
            raise RecordValidationError(
                f"{record.number} already exists", {"number": record.number, "id": record.id}
            ) from exc

    async def replace(self, record: QualityRecord, expected_version: int) -> None:
        """Write a new snapshot only if the stored version still equals expected_version."""
        stmt = (
            self._scoped(update(QualityRecordRow))
            .where(QualityRecordRow.id == record.id, QualityRecordRow.version == expected_version)
            .values(
                status=record.status.value,
                version=record.version,
                document=dump_record(record),
                updated_at=record.updated_at,
            )
        )
        result = await self.execute(stmt)
        if result.rowcount != 1:
            current = await self.get(record.id)
            raise StaleWriteConflictError(
                f"{record.number} changed since version {expected_version}",
                current=dump_record(current) if current is not None else None,
            )

    async def next_number(self, item_type: ItemType, year: int) -> str:
        stmt = (
            select(NumberSequenceRow.last_value)
            .where(
                NumberSequenceRow.tenant_id == self.tenant_id,
                NumberSequenceRow.item_type == item_type.value,
                NumberSequenceRow.year == year,
            )
            .with_for_update()
        )
        current = await self.first_value(stmt)
        if current is None:
            value = 1
            await self.execute(
                insert(NumberSequenceRow).values(
                    tenant_id=self.tenant_id, item_type=item_type.value, year=year, last_value=value
                )
            )
        else:
            value = current + 1
            await self.execute(
                update(NumberSequenceRow)
                .where(
                    NumberSequenceRow.tenant_id == self.tenant_id,
                    NumberSequenceRow.item_type == item_type.value,
                    NumberSequenceRow.year == year,
                )
                .values(last_value=value)
            )
        return format_number(item_type, year, value)


class SqlAuditRepository(TenantScopedRepository):
    """Append-only access to quality_audit_entries. There is no update or delete."""

    tenant_column = AuditEntryRow.tenant_id

    async def next_seq(self, item_id: str) -> int:
        stmt = self._scoped(select(func.max(AuditEntryRow.seq))).where(AuditEntryRow.item_id == item_id)
        current = await self.first_value(stmt)
        return (current or 0) + 1

    async def append(self, entry: AuditEntry) -> None:
        await self.execute(
            insert(AuditEntryRow).values(
                id=entry.id,
                tenant_id=self.tenant_id,
                item_id=entry.item_id,
                item_type=entry.item_type.value,
                seq=entry.seq,
                action=entry.action.value,
                actor_id=entry.actor_id,
                timestamp=entry.timestamp,
                related_item_id=entry.related_item_id,
                entry=entry.model_dump(mode="json", by_alias=True),
            )
        )

    async def list_for_item(self, item_id: str, include_related: bool = False) -> List[AuditEntry]:
        condition = AuditEntryRow.item_id == item_id
        if include_related:
            condition = or_(condition, AuditEntryRow.related_item_id == item_id)
        stmt = (
            self._scoped(select(AuditEntryRow.entry))
            .where(condition)
            .order_by(AuditEntryRow.timestamp.asc(), AuditEntryRow.seq.asc())
        )
        docs = await self.all_values(stmt)
        return [AuditEntry.model_validate(d) for d in docs]

    async def count(self, item_id: str) -> int:
        stmt = self._scoped(select(func.count()).select_from(AuditEntryRow)).where(AuditEntryRow.item_id == item_id)
        return int(await self.first_value(stmt) or 0)
