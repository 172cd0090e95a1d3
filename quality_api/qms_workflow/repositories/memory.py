"""
Process-local record store.

Documents are kept in their persisted JSON layout, so every read goes through
the same load path as the SQL backend. Writes are staged per unit of work and
applied at commit under a lock, with the same version checks as the SQL
compare-and-swap.
"""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from qms_workflow.core.errors import RecordValidationError, StaleWriteConflictError
from qms_workflow.schemas.audit import AuditEntry
from qms_workflow.schemas.enums import ItemType
from qms_workflow.schemas.registry import QualityRecord, dump_record, load_record

from .records import format_number


@dataclass
class _TenantStore:
    records: Dict[str, dict] = field(default_factory=dict)
    audit: List[dict] = field(default_factory=list)
    sequences: Dict[Tuple[str, int], int] = field(default_factory=dict)


class InMemoryQualityDatabase:
    """Holds every tenant's documents. Construct once per process (or per test)."""

    def __init__(self) -> None:
        self._tenants: Dict[UUID, _TenantStore] = {}
        self.lock = asyncio.Lock()

    def tenant(self, tenant_id: UUID) -> _TenantStore:
        return self._tenants.setdefault(tenant_id, _TenantStore())


class InMemoryRecordRepository:
    def __init__(self, db: InMemoryQualityDatabase, tenant_id: UUID) -> None:
        self.db = db
        self.store = db.tenant(tenant_id)
        # record id -> (expected stored version or None for inserts, document)
        self.pending: Dict[str, Tuple[Optional[int], dict]] = {}

    def _documents(self) -> Dict[str, dict]:
        docs = dict(self.store.records)
        for record_id, (_, doc) in self.pending.items():
            docs[record_id] = doc
        return docs

    async def get(self, record_id: str, item_type: Optional[ItemType] = None) -> Optional[QualityRecord]:
        doc = self._documents().get(record_id)
        if doc is None or (item_type is not None and doc["recordType"] != item_type.value):
            return None
        return load_record(copy.deepcopy(doc))

    async def get_by_number(self, item_type: ItemType, number: str) -> Optional[QualityRecord]:
        for doc in self._documents().values():
            if doc["recordType"] == item_type.value and doc["number"] == number:
                return load_record(copy.deepcopy(doc))
        return None

    async def list(
        self,
        *,
        item_type: Optional[ItemType] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[QualityRecord]:
        docs = [
            d
            for d in self._documents().values()
            if (item_type is None or d["recordType"] == item_type.value) and (not status or d["status"] == status)
        ]
        docs.sort(key=lambda d: (d["createdAt"], d["number"]), reverse=True)
        end = None if limit is None else offset + limit
        return [load_record(copy.deepcopy(d)) for d in docs[offset:end]]

    async def add(self, record: QualityRecord) -> None:
        self.pending[record.id] = (None, dump_record(record))

    async def replace(self, record: QualityRecord, expected_version: int) -> None:
        stored = self._documents().get(record.id)
        if stored is None or stored["version"] != expected_version:
            raise StaleWriteConflictError(
                f"{record.number} changed since version {expected_version}",
                current=copy.deepcopy(stored) if stored is not None else None,
            )
        previous = self.pending.get(record.id)
        # Keep the version first read in this unit of work; inserts stay inserts.
        expected = previous[0] if previous is not None else expected_version
        self.pending[record.id] = (expected, dump_record(record))

    async def next_number(self, item_type: ItemType, year: int) -> str:
        key = (item_type.value, year)
        value = self.store.sequences.get(key, 0) + 1
        self.store.sequences[key] = value
        return format_number(item_type, year, value)

    def _check(self) -> None:
        for record_id, (expected, doc) in self.pending.items():
            stored = self.store.records.get(record_id)
            if expected is None:
                if stored is not None:
                    raise RecordValidationError(f"Record id {record_id} already exists")
                clash = any(
                    d["recordType"] == doc["recordType"] and d["number"] == doc["number"]
                    for d in self.store.records.values()
                )
                if clash:
                    raise RecordValidationError(f"{doc['number']} already exists")
            elif stored is None or stored["version"] != expected:
                raise StaleWriteConflictError(
                    f"{doc['number']} changed since version {expected}",
                    current=copy.deepcopy(stored) if stored is not None else None,
                )

    def _apply(self) -> None:
        for record_id, (_, doc) in self.pending.items():
            self.store.records[record_id] = copy.deepcopy(doc)
        self.pending.clear()


class InMemoryAuditRepository:
    def __init__(self, db: InMemoryQualityDatabase, tenant_id: UUID) -> None:
        self.store = db.tenant(tenant_id)
        self.pending: List[dict] = []

    def _all(self) -> List[dict]:
        return self.store.audit + self.pending

    async def next_seq(self, item_id: str) -> int:
        seqs = [e["seq"] for e in self._all() if e["itemId"] == item_id]
        return max(seqs, default=0) + 1

    async def append(self, entry: AuditEntry) -> None:
        self.pending.append(entry.model_dump(mode="json", by_alias=True))

    async def list_for_item(self, item_id: str, include_related: bool = False) -> List[AuditEntry]:
        return [
            AuditEntry.model_validate(copy.deepcopy(e))
            for e in self._all()
            if e["itemId"] == item_id or (include_related and e.get("relatedItemId") == item_id)
        ]

    async def count(self, item_id: str) -> int:
        return sum(1 for e in self._all() if e["itemId"] == item_id)

    def _check(self) -> None:
        committed = {(e["itemId"], e["seq"]) for e in self.store.audit}
        for e in self.pending:
            if (e["itemId"], e["seq"]) in committed:
                raise StaleWriteConflictError(f"Audit sequence {e['seq']} for {e['itemId']} is taken")

    def _apply(self) -> None:
        self.store.audit.extend(self.pending)
        self.pending = []
