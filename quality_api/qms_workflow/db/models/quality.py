from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from qms_workflow.db.base import Base, DocumentTimestampsMixin, JSONDocument, TenantScopedMixin


class QualityRecordRow(TenantScopedMixin, DocumentTimestampsMixin, Base):
    """
    One NCR/MRB/CAPA/SCAR record stored as its JSON document.

    status and version are denormalized from the document for filtering and
    compare-and-swap updates.
    """
    __tablename__ = "quality_records"
    __table_args__ = (
        UniqueConstraint("tenant_id", "item_type", "number", name="uq_quality_records_tenant_type_number"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    item_type: Mapped[str] = mapped_column(String(8), nullable=False, index=True)
    number: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    document: Mapped[dict] = mapped_column(JSONDocument, nullable=False)


class AuditEntryRow(TenantScopedMixin, Base):
    """Append-only audit entry. Postgres rejects UPDATE/DELETE via trigger."""
    __tablename__ = "quality_audit_entries"
    __table_args__ = (
        UniqueConstraint("item_id", "seq", name="uq_quality_audit_entries_item_seq"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    item_type: Mapped[str] = mapped_column(String(8), nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    actor_id: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    related_item_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    entry: Mapped[dict] = mapped_column(JSONDocument, nullable=False)


class NumberSequenceRow(Base):
    """Per tenant/type/year counter behind human-readable record numbers."""
    __tablename__ = "quality_number_sequences"

    tenant_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    item_type: Mapped[str] = mapped_column(String(8), primary_key=True)
    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
