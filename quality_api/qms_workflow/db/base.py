from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, MetaData, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Constraint names Alembic autogenerate can diff against the hand-written migration.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Record and audit documents: JSONB on Postgres, plain JSON on SQLite.
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class DocumentTimestampsMixin:
    """
    createdAt/updatedAt copied out of the stored document.

    The repository always writes both from the record so list ordering matches
    the in-memory store; the server default only covers manual inserts.
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class TenantScopedMixin:
    """
    tenant_id column matched by the RLS policies against the app.tenant_id GUC.

    Tenants belong to the platform's identity service, so there is no FK.
    """
    tenant_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
