"""Quality workflow schema with multi-tenancy and RLS.

- quality_records: NCR/MRB/CAPA/SCAR documents (JSONB) with denormalized status/version
- quality_audit_entries: append-only audit trail
- quality_number_sequences: per tenant/type/year record number counters

Audit entries reject UPDATE and DELETE through a trigger.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "c3d9e1a7f5b2"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Helper function to set tenant in the current session
    op.execute(
        """
        CREATE OR REPLACE FUNCTION set_tenant_id(p_tenant_id uuid)
        RETURNS void AS $$
        BEGIN
            PERFORM set_config('app.tenant_id', p_tenant_id::text, false);
        END;
        $$ LANGUAGE plpgsql;
        """
    )

    op.create_table(
        "quality_records",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.UUID(), nullable=False, server_default=sa.text("current_setting('app.tenant_id', true)::uuid")),
        sa.Column("item_type", sa.String(length=8), nullable=False),
        sa.Column("number", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("document", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("tenant_id", "item_type", "number", name="uq_quality_records_tenant_type_number"),
        sa.CheckConstraint("item_type IN ('ncr', 'mrb', 'capa', 'scar')", name="ck_quality_records_item_type"),
        sa.CheckConstraint("version >= 1", name="ck_quality_records_version"),
        sa.Index("ix_quality_records_tenant_id", "tenant_id"),
        sa.Index("ix_quality_records_item_type", "item_type"),
        sa.Index("ix_quality_records_tenant_type_status", "tenant_id", "item_type", "status"),
        sa.Index("ix_quality_records_created_at", "created_at"),
    )

    op.create_table(
        "quality_audit_entries",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.UUID(), nullable=False, server_default=sa.text("current_setting('app.tenant_id', true)::uuid")),
        sa.Column("item_id", sa.String(length=36), nullable=False),
        sa.Column("item_type", sa.String(length=8), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("actor_id", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("related_item_id", sa.String(length=36), nullable=True),
        sa.Column("entry", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.UniqueConstraint("item_id", "seq", name="uq_quality_audit_entries_item_seq"),
        sa.ForeignKeyConstraint(["item_id"], ["quality_records.id"], ondelete="RESTRICT"),
        sa.Index("ix_quality_audit_entries_tenant_id", "tenant_id"),
        sa.Index("ix_quality_audit_entries_item_id", "item_id"),
        sa.Index("ix_quality_audit_entries_related_item_id", "related_item_id"),
    )

    op.create_table(
        "quality_number_sequences",
        sa.Column("tenant_id", sa.UUID(), nullable=False),
        sa.Column("item_type", sa.String(length=8), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.PrimaryKeyConstraint("tenant_id", "item_type", "year", name="pk_quality_number_sequences"),
    )

    # Audit trail is append-only
    op.execute(
        """
        CREATE OR REPLACE FUNCTION quality_audit_entries_append_only()
        RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'quality_audit_entries is append-only';
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_quality_audit_entries_append_only
        BEFORE UPDATE OR DELETE ON quality_audit_entries
        FOR EACH ROW EXECUTE FUNCTION quality_audit_entries_append_only();
        """
    )

    # Records are never hard-deleted
    op.execute(
        """
        CREATE OR REPLACE FUNCTION quality_records_no_delete()
        RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'quality_records rows cannot be deleted';
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_quality_records_no_delete
        BEFORE DELETE ON quality_records
        FOR EACH ROW EXECUTE FUNCTION quality_records_no_delete();
        """
    )

    # Enable RLS and add policies; FORCE also binds the table owner the app connects as
    tenant_scoped_tables = [
        "quality_records",
        "quality_audit_entries",
        "quality_number_sequences",
    ]
    for tbl in tenant_scoped_tables:
        op.execute(f"ALTER TABLE {tbl} ENABLE ROW LEVEL SECURITY;")
        op.execute(f"ALTER TABLE {tbl} FORCE ROW LEVEL SECURITY;")
        op.execute(
            f"""
            CREATE POLICY {tbl}_tenant_isolation ON {tbl}
            USING (tenant_id = current_setting('app.tenant_id', true)::uuid)
            WITH CHECK (tenant_id = current_setting('app.tenant_id', true)::uuid);
            """
        )


def downgrade() -> None:
    for tbl in ["quality_number_sequences", "quality_audit_entries", "quality_records"]:
        op.execute(f"DROP POLICY IF EXISTS {tbl}_tenant_isolation ON {tbl};")
        op.execute(f"ALTER TABLE {tbl} NO FORCE ROW LEVEL SECURITY;")
    op.execute("DROP TRIGGER IF EXISTS trg_quality_records_no_delete ON quality_records;")
    op.execute("DROP TRIGGER IF EXISTS trg_quality_audit_entries_append_only ON quality_audit_entries;")
    op.execute("DROP FUNCTION IF EXISTS quality_records_no_delete();")
    op.execute("DROP FUNCTION IF EXISTS quality_audit_entries_append_only();")
    op.drop_table("quality_number_sequences")
    op.drop_table("quality_audit_entries")
    op.drop_table("quality_records")
    op.execute("DROP FUNCTION IF EXISTS set_tenant_id(uuid);")
