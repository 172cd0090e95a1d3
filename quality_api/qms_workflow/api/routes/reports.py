from __future__ import annotations

import io
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import pandas as pd
from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from qms_workflow.core.deps import get_tenant_id, get_workflow_service
from qms_workflow.engine.progress import progress
from qms_workflow.schemas.audit import AuditFilter
from qms_workflow.schemas.enums import ItemType
from qms_workflow.schemas.registry import item_type_of
from qms_workflow.services.workflow import WorkflowService

# PUBLIC_INTERFACE
router = APIRouter(
    prefix="/reports",
    tags=["Reports"],
)

REGISTER_COLUMNS = [
    "item_type",
    "number",
    "title",
    "status",
    "progress_percent",
    "severity_or_priority",
    "linked_ncr",
    "linked_mrb",
    "linked_capa",
    "linked_scar",
    "created_by",
    "created_at",
    "updated_at",
    "closed_at",
]

AUDIT_COLUMNS = ["seq", "timestamp", "actor_id", "action", "fields", "reason", "comments", "related_item_id"]


XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _render_csv(df: pd.DataFrame, title: str) -> bytes:
    return df.to_csv(index=False).encode("utf-8")


def _render_xlsx(df: pd.DataFrame, title: str) -> bytes:
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        # Sheet names are limited to 31 characters.
        df.to_excel(writer, index=False, sheet_name=title[:31] or "Report")
    return buffer.getvalue()


def _render_pdf(df: pd.DataFrame, title: str) -> bytes:
    """Landscape table with a repeated header row; long registers span pages."""
    from reportlab.lib import colors
    from reportlab.lib.pagesizes import landscape, letter
    from reportlab.lib.styles import getSampleStyleSheet
    from reportlab.platypus import Paragraph, SimpleDocTemplate, Table, TableStyle

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=landscape(letter), leftMargin=18, rightMargin=18, topMargin=18, bottomMargin=18)
    generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
    heading = Paragraph(f"{title.replace('_', ' ')} (generated {generated})", getSampleStyleSheet()["Title"])

    table = Table([list(df.columns)] + df.astype(str).values.tolist(), repeatRows=1)
    table.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 7),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
            ]
        )
    )
    doc.build([heading, table])
    return buffer.getvalue()


FORMAT_PATTERN = "^(csv|xlsx|pdf)$"

# format -> (renderer, media type, file extension)
RENDERERS = {
    "csv": (_render_csv, "text/csv", "csv"),
    "xlsx": (_render_xlsx, XLSX_MEDIA_TYPE, "xlsx"),
    "pdf": (_render_pdf, "application/pdf", "pdf"),
}


def _export_dataframe(df: pd.DataFrame, filename_base: str, export_format: str) -> StreamingResponse:
    render, media_type, extension = RENDERERS[export_format]
    headers = {"Content-Disposition": f'attachment; filename="{filename_base}.{extension}"'}
    return StreamingResponse(io.BytesIO(render(df, filename_base)), media_type=media_type, headers=headers)


def _iso(value) -> str:
    # Excel cannot store timezone-aware datetimes.
    return value.isoformat() if value is not None else ""


def _register_row(record) -> dict:
    kind = item_type_of(record)
    closed_at = getattr(record, "closed_date", None) or getattr(record, "close_date", None)
    rank = getattr(record, "severity", None) or getattr(record, "priority", None)
    return {
        "item_type": kind.value,
        "number": record.number,
        "title": record.title,
        "status": record.status.value,
        "progress_percent": progress(kind, record.status).percent,
        "severity_or_priority": rank.value if rank is not None else "",
        "linked_ncr": getattr(record, "source_ncr_number", None) or "",
        "linked_mrb": getattr(record, "mrb_number", None) or "",
        "linked_capa": getattr(record, "capa_number", None) or "",
        "linked_scar": getattr(record, "scar_number", None) or "",
        "created_by": record.created_by,
        "created_at": _iso(record.created_at),
        "updated_at": _iso(record.updated_at),
        "closed_at": _iso(closed_at),
    }


# PUBLIC_INTERFACE
@router.get(
    "/quality-register",
    summary="Quality record register",
    description="Exports NCR/MRB/CAPA/SCAR records with status, progress and links.",
    response_description="File stream (CSV/XLSX/PDF)",
)
async def quality_register_report(
    tenant_id: UUID = Depends(get_tenant_id),
    service: WorkflowService = Depends(get_workflow_service),
    item_type: Optional[ItemType] = Query(None, alias="itemType", description="Restrict to one record type"),
    status: Optional[str] = Query(None, description="Filter by status"),
    format: str = Query("csv", pattern=FORMAT_PATTERN, description="Export format: csv | xlsx | pdf"),
):
    """
    Generate the quality register.

    One row per record, newest first. Enum values are exported as their wire
    values and timestamps in UTC.
    """
    rows = await service.list_records(tenant_id, item_type, status=status)
    data = [_register_row(r) for r in rows]
    df = pd.DataFrame(data, columns=REGISTER_COLUMNS)
    name = f"quality_register_{item_type.value}" if item_type else "quality_register"
    return _export_dataframe(df, name, format)


# PUBLIC_INTERFACE
@router.get(
    "/audit-trail/{item_type}/{record_id}",
    summary="Audit trail export",
    description="Exports a record's audit trail, one row per entry.",
    response_description="File stream (CSV/XLSX/PDF)",
)
async def audit_trail_report(
    item_type: ItemType,
    record_id: str,
    tenant_id: UUID = Depends(get_tenant_id),
    service: WorkflowService = Depends(get_workflow_service),
    include_related: bool = Query(True, alias="includeRelated"),
    format: str = Query("csv", pattern=FORMAT_PATTERN, description="Export format: csv | xlsx | pdf"),
):
    trail = await service.query_audit_trail(
        tenant_id, item_type, record_id, AuditFilter(include_related=include_related, limit=5000)
    )
    record = await service.get_record(tenant_id, item_type, record_id)
    data = [
        {
            "seq": e.seq,
            "timestamp": _iso(e.timestamp),
            "actor_id": e.actor_id,
            "action": e.action.value,
            "fields": ", ".join(e.details.fields),
            "reason": e.details.reason or "",
            "comments": e.details.comments or "",
            "related_item_id": e.related_item_id or "",
        }
        for e in trail.entries
    ]
    df = pd.DataFrame(data, columns=AUDIT_COLUMNS)
    return _export_dataframe(df, f"audit_trail_{record.number}", format)
