"""
Nonconformance report (NCR) models.

An NCR records a detected defect. Its disposition may only exist from
pending_disposition on, and the close stamps only once it is closed.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, model_validator

from .common import QualityModel
from .enums import DispositionDecision, NCRStatus, NCRType, Severity
from .record import RecordEnvelope, RecordFields, Signoff


class NCRDisposition(QualityModel):
    """Disposition decision plus the ordered, append-only list of sign-offs."""
    decision: Optional[DispositionDecision] = None
    justification: Optional[str] = None
    conditions: Optional[str] = None
    approved_by: List[Signoff] = Field(default_factory=list)
    approval_date: Optional[datetime] = None


class NCRFields(RecordFields):
    type: NCRType
    severity: Severity
    area: Optional[str] = None
    defect_code: Optional[str] = None
    lot_number: Optional[str] = None
    serial_number: Optional[str] = None
    part_number: Optional[str] = None
    quantity_affected: Optional[int] = Field(default=None, ge=0)
    reported_by: Optional[str] = None
    assigned_to: Optional[str] = None
    investigated_by: Optional[str] = None
    root_cause: Optional[str] = None
    root_cause_category: Optional[str] = None
    containment_action: Optional[str] = None


class NCRCreate(NCRFields):
    """Create payload. Number is generated when omitted."""
    number: Optional[str] = None


class NCR(NCRFields, RecordEnvelope):
    """Nonconformance Report."""
    record_type: Literal["ncr"] = "ncr"
    status: NCRStatus = NCRStatus.DRAFT
    disposition: Optional[NCRDisposition] = None
    mrb_number: Optional[str] = None
    capa_number: Optional[str] = None
    scar_number: Optional[str] = None
    closed_date: Optional[datetime] = None
    closed_by: Optional[str] = None

    @model_validator(mode="after")
    def _check_status_fields(self) -> "NCR":
        if self.disposition is not None and self.status not in (
            NCRStatus.PENDING_DISPOSITION,
            NCRStatus.CLOSED,
        ):
            raise ValueError("disposition may only be set once status is pending_disposition")
        if self.status != NCRStatus.CLOSED and (self.closed_date or self.closed_by):
            raise ValueError("closedDate/closedBy are only set on closed NCRs")
        return self
