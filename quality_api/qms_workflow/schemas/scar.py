"""Supplier corrective action request (SCAR) models."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import Field, model_validator

from .common import QualityModel
from .enums import ActionItemStatus, Priority, ReviewStatus, SCARStatus
from .record import RecordEnvelope, RecordFields


class ContainmentAction(QualityModel):
    id: str
    description: str = Field(..., min_length=1)
    responsible: Optional[str] = None
    due_date: Optional[date] = None
    status: ActionItemStatus = ActionItemStatus.PENDING
    completed_date: Optional[datetime] = None


class RootCause(QualityModel):
    id: str
    category: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    analysis: Optional[str] = None
    verified: bool = False


class SupplierAction(QualityModel):
    """Corrective or preventive action committed to by the supplier."""
    id: str
    description: str = Field(..., min_length=1)
    responsible: Optional[str] = None
    due_date: Optional[date] = None
    status: ActionItemStatus = ActionItemStatus.PENDING
    completed_date: Optional[datetime] = None
    verified: bool = False
    effectiveness_rating: Optional[int] = Field(default=None, ge=1, le=5)


class SupplierResponse(QualityModel):
    response_date: datetime
    responded_by: str = Field(..., min_length=1)
    acknowledgment: bool = True
    root_cause_analysis: Optional[str] = None
    proposed_actions: Optional[str] = None


class SCARFields(RecordFields):
    priority: Priority = Priority.MEDIUM
    supplier_id: str = Field(..., min_length=1)
    supplier_name: str = Field(..., min_length=1)
    supplier_contact: Optional[str] = None
    supplier_email: Optional[str] = None
    purchase_order_number: Optional[str] = None
    part_number: Optional[str] = None
    lot_number: Optional[str] = None
    defect_description: Optional[str] = None
    defect_quantity: Optional[int] = Field(default=None, ge=0)
    due_date: Optional[date] = None


class SCARCreate(SCARFields):
    number: Optional[str] = None


class SCAR(SCARFields, RecordEnvelope):
    """Supplier Corrective Action Request."""
    record_type: Literal["scar"] = "scar"
    status: SCARStatus = SCARStatus.DRAFT
    source_ncr_id: Optional[str] = Field(default=None, alias="sourceNCRId")
    source_ncr_number: Optional[str] = Field(default=None, alias="sourceNCRNumber")
    containment_actions: List[ContainmentAction] = Field(default_factory=list)
    root_causes: List[RootCause] = Field(default_factory=list)
    corrective_actions: List[SupplierAction] = Field(default_factory=list)
    preventive_actions: List[SupplierAction] = Field(default_factory=list)
    supplier_response: Optional[SupplierResponse] = None
    review_status: Optional[ReviewStatus] = None
    review_comments: Optional[str] = None
    reviewed_by: Optional[str] = None
    review_date: Optional[datetime] = None
    issue_date: Optional[datetime] = None
    # SCAR uses closeDate where the other records use closedDate.
    close_date: Optional[datetime] = None
    closed_by: Optional[str] = None

    @model_validator(mode="after")
    def _check_closed_fields(self) -> "SCAR":
        if self.status != SCARStatus.CLOSED and (self.close_date or self.closed_by):
            raise ValueError("closeDate/closedBy are only set on closed SCARs")
        return self
