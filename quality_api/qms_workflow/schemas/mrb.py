"""
Material Review Board (MRB) models: the board, its votes, action items, cost
impact and the disposition the board decides on.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import Field, model_validator

from .common import QualityModel
from .enums import (
    ActionItemStatus,
    DispositionDecision,
    MRBStatus,
    MRBType,
    Severity,
    Vote,
)
from .record import RecordEnvelope, RecordFields, Signoff


class BoardMemberIn(QualityModel):
    member_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    role: Optional[str] = None
    is_chair: bool = False


class BoardMember(BoardMemberIn):
    """Board member and the vote they cast, if any."""
    vote: Optional[Vote] = None
    voted_at: Optional[datetime] = None
    comment: Optional[str] = None


class MRBDisposition(QualityModel):
    decision: DispositionDecision
    justification: Optional[str] = None
    conditions: Optional[str] = None
    approved_by: List[Signoff] = Field(default_factory=list)
    approval_date: Optional[datetime] = None


class ActionItem(QualityModel):
    id: str
    description: str = Field(..., min_length=1)
    assigned_to: Optional[str] = None
    due_date: Optional[date] = None
    status: ActionItemStatus = ActionItemStatus.PENDING
    completed_date: Optional[datetime] = None
    comments: Optional[str] = None


class CostImpact(QualityModel):
    material_cost: float = Field(default=0.0, ge=0)
    labor_cost: float = Field(default=0.0, ge=0)
    rework_cost: float = Field(default=0.0, ge=0)
    total_cost: Optional[float] = Field(default=None, ge=0)
    currency: str = "USD"


class MRBFields(RecordFields):
    type: MRBType
    area: Optional[str] = None
    severity: Optional[Severity] = None
    part_number: Optional[str] = None
    lot_number: Optional[str] = None
    quantity: Optional[float] = Field(default=None, ge=0)
    unit: Optional[str] = None
    location: Optional[str] = None
    cost_impact: Optional[CostImpact] = None
    schedule_impact_days: Optional[int] = Field(default=None, ge=0)


class MRBCreate(MRBFields):
    """Create payload. quorumRequired falls back to the configured default."""
    number: Optional[str] = None
    quorum_required: Optional[int] = Field(default=None, ge=1)
    members: List[BoardMemberIn] = Field(default_factory=list)


class MRB(MRBFields, RecordEnvelope):
    """Material Review Board record."""
    record_type: Literal["mrb"] = "mrb"
    status: MRBStatus = MRBStatus.PENDING_REVIEW
    members: List[BoardMember] = Field(default_factory=list)
    quorum_required: int = Field(..., ge=1)
    disposition: Optional[MRBDisposition] = None
    action_items: List[ActionItem] = Field(default_factory=list)
    source_ncr_number: Optional[str] = Field(default=None, alias="sourceNCRNumber")
    linked_ncr_numbers: List[str] = Field(default_factory=list)
    capa_number: Optional[str] = None
    review_start_date: Optional[datetime] = None
    closed_date: Optional[datetime] = None
    closed_by: Optional[str] = None

    @model_validator(mode="after")
    def _check_board(self) -> "MRB":
        ids = [m.member_id for m in self.members]
        if len(ids) != len(set(ids)):
            raise ValueError("member ids must be unique")
        if sum(1 for m in self.members if m.is_chair) > 1:
            raise ValueError("an MRB has at most one chair")
        if self.disposition is None and self.status in (
            MRBStatus.APPROVED,
            MRBStatus.REJECTED,
            MRBStatus.CLOSED,
        ):
            raise ValueError(f"status {self.status.value} requires a disposition")
        if self.status != MRBStatus.CLOSED and (self.closed_date or self.closed_by):
            raise ValueError("closedDate/closedBy are only set on closed MRBs")
        return self

    def member(self, member_id: str) -> Optional[BoardMember]:
        for m in self.members:
            if m.member_id == member_id:
                return m
        return None
