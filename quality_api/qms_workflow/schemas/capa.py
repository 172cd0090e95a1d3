"""
Corrective/preventive action (CAPA) models following the 8D method.

Each of the eight discipline steps d1..d8 is an optional EightDStep; d1 also
carries the team.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import Field, model_validator

from .common import QualityModel
from .enums import (
    STEP_FIELD_NAMES,
    CAPAStatus,
    CAPAType,
    EightDStepKey,
    EightDStepStatus,
    Priority,
    RootCauseMethod,
)
from .record import RecordEnvelope, RecordFields


class EightDStep(QualityModel):
    """One 8D discipline step. Status moves pending -> in_progress -> completed -> verified."""
    description: str = Field(..., min_length=1)
    owner: str = Field(..., min_length=1)
    due_date: Optional[date] = None
    completed_date: Optional[datetime] = None
    status: EightDStepStatus = EightDStepStatus.PENDING
    comments: Optional[str] = None

    @model_validator(mode="after")
    def _completed_has_date(self) -> "EightDStep":
        if self.status in (EightDStepStatus.COMPLETED, EightDStepStatus.VERIFIED) and self.completed_date is None:
            raise ValueError("a completed or verified step needs completedDate")
        return self


class TeamMember(QualityModel):
    name: str = Field(..., min_length=1)
    role: Optional[str] = None
    department: Optional[str] = None


class TeamStep(EightDStep):
    """D1 also records the problem-solving team."""
    team_members: List[TeamMember] = Field(default_factory=list)


class CAPAFields(RecordFields):
    type: CAPAType
    priority: Priority = Priority.MEDIUM
    area: Optional[str] = None
    requested_by: Optional[str] = None
    assigned_to: Optional[str] = None
    due_date: Optional[date] = None
    root_cause: Optional[str] = None
    root_cause_analysis_method: Optional[RootCauseMethod] = None
    effectiveness_rating: Optional[int] = Field(default=None, ge=1, le=5)


class CAPACreate(CAPAFields):
    number: Optional[str] = None


class CAPA(CAPAFields, RecordEnvelope):
    """Corrective/Preventive Action following the 8D method."""
    record_type: Literal["capa"] = "capa"
    status: CAPAStatus = CAPAStatus.DRAFT
    source_ncr_id: Optional[str] = None
    source_ncr_number: Optional[str] = Field(default=None, alias="sourceNCRNumber")
    mrb_number: Optional[str] = None
    d1_team: Optional[TeamStep] = None
    d2_problem: Optional[EightDStep] = None
    d3_containment: Optional[EightDStep] = None
    d4_root_cause: Optional[EightDStep] = None
    d5_corrective_actions: Optional[EightDStep] = None
    d6_implementation: Optional[EightDStep] = None
    d7_prevention: Optional[EightDStep] = None
    d8_recognition: Optional[EightDStep] = None
    submitted_date: Optional[datetime] = None
    implementation_start_date: Optional[datetime] = None
    implementation_end_date: Optional[datetime] = None
    verification_date: Optional[datetime] = None
    verified_by: Optional[str] = None
    closed_date: Optional[datetime] = None
    closed_by: Optional[str] = None
    cancelled_reason: Optional[str] = None

    @model_validator(mode="after")
    def _check_closed_fields(self) -> "CAPA":
        if self.status != CAPAStatus.CLOSED and (self.closed_date or self.closed_by):
            raise ValueError("closedDate/closedBy are only set on closed CAPAs")
        return self

    def step(self, key: EightDStepKey) -> Optional[EightDStep]:
        return getattr(self, STEP_FIELD_NAMES[key.value])

    def steps(self) -> List[tuple]:
        """(key, step-or-None) pairs in d1..d8 order."""
        return [(key, self.step(key)) for key in EightDStepKey]
