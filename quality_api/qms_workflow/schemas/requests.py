"""
Request bodies for workflow operations.

Every mutating request carries `expectedVersion`, the record version the caller
last observed; it is required. A mismatch is reported as StaleWriteConflict.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import Field

from .common import ErrorInfo, QualityModel
from .enums import (
    ActionItemStatus,
    DispositionDecision,
    EightDStepStatus,
    ItemType,
    ReviewStatus,
    SCARItemKind,
    TaskStatus,
    Vote,
)
from .capa import TeamMember


class VersionedRequest(QualityModel):
    expected_version: int = Field(..., ge=1)


class FieldUpdateRequest(VersionedRequest):
    fields: Dict[str, Any] = Field(..., min_length=1)


class DispositionIn(QualityModel):
    decision: DispositionDecision
    justification: Optional[str] = None
    conditions: Optional[str] = None


class TransitionRequest(VersionedRequest):
    target_status: str = Field(..., min_length=1)
    reason: Optional[str] = None
    comments: Optional[str] = None
    # MRB approve/reject may carry the board's disposition in the same request.
    disposition: Optional[DispositionIn] = None


class BatchTransitionItem(QualityModel):
    record_id: str = Field(..., min_length=1)
    expected_version: int = Field(..., ge=1)


class BatchTransitionRequest(QualityModel):
    """The same transition applied to several records of one type, each at its own version."""
    items: List[BatchTransitionItem] = Field(..., min_length=1, max_length=200)
    target_status: str = Field(..., min_length=1)
    reason: Optional[str] = None
    comments: Optional[str] = None


class DispositionRequest(VersionedRequest, DispositionIn):
    pass


class SignoffRequest(VersionedRequest):
    approver_id: Optional[str] = Field(default=None, description="Defaults to the acting user")
    name: Optional[str] = None
    role: Optional[str] = None
    comment: Optional[str] = None


class MemberRequest(VersionedRequest):
    member_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    role: Optional[str] = None
    is_chair: bool = False


class VoteRequest(VersionedRequest):
    member_id: str = Field(..., min_length=1)
    vote: Vote
    comment: Optional[str] = None


class ActionItemRequest(VersionedRequest):
    description: str = Field(..., min_length=1)
    assigned_to: Optional[str] = None
    due_date: Optional[date] = None


class ActionItemUpdateRequest(VersionedRequest):
    status: Optional[ActionItemStatus] = None
    comments: Optional[str] = None


class StepPlanRequest(VersionedRequest):
    description: str = Field(..., min_length=1)
    owner: str = Field(..., min_length=1)
    due_date: Optional[date] = None
    team_members: Optional[List[TeamMember]] = None


class StepAdvanceRequest(VersionedRequest):
    status: EightDStepStatus
    comments: Optional[str] = None


class SupplierResponseRequest(VersionedRequest):
    responded_by: str = Field(..., min_length=1)
    acknowledgment: bool = True
    root_cause_analysis: Optional[str] = None
    proposed_actions: Optional[str] = None


class ReviewRequest(VersionedRequest):
    review_status: ReviewStatus
    review_comments: Optional[str] = None


class SCARItemRequest(VersionedRequest):
    kind: SCARItemKind
    description: str = Field(..., min_length=1)
    category: Optional[str] = Field(default=None, description="Required for root_cause entries")
    analysis: Optional[str] = None
    responsible: Optional[str] = None
    due_date: Optional[date] = None


class SCARVerifyRequest(VersionedRequest):
    kind: SCARItemKind
    item_id: str = Field(..., min_length=1)
    effectiveness_rating: Optional[int] = Field(default=None, ge=1, le=5)


class LinkRequest(QualityModel):
    parent_type: ItemType
    parent_id: str = Field(..., min_length=1)
    child_type: ItemType
    child_id: str = Field(..., min_length=1)
    parent_version: int = Field(..., ge=1)
    child_version: int = Field(..., ge=1)


class NoteRequest(VersionedRequest):
    text: str = Field(..., min_length=1)


class TaskRequest(VersionedRequest):
    title: str = Field(..., min_length=1)
    assignee: Optional[str] = None
    due_date: Optional[date] = None


class TaskUpdateRequest(VersionedRequest):
    status: TaskStatus


class AllowedTransition(QualityModel):
    target_status: str
    label: str
    requires_reason: bool
    guarded: bool


class QuorumView(QualityModel):
    quorum_met: bool
    votes_cast: int
    quorum_required: int
    approve_count: int
    reject_count: int
    abstain_count: int
    outcome: str


class BatchItemResult(QualityModel):
    """Outcome for one record of a batch: the new version and status, or the typed error."""
    record_id: str
    ok: bool
    version: Optional[int] = None
    status: Optional[str] = None
    error: Optional[ErrorInfo] = None
