"""
Disposition and approval rules.

- MRB: board membership, one vote per member, quorum evaluation with chair tie-break
- NCR: disposition with an ordered, append-only list of sign-offs
- CAPA: 8D step planning and monotonic step advancement
- SCAR: supplier response, review outcome and supplier action verification
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional
from uuid import uuid4

from qms_workflow.core.errors import (
    DuplicateVoteError,
    GuardFailedError,
    InvalidTransitionError,
    NotAMemberError,
    RecordNotFoundError,
    RecordValidationError,
)
from qms_workflow.schemas.capa import CAPA, EightDStep, TeamMember, TeamStep
from qms_workflow.schemas.enums import (
    ActionItemStatus,
    DispositionDecision,
    EightDStepKey,
    EightDStepStatus,
    GuardReason,
    MRBStatus,
    NCRStatus,
    QuorumOutcome,
    ReviewStatus,
    SCARItemKind,
    SCARStatus,
    Vote,
)
from qms_workflow.schemas.mrb import MRB, ActionItem, BoardMember, MRBDisposition
from qms_workflow.schemas.ncr import NCR, NCRDisposition
from qms_workflow.schemas.record import Signoff
from qms_workflow.schemas.scar import (
    SCAR,
    ContainmentAction,
    RootCause,
    SupplierAction,
    SupplierResponse,
)

VOTING_STATUSES = (MRBStatus.IN_REVIEW, MRBStatus.PENDING_DISPOSITION)
MEMBERSHIP_STATUSES = (MRBStatus.PENDING_REVIEW, MRBStatus.IN_REVIEW, MRBStatus.PENDING_DISPOSITION)


def new_id() -> str:
    return str(uuid4())


def _not_allowed(what: str, record) -> InvalidTransitionError:
    return InvalidTransitionError(
        f"Cannot {what} while {record.number} is {record.status.value}",
        {"status": record.status.value},
    )


# ---------------------------------------------------------------------------
# MRB
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QuorumResult:
    quorum_met: bool
    votes_cast: int
    quorum_required: int
    approve_count: int
    reject_count: int
    abstain_count: int
    outcome: QuorumOutcome

    def as_dict(self) -> dict:
        return {
            "quorumMet": self.quorum_met,
            "votesCast": self.votes_cast,
            "quorumRequired": self.quorum_required,
            "approveCount": self.approve_count,
            "rejectCount": self.reject_count,
            "abstainCount": self.abstain_count,
            "outcome": self.outcome.value,
        }


# PUBLIC_INTERFACE
def evaluate_quorum(mrb: MRB) -> QuorumResult:
    """
    Evaluate the board's votes.

    Abstentions count toward the quorum but not toward the majority. A tie between
    approve and reject is broken by the chair's vote; without one the outcome is
    undecided.
    """
    votes = [m.vote for m in mrb.members if m.vote is not None]
    approve = sum(1 for v in votes if v == Vote.APPROVE)
    reject = sum(1 for v in votes if v == Vote.REJECT)
    abstain = len(votes) - approve - reject

    if approve > reject:
        outcome = QuorumOutcome.APPROVED
    elif reject > approve:
        outcome = QuorumOutcome.REJECTED
    else:
        chair = next((m for m in mrb.members if m.is_chair), None)
        chair_vote = chair.vote if chair is not None else None
        if chair_vote == Vote.APPROVE:
            outcome = QuorumOutcome.APPROVED
        elif chair_vote == Vote.REJECT:
            outcome = QuorumOutcome.REJECTED
        else:
            outcome = QuorumOutcome.UNDECIDED

    return QuorumResult(
        quorum_met=len(votes) >= mrb.quorum_required,
        votes_cast=len(votes),
        quorum_required=mrb.quorum_required,
        approve_count=approve,
        reject_count=reject,
        abstain_count=abstain,
        outcome=outcome,
    )


# PUBLIC_INTERFACE
def add_member(mrb: MRB, member_id: str, name: str, role: Optional[str] = None, is_chair: bool = False) -> MRB:
    if mrb.status not in MEMBERSHIP_STATUSES:
        raise _not_allowed("change board membership", mrb)
    if mrb.member(member_id) is not None:
        raise RecordValidationError(f"{member_id} is already a member of {mrb.number}")
    if is_chair and any(m.is_chair for m in mrb.members):
        raise RecordValidationError(f"{mrb.number} already has a chair")
    updated = mrb.model_copy(deep=True)
    updated.members.append(BoardMember(member_id=member_id, name=name, role=role, is_chair=is_chair))
    return updated


# PUBLIC_INTERFACE
def cast_vote(mrb: MRB, member_id: str, vote: Vote, now: datetime, comment: Optional[str] = None) -> MRB:
    """Record one member's vote. Each member votes once."""
    if mrb.status not in VOTING_STATUSES:
        raise _not_allowed("vote", mrb)
    if mrb.disposition is not None:
        raise _not_allowed("vote after the disposition is recorded", mrb)
    updated = mrb.model_copy(deep=True)
    member = updated.member(member_id)
    if member is None:
        raise NotAMemberError(
            f"{member_id} is not a member of {mrb.number}",
            {"memberId": member_id},
        )
    if member.vote is not None:
        raise DuplicateVoteError(
            f"{member_id} has already voted on {mrb.number}",
            {"memberId": member_id, "vote": member.vote.value},
        )
    member.vote = vote
    member.voted_at = now
    member.comment = comment
    return updated


# PUBLIC_INTERFACE
def set_mrb_disposition(
    mrb: MRB,
    decision: DispositionDecision,
    justification: Optional[str] = None,
    conditions: Optional[str] = None,
) -> MRB:
    """Write the board disposition. Only allowed once quorum is met with a decided outcome."""
    if mrb.status != MRBStatus.PENDING_DISPOSITION:
        raise _not_allowed("set the disposition", mrb)
    result = evaluate_quorum(mrb)
    if not result.quorum_met:
        raise GuardFailedError(
            GuardReason.QUORUM_NOT_MET.value,
            f"{result.votes_cast} of {result.quorum_required} required votes cast",
            {"votesCast": result.votes_cast, "quorumRequired": result.quorum_required},
        )
    if result.outcome == QuorumOutcome.UNDECIDED:
        raise GuardFailedError(
            GuardReason.OUTCOME_UNDECIDED.value,
            "Votes are tied and the chair has not broken the tie",
        )
    updated = mrb.model_copy(deep=True)
    updated.disposition = MRBDisposition(
        decision=decision, justification=justification, conditions=conditions
    )
    return updated


def add_action_item(
    mrb: MRB,
    description: str,
    assigned_to: Optional[str] = None,
    due_date: Optional[date] = None,
) -> MRB:
    updated = mrb.model_copy(deep=True)
    updated.action_items.append(
        ActionItem(id=new_id(), description=description, assigned_to=assigned_to, due_date=due_date)
    )
    return updated


def update_action_item(
    mrb: MRB,
    item_id: str,
    now: datetime,
    status: Optional[ActionItemStatus] = None,
    comments: Optional[str] = None,
) -> MRB:
    updated = mrb.model_copy(deep=True)
    item = next((a for a in updated.action_items if a.id == item_id), None)
    if item is None:
        raise RecordNotFoundError(f"Action item {item_id} not found on {mrb.number}")
    if status is not None:
        item.status = status
        item.completed_date = now if status == ActionItemStatus.COMPLETED else None
    if comments is not None:
        item.comments = comments
    return updated


# ---------------------------------------------------------------------------
# NCR
# ---------------------------------------------------------------------------

# PUBLIC_INTERFACE
def set_ncr_disposition(
    ncr: NCR,
    decision: DispositionDecision,
    justification: Optional[str] = None,
    conditions: Optional[str] = None,
) -> NCR:
    """Set or replace the NCR disposition. Locked once the first sign-off is recorded."""
    if ncr.status != NCRStatus.PENDING_DISPOSITION:
        raise _not_allowed("set the disposition", ncr)
    if ncr.disposition is not None and ncr.disposition.approved_by:
        raise RecordValidationError(
            f"Disposition of {ncr.number} already has sign-offs and cannot be changed"
        )
    updated = ncr.model_copy(deep=True)
    updated.disposition = NCRDisposition(
        decision=decision, justification=justification, conditions=conditions
    )
    return updated


# PUBLIC_INTERFACE
def approve_ncr_disposition(
    ncr: NCR,
    approver_id: str,
    now: datetime,
    required_approvers: int,
    name: Optional[str] = None,
    role: Optional[str] = None,
    comment: Optional[str] = None,
) -> NCR:
    """Append a sign-off. approvalDate is stamped when the required count is reached."""
    if ncr.status != NCRStatus.PENDING_DISPOSITION:
        raise _not_allowed("sign off the disposition", ncr)
    if ncr.disposition is None or ncr.disposition.decision is None:
        raise GuardFailedError(
            GuardReason.DISPOSITION_MISSING.value,
            f"{ncr.number} has no disposition decision to sign off",
        )
    if any(s.approver_id == approver_id for s in ncr.disposition.approved_by):
        raise DuplicateVoteError(
            f"{approver_id} has already signed off {ncr.number}",
            {"approverId": approver_id},
        )
    disposition = ncr.disposition.model_copy(deep=True)
    disposition.approved_by.append(Signoff(approver_id=approver_id, name=name, role=role, date=now, comment=comment))
    if disposition.approval_date is None and len(disposition.approved_by) >= required_approvers:
        disposition.approval_date = now
    updated = ncr.model_copy(deep=True)
    updated.disposition = disposition
    return updated


# ---------------------------------------------------------------------------
# CAPA 8D steps
# ---------------------------------------------------------------------------

_STEP_SEQUENCE = [
    EightDStepStatus.PENDING,
    EightDStepStatus.IN_PROGRESS,
    EightDStepStatus.COMPLETED,
    EightDStepStatus.VERIFIED,
]


# PUBLIC_INTERFACE
def plan_step(
    capa: CAPA,
    key: EightDStepKey,
    description: str,
    owner: str,
    due_date: Optional[date] = None,
    team_members: Optional[List[TeamMember]] = None,
) -> CAPA:
    """Create or re-plan a step. Only pending steps can be re-planned."""
    if team_members is not None and key != EightDStepKey.D1:
        raise RecordValidationError("Team members are recorded on step d1 only")
    existing = capa.step(key)
    if existing is not None and existing.status != EightDStepStatus.PENDING:
        raise InvalidTransitionError(
            f"Step {key.value} is {existing.status.value} and can no longer be re-planned",
            {"step": key.value, "status": existing.status.value},
        )
    updated = capa.model_copy(deep=True)
    if key == EightDStepKey.D1:
        members = team_members
        if members is None and isinstance(existing, TeamStep):
            members = existing.team_members
        step: EightDStep = TeamStep(
            description=description, owner=owner, due_date=due_date, team_members=members or []
        )
    else:
        step = EightDStep(description=description, owner=owner, due_date=due_date)
    setattr(updated, key.field_name, step)
    return updated


# PUBLIC_INTERFACE
def advance_step(
    capa: CAPA,
    key: EightDStepKey,
    target: EightDStepStatus,
    now: datetime,
    comments: Optional[str] = None,
) -> CAPA:
    """Move a step exactly one position forward: pending -> in_progress -> completed -> verified."""
    step = capa.step(key)
    if step is None:
        raise RecordNotFoundError(f"Step {key.value} has not been planned on {capa.number}")
    current_rank = _STEP_SEQUENCE.index(step.status)
    if _STEP_SEQUENCE.index(target) != current_rank + 1:
        raise InvalidTransitionError(
            f"Step {key.value} cannot move from {step.status.value} to {target.value}",
            {"step": key.value, "from": step.status.value, "to": target.value},
        )
    new_step = step.model_copy(deep=True)
    new_step.status = target
    if target == EightDStepStatus.COMPLETED:
        new_step.completed_date = now
    if comments is not None:
        new_step.comments = comments
    updated = capa.model_copy(deep=True)
    setattr(updated, key.field_name, new_step)
    return updated


# ---------------------------------------------------------------------------
# SCAR
# ---------------------------------------------------------------------------

# PUBLIC_INTERFACE
def record_supplier_response(
    scar: SCAR,
    responded_by: str,
    now: datetime,
    acknowledgment: bool = True,
    root_cause_analysis: Optional[str] = None,
    proposed_actions: Optional[str] = None,
) -> SCAR:
    if scar.status not in (SCARStatus.ISSUED, SCARStatus.SUPPLIER_RESPONSE):
        raise _not_allowed("record a supplier response", scar)
    updated = scar.model_copy(deep=True)
    updated.supplier_response = SupplierResponse(
        response_date=now,
        responded_by=responded_by,
        acknowledgment=acknowledgment,
        root_cause_analysis=root_cause_analysis,
        proposed_actions=proposed_actions,
    )
    return updated


# PUBLIC_INTERFACE
def set_review_status(
    scar: SCAR,
    review_status: ReviewStatus,
    reviewer_id: str,
    now: datetime,
    review_comments: Optional[str] = None,
) -> SCAR:
    if scar.status != SCARStatus.REVIEW:
        raise _not_allowed("record a review outcome", scar)
    updated = scar.model_copy(deep=True)
    updated.review_status = review_status
    updated.review_comments = review_comments
    updated.reviewed_by = reviewer_id
    updated.review_date = now
    return updated


def add_scar_item(
    scar: SCAR,
    kind: SCARItemKind,
    description: str,
    category: Optional[str] = None,
    analysis: Optional[str] = None,
    responsible: Optional[str] = None,
    due_date: Optional[date] = None,
) -> SCAR:
    updated = scar.model_copy(deep=True)
    item_id = new_id()
    if kind == SCARItemKind.CONTAINMENT:
        updated.containment_actions.append(
            ContainmentAction(id=item_id, description=description, responsible=responsible, due_date=due_date)
        )
    elif kind == SCARItemKind.ROOT_CAUSE:
        if not category:
            raise RecordValidationError("A root cause needs a category")
        updated.root_causes.append(
            RootCause(id=item_id, category=category, description=description, analysis=analysis)
        )
    else:
        target = updated.corrective_actions if kind == SCARItemKind.CORRECTIVE else updated.preventive_actions
        target.append(
            SupplierAction(id=item_id, description=description, responsible=responsible, due_date=due_date)
        )
    return updated


def verify_scar_item(
    scar: SCAR,
    kind: SCARItemKind,
    item_id: str,
    now: datetime,
    effectiveness_rating: Optional[int] = None,
) -> SCAR:
    """Mark a SCAR entry verified (actions, root causes) or completed (containment)."""
    updated = scar.model_copy(deep=True)
    collections = {
        SCARItemKind.CONTAINMENT: updated.containment_actions,
        SCARItemKind.ROOT_CAUSE: updated.root_causes,
        SCARItemKind.CORRECTIVE: updated.corrective_actions,
        SCARItemKind.PREVENTIVE: updated.preventive_actions,
    }
    item = next((x for x in collections[kind] if x.id == item_id), None)
    if item is None:
        raise RecordNotFoundError(f"{kind.value} entry {item_id} not found on {scar.number}")
    if isinstance(item, ContainmentAction):
        item.status = ActionItemStatus.COMPLETED
        item.completed_date = now
    elif isinstance(item, RootCause):
        item.verified = True
    else:
        if item.status != ActionItemStatus.COMPLETED:
            item.status = ActionItemStatus.COMPLETED
            item.completed_date = now
        item.verified = True
        item.effectiveness_rating = effectiveness_rating
    return updated
