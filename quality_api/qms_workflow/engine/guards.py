"""
Transition guards and effects.

A guard inspects the snapshot and the TransitionContext and raises
GuardFailedError when the precondition does not hold. An effect stamps
fields on the (already copied) snapshot after the status has been set.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from qms_workflow.core.errors import GuardFailedError
from qms_workflow.schemas.capa import CAPA
from qms_workflow.schemas.enums import (
    EightDStepKey,
    EightDStepStatus,
    GuardReason,
    MRBStatus,
    QuorumOutcome,
    ReviewStatus,
    Vote,
)
from qms_workflow.schemas.mrb import MRB, MRBDisposition
from qms_workflow.schemas.ncr import NCR
from qms_workflow.schemas.record import Signoff
from qms_workflow.schemas.requests import DispositionIn
from qms_workflow.schemas.scar import SCAR

from .approvals import evaluate_quorum


@dataclass(frozen=True)
class TransitionContext:
    actor_id: str
    now: datetime
    reason: Optional[str] = None
    comments: Optional[str] = None
    required_approvers: int = 1
    disposition: Optional[DispositionIn] = None


_STEP_ORDER = [
    EightDStepStatus.PENDING,
    EightDStepStatus.IN_PROGRESS,
    EightDStepStatus.COMPLETED,
    EightDStepStatus.VERIFIED,
]


def step_rank(status: EightDStepStatus) -> int:
    return _STEP_ORDER.index(status)


# NCR

def ncr_can_close(ncr: NCR, ctx: TransitionContext) -> None:
    if ncr.disposition is None or ncr.disposition.decision is None:
        raise GuardFailedError(
            GuardReason.DISPOSITION_MISSING.value,
            "An NCR cannot close without a disposition decision",
        )
    approvals = len(ncr.disposition.approved_by)
    if approvals < ctx.required_approvers:
        raise GuardFailedError(
            GuardReason.APPROVALS_MISSING.value,
            f"Disposition has {approvals} of {ctx.required_approvers} required sign-offs",
            {"approvals": approvals, "required": ctx.required_approvers},
        )


def stamp_closed(record, ctx: TransitionContext) -> None:
    record.closed_date = ctx.now
    record.closed_by = ctx.actor_id


# MRB

def mrb_start_review(mrb: MRB, ctx: TransitionContext) -> None:
    if mrb.review_start_date is None:
        mrb.review_start_date = ctx.now


def _mrb_decision_guard(mrb: MRB, ctx: TransitionContext, expected: QuorumOutcome) -> None:
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
            {"approve": result.approve_count, "reject": result.reject_count},
        )
    if result.outcome != expected:
        raise GuardFailedError(
            GuardReason.OUTCOME_MISMATCH.value,
            f"Board outcome is {result.outcome.value}, not {expected.value}",
            {"outcome": result.outcome.value},
        )
    if mrb.disposition is None and ctx.disposition is None:
        raise GuardFailedError(
            GuardReason.DISPOSITION_MISSING.value,
            "A disposition decision is required before the board decision is recorded",
        )


def mrb_can_approve(mrb: MRB, ctx: TransitionContext) -> None:
    _mrb_decision_guard(mrb, ctx, QuorumOutcome.APPROVED)


def mrb_can_reject(mrb: MRB, ctx: TransitionContext) -> None:
    _mrb_decision_guard(mrb, ctx, QuorumOutcome.REJECTED)


def mrb_record_decision(mrb: MRB, ctx: TransitionContext) -> None:
    """Fix the disposition and sign it with the members who voted with the outcome."""
    if ctx.disposition is not None:
        mrb.disposition = MRBDisposition(
            decision=ctx.disposition.decision,
            justification=ctx.disposition.justification,
            conditions=ctx.disposition.conditions,
        )
    if mrb.disposition is None:
        raise GuardFailedError(
            GuardReason.DISPOSITION_MISSING.value,
            "A disposition decision is required before the board decision is recorded",
        )
    winning_vote = Vote.APPROVE if mrb.status == MRBStatus.APPROVED else Vote.REJECT
    mrb.disposition.approved_by = [
        Signoff(
            approver_id=m.member_id,
            name=m.name,
            role=m.role,
            date=m.voted_at or ctx.now,
            comment=m.comment,
        )
        for m in mrb.members
        if m.vote == winning_vote
    ]
    mrb.disposition.approval_date = ctx.now


# CAPA

def _require_step(capa: CAPA, key: EightDStepKey, minimum: EightDStepStatus) -> None:
    step = capa.step(key)
    current = step.status if step is not None else None
    if current is None or step_rank(current) < step_rank(minimum):
        raise GuardFailedError(
            GuardReason.STEP_INCOMPLETE.value,
            f"Step {key.value} must be at least {minimum.value}",
            {
                "step": key.value,
                "required": minimum.value,
                "current": current.value if current is not None else None,
            },
        )


def capa_can_implement(capa: CAPA, ctx: TransitionContext) -> None:
    _require_step(capa, EightDStepKey.D4, EightDStepStatus.COMPLETED)


def capa_can_verify_implementation(capa: CAPA, ctx: TransitionContext) -> None:
    _require_step(capa, EightDStepKey.D6, EightDStepStatus.COMPLETED)


def capa_can_mark_verified(capa: CAPA, ctx: TransitionContext) -> None:
    _require_step(capa, EightDStepKey.D6, EightDStepStatus.VERIFIED)


def capa_can_close(capa: CAPA, ctx: TransitionContext) -> None:
    for key in EightDStepKey:
        _require_step(capa, key, EightDStepStatus.COMPLETED)


def capa_submitted(capa: CAPA, ctx: TransitionContext) -> None:
    if capa.submitted_date is None:
        capa.submitted_date = ctx.now


def capa_implementation_started(capa: CAPA, ctx: TransitionContext) -> None:
    capa.implementation_start_date = ctx.now
    capa.implementation_end_date = None


def capa_implementation_ended(capa: CAPA, ctx: TransitionContext) -> None:
    capa.implementation_end_date = ctx.now


def capa_verified(capa: CAPA, ctx: TransitionContext) -> None:
    capa.verification_date = ctx.now
    capa.verified_by = ctx.actor_id


def capa_cancelled(capa: CAPA, ctx: TransitionContext) -> None:
    capa.cancelled_reason = ctx.reason


# SCAR

def scar_issued(scar: SCAR, ctx: TransitionContext) -> None:
    if scar.issue_date is None:
        scar.issue_date = ctx.now


def scar_has_response(scar: SCAR, ctx: TransitionContext) -> None:
    if scar.supplier_response is None:
        raise GuardFailedError(
            GuardReason.SUPPLIER_RESPONSE_MISSING.value,
            "Record the supplier response before moving to supplier_response",
        )


def scar_can_close(scar: SCAR, ctx: TransitionContext) -> None:
    if scar.review_status != ReviewStatus.APPROVED:
        raise GuardFailedError(
            GuardReason.REVIEW_NOT_APPROVED.value,
            "A SCAR closes only after its review is approved",
            {"reviewStatus": scar.review_status.value if scar.review_status else None},
        )


def scar_closed(scar: SCAR, ctx: TransitionContext) -> None:
    scar.close_date = ctx.now
    scar.closed_by = ctx.actor_id
