"""
Unit tests for the per-entity transition tables and their guards.
"""

import pytest

from qms_workflow.core.errors import (
    GuardFailedError,
    InvalidTransitionError,
    RecordValidationError,
    TerminalStateError,
)
from qms_workflow.engine import approvals, guards
from qms_workflow.engine.guards import TransitionContext
from qms_workflow.engine.state_machine import MACHINES, allowed_transitions, apply_transition
from qms_workflow.schemas.enums import (
    CAPAStatus,
    DispositionDecision,
    EightDStepKey,
    EightDStepStatus,
    ItemType,
    MRBStatus,
    NCRStatus,
    ReviewStatus,
    SCARStatus,
    Vote,
)

from .factories import ACTOR, NOW, make_capa, make_mrb, make_ncr, make_scar


def ctx(reason=None, **kwargs) -> TransitionContext:
    return TransitionContext(actor_id=ACTOR, now=NOW, reason=reason, **kwargs)


class TestTransitionTables:
    """Structural properties of every table."""

    @pytest.mark.parametrize("item_type", list(ItemType))
    def test_every_status_is_reachable(self, item_type):
        machine = MACHINES[item_type]
        assert machine.reachable() == set(machine.statuses)

    @pytest.mark.parametrize("item_type", list(ItemType))
    def test_terminal_statuses_have_no_exits(self, item_type):
        machine = MACHINES[item_type]
        for status in machine.terminal:
            assert machine.outgoing(status) == []

    def test_ncr_is_strictly_forward(self):
        order = list(NCRStatus)
        for t in MACHINES[ItemType.NCR].transitions():
            assert order.index(t.target) == order.index(t.source) + 1

    def test_every_return_edge_requires_a_reason(self):
        for item_type, machine in MACHINES.items():
            order = list(machine.statuses)
            for t in machine.transitions():
                if order.index(t.target) < order.index(t.source):
                    assert t.requires_reason, f"{item_type.value}: {t.source.value} -> {t.target.value}"

    def test_allowed_transitions_from_draft(self):
        edges = allowed_transitions(ItemType.NCR, "draft")
        assert [t.target for t in edges] == [NCRStatus.OPEN]

    def test_allowed_transitions_rejects_unknown_status(self):
        with pytest.raises(RecordValidationError):
            allowed_transitions(ItemType.SCAR, "pending_disposition")


class TestNCRTransitions:

    def test_open_returns_new_snapshot(self):
        ncr = make_ncr()
        opened = apply_transition(ncr, "open", ctx())
        assert opened.status == NCRStatus.OPEN
        assert ncr.status == NCRStatus.DRAFT

    def test_skipping_a_status_is_invalid(self):
        with pytest.raises(InvalidTransitionError) as exc:
            apply_transition(make_ncr(), "pending_disposition", ctx())
        assert exc.value.details["allowed"] == ["open"]

    def test_unknown_target_is_a_validation_error(self):
        with pytest.raises(RecordValidationError):
            apply_transition(make_ncr(), "approved", ctx())

    def test_close_requires_reason(self):
        ncr = make_ncr(status=NCRStatus.PENDING_DISPOSITION)
        with pytest.raises(RecordValidationError):
            apply_transition(ncr, "closed", ctx(reason="   "))

    def test_close_requires_disposition(self):
        ncr = make_ncr(status=NCRStatus.PENDING_DISPOSITION)
        with pytest.raises(GuardFailedError) as exc:
            apply_transition(ncr, "closed", ctx(reason="done"))
        assert exc.value.reason == "DispositionMissing"

    def test_close_requires_signoffs(self):
        ncr = make_ncr(status=NCRStatus.PENDING_DISPOSITION)
        ncr = approvals.set_ncr_disposition(ncr, DispositionDecision.REWORK, "Rework bore")
        with pytest.raises(GuardFailedError) as exc:
            apply_transition(ncr, "closed", ctx(reason="done", required_approvers=1))
        assert exc.value.reason == "ApprovalsMissing"
        assert exc.value.details["required"] == 1

    def test_close_stamps_closed_fields(self):
        ncr = make_ncr(status=NCRStatus.PENDING_DISPOSITION)
        ncr = approvals.set_ncr_disposition(ncr, DispositionDecision.SCRAP)
        ncr = approvals.approve_ncr_disposition(ncr, "qa-manager", NOW, required_approvers=1)
        closed = apply_transition(ncr, "closed", ctx(reason="Scrapped"))
        assert closed.status == NCRStatus.CLOSED
        assert closed.closed_by == ACTOR
        assert closed.closed_date == NOW

    def test_closed_is_terminal(self):
        ncr = make_ncr(status=NCRStatus.CLOSED)
        with pytest.raises(TerminalStateError):
            apply_transition(ncr, "open", ctx())


class TestMRBTransitions:

    def _voted(self, *votes):
        mrb = make_mrb(status=MRBStatus.IN_REVIEW)
        for i, vote in enumerate(votes, start=1):
            mrb = approvals.cast_vote(mrb, f"m{i}", Vote(vote), NOW)
        return mrb.model_copy(update={"status": MRBStatus.PENDING_DISPOSITION})

    def test_start_review_stamps_date(self):
        started = apply_transition(make_mrb(), "in_review", ctx())
        assert started.review_start_date == NOW

    def test_approve_needs_quorum(self):
        mrb = self._voted("approve", "approve")
        with pytest.raises(GuardFailedError) as exc:
            apply_transition(mrb, "approved", ctx(reason="ok"))
        assert exc.value.reason == "QuorumNotMet"

    def test_approve_against_rejecting_board(self):
        mrb = self._voted("reject", "reject", "approve")
        with pytest.raises(GuardFailedError) as exc:
            apply_transition(mrb, "approved", ctx(reason="ok"))
        assert exc.value.reason == "OutcomeMismatch"

    def test_approve_needs_disposition(self):
        mrb = self._voted("approve", "approve", "reject")
        with pytest.raises(GuardFailedError) as exc:
            apply_transition(mrb, "approved", ctx(reason="ok"))
        assert exc.value.reason == "DispositionMissing"

    def test_approve_records_majority_signoffs(self):
        from qms_workflow.schemas.requests import DispositionIn

        mrb = self._voted("approve", "approve", "reject")
        approved = apply_transition(
            mrb, "approved", ctx(reason="Board approved", disposition=DispositionIn(decision="rework"))
        )
        assert approved.status == MRBStatus.APPROVED
        assert approved.disposition.decision == DispositionDecision.REWORK
        assert [s.approver_id for s in approved.disposition.approved_by] == ["m1", "m2"]
        assert approved.disposition.approval_date == NOW

    def test_recording_a_decision_without_disposition_is_guarded(self):
        with pytest.raises(GuardFailedError) as exc:
            guards.mrb_record_decision(make_mrb(), ctx(reason="ok"))
        assert exc.value.reason == "DispositionMissing"

    def test_return_to_review_requires_reason(self):
        mrb = make_mrb(status=MRBStatus.PENDING_DISPOSITION)
        with pytest.raises(RecordValidationError):
            apply_transition(mrb, "in_review", ctx())
        assert apply_transition(mrb, "in_review", ctx(reason="Need data")).status == MRBStatus.IN_REVIEW


class TestCAPATransitions:

    def test_open_stamps_submitted_date(self):
        opened = apply_transition(make_capa(), "open", ctx())
        assert opened.submitted_date == NOW

    def test_implementing_needs_root_cause_completed(self):
        capa = make_capa(status=CAPAStatus.UNDER_INVESTIGATION)
        with pytest.raises(GuardFailedError) as exc:
            apply_transition(capa, "implementing", ctx())
        assert exc.value.reason == "StepIncomplete"
        assert exc.value.details["step"] == "d4"

        capa = approvals.plan_step(capa, EightDStepKey.D4, "5-why analysis", "qe-bob")
        capa = approvals.advance_step(capa, EightDStepKey.D4, EightDStepStatus.IN_PROGRESS, NOW)
        capa = approvals.advance_step(capa, EightDStepKey.D4, EightDStepStatus.COMPLETED, NOW)
        implementing = apply_transition(capa, "implementing", ctx())
        assert implementing.implementation_start_date == NOW

    def test_close_needs_all_steps_completed(self):
        capa = make_capa(status=CAPAStatus.VERIFIED)
        for key in list(EightDStepKey)[:-1]:
            capa = approvals.plan_step(capa, key, f"Step {key.value}", "owner")
            capa = approvals.advance_step(capa, key, EightDStepStatus.IN_PROGRESS, NOW)
            capa = approvals.advance_step(capa, key, EightDStepStatus.COMPLETED, NOW)
        with pytest.raises(GuardFailedError) as exc:
            apply_transition(capa, "closed", ctx(reason="Effective"))
        assert exc.value.details["step"] == "d8"

    @pytest.mark.parametrize("status", [CAPAStatus.DRAFT, CAPAStatus.IMPLEMENTING, CAPAStatus.VERIFIED])
    def test_cancel_from_any_open_status(self, status):
        cancelled = apply_transition(make_capa(status=status), "cancelled", ctx(reason="Duplicate"))
        assert cancelled.status == CAPAStatus.CANCELLED
        assert cancelled.cancelled_reason == "Duplicate"

    def test_cancelled_is_terminal(self):
        with pytest.raises(TerminalStateError):
            apply_transition(make_capa(status=CAPAStatus.CANCELLED), "open", ctx())


class TestSCARTransitions:

    def test_issue_stamps_issue_date(self):
        assert apply_transition(make_scar(), "issued", ctx()).issue_date == NOW

    def test_supplier_response_needs_response(self):
        scar = make_scar(status=SCARStatus.ISSUED)
        with pytest.raises(GuardFailedError) as exc:
            apply_transition(scar, "supplier_response", ctx())
        assert exc.value.reason == "SupplierResponseMissing"

    def test_close_needs_approved_review(self):
        scar = make_scar(status=SCARStatus.REVIEW)
        scar = approvals.set_review_status(scar, ReviewStatus.PENDING_INFO, "sqe", NOW)
        with pytest.raises(GuardFailedError) as exc:
            apply_transition(scar, "closed", ctx(reason="done"))
        assert exc.value.reason == "ReviewNotApproved"

        scar = approvals.set_review_status(scar, ReviewStatus.APPROVED, "sqe", NOW)
        closed = apply_transition(scar, "closed", ctx(reason="Actions effective"))
        assert closed.close_date == NOW
        assert closed.closed_by == ACTOR
