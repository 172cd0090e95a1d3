"""
Persisted layout of fully populated records: every nested collection survives
dump_record followed by load_record unchanged.
"""

from datetime import date, datetime, timezone

import pytest

from qms_workflow.schemas.capa import CAPA, EightDStep, TeamMember, TeamStep
from qms_workflow.schemas.common import Attachment, Note, Task
from qms_workflow.schemas.enums import (
    ActionItemStatus,
    CAPAStatus,
    EightDStepStatus,
    MRBStatus,
    NCRStatus,
    ReviewStatus,
    SCARStatus,
    TaskStatus,
    Vote,
)
from qms_workflow.schemas.mrb import MRB, ActionItem, BoardMember, CostImpact, MRBDisposition
from qms_workflow.schemas.ncr import NCR, NCRDisposition
from qms_workflow.schemas.record import Signoff
from qms_workflow.schemas.registry import dump_record, load_record
from qms_workflow.schemas.scar import SCAR, ContainmentAction, RootCause, SupplierAction, SupplierResponse

T0 = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
T1 = datetime(2026, 3, 9, 16, 30, tzinfo=timezone.utc)


def _envelope(prefix):
    return dict(
        id=f"{prefix.lower()}-0001",
        number=f"{prefix}-2026-0001",
        version=7,
        created_at=T0,
        created_by="qe-alice",
        updated_at=T1,
        attachments=[
            Attachment(
                id="att-1",
                file_name="evidence.pdf",
                size=2048,
                mime_type="application/pdf",
                storage_url="blob://evidence.pdf",
                uploaded_by="qe-alice",
                uploaded_at=T0,
            )
        ],
        notes=[Note(id="note-1", author="qe-bob", text="Supplier informed", created_at=T0)],
        tasks=[
            Task(
                id="task-1",
                title="Quarantine lot",
                assignee="stores",
                due_date=date(2026, 3, 5),
                status=TaskStatus.COMPLETED,
                completed_date=T1,
            )
        ],
    )


def _signoff(approver_id):
    return Signoff(approver_id=approver_id, name="Approver", role="QA Manager", date=T1, comment="OK")


def full_ncr():
    return NCR(
        **_envelope("NCR"),
        title="Porosity on cast bracket",
        description="Surface porosity on 12 brackets",
        type="material",
        severity="critical",
        area="Foundry",
        defect_code="POR-01",
        lot_number="L-77",
        serial_number="SN-4",
        part_number="BRK-100",
        quantity_affected=12,
        reported_by="inspector",
        assigned_to="qe-alice",
        investigated_by="qe-bob",
        root_cause="Mold temperature",
        root_cause_category="process",
        containment_action="Lot quarantined",
        status=NCRStatus.CLOSED,
        disposition=NCRDisposition(
            decision="rework",
            justification="Re-machine",
            conditions="100% inspection",
            approved_by=[_signoff("qa-manager"), _signoff("plant-manager")],
            approval_date=T1,
        ),
        mrb_number="MRB-2026-0001",
        capa_number="CAPA-2026-0001",
        scar_number="SCAR-2026-0001",
        closed_date=T1,
        closed_by="qa-manager",
    )


def full_mrb():
    return MRB(
        **_envelope("MRB"),
        title="Disposition of lot L-77",
        description="Board review",
        type="component",
        area="Foundry",
        severity="major",
        part_number="BRK-100",
        lot_number="L-77",
        quantity=12.5,
        unit="kg",
        location="Quarantine cage 2",
        cost_impact=CostImpact(material_cost=120.5, labor_cost=40.0, rework_cost=15.25, total_cost=175.75, currency="EUR"),
        schedule_impact_days=3,
        status=MRBStatus.CLOSED,
        members=[
            BoardMember(member_id="m1", name="Quality Lead", role="Chair", is_chair=True, vote=Vote.APPROVE, voted_at=T0),
            BoardMember(member_id="m2", name="Engineer", vote=Vote.REJECT, voted_at=T0, comment="Prefer scrap"),
            BoardMember(member_id="m3", name="Buyer", vote=Vote.ABSTAIN, voted_at=T0),
        ],
        quorum_required=3,
        disposition=MRBDisposition(
            decision="rework",
            justification="Board majority",
            conditions="Re-inspect",
            approved_by=[_signoff("m1")],
            approval_date=T1,
        ),
        action_items=[
            ActionItem(
                id="ai-1",
                description="Sort WIP",
                assigned_to="stores",
                due_date=date(2026, 3, 4),
                status=ActionItemStatus.COMPLETED,
                completed_date=T1,
                comments="Sorted",
            )
        ],
        source_ncr_number="NCR-2026-0001",
        linked_ncr_numbers=["NCR-2026-0001", "NCR-2026-0002"],
        capa_number="CAPA-2026-0001",
        review_start_date=T0,
        closed_date=T1,
        closed_by="m1",
    )


def _step(description, status=EightDStepStatus.VERIFIED):
    return dict(
        description=description,
        owner="qe-bob",
        due_date=date(2026, 3, 20),
        completed_date=T1,
        status=status,
        comments="Done",
    )


def full_capa():
    return CAPA(
        **_envelope("CAPA"),
        title="Stop casting porosity",
        description="8D on porosity",
        type="corrective",
        priority="high",
        area="Foundry",
        requested_by="qa-manager",
        assigned_to="qe-bob",
        due_date=date(2026, 4, 30),
        root_cause="Mold preheat skipped",
        root_cause_analysis_method="5-why",
        effectiveness_rating=4,
        status=CAPAStatus.CLOSED,
        source_ncr_id="ncr-0001",
        source_ncr_number="NCR-2026-0001",
        mrb_number="MRB-2026-0001",
        d1_team=TeamStep(
            **_step("Form team"),
            team_members=[
                TeamMember(name="Alice", role="Lead", department="Quality"),
                TeamMember(name="Bob", role="Engineer", department="Foundry"),
            ],
        ),
        d2_problem=EightDStep(**_step("Describe problem")),
        d3_containment=EightDStep(**_step("Contain")),
        d4_root_cause=EightDStep(**_step("Fishbone")),
        d5_corrective_actions=EightDStep(**_step("Preheat interlock")),
        d6_implementation=EightDStep(**_step("Install interlock")),
        d7_prevention=EightDStep(**_step("Update PFMEA")),
        d8_recognition=EightDStep(**_step("Thank team", EightDStepStatus.IN_PROGRESS)),
        submitted_date=T0,
        implementation_start_date=T0,
        implementation_end_date=T1,
        verification_date=T1,
        verified_by="qa-manager",
        closed_date=T1,
        closed_by="qa-manager",
    )


def full_scar():
    action = dict(
        responsible="foundry-qa",
        due_date=date(2026, 3, 31),
        status=ActionItemStatus.COMPLETED,
        completed_date=T1,
    )
    return SCAR(
        **_envelope("SCAR"),
        title="Porous castings",
        description="Supplier castings porous",
        priority="critical",
        supplier_id="SUP-9",
        supplier_name="Acme Foundry",
        supplier_contact="Jo",
        supplier_email="jo@acme.example",
        purchase_order_number="PO-55",
        part_number="BRK-100",
        lot_number="L-77",
        defect_description="Porosity",
        defect_quantity=12,
        due_date=date(2026, 4, 15),
        status=SCARStatus.CLOSED,
        source_ncr_id="ncr-0001",
        source_ncr_number="NCR-2026-0001",
        containment_actions=[ContainmentAction(id="c-1", description="Sort stock", **action)],
        root_causes=[RootCause(id="r-1", category="process", description="No preheat", analysis="5-why", verified=True)],
        corrective_actions=[
            SupplierAction(id="ca-1", description="Preheat molds", verified=True, effectiveness_rating=5, **action)
        ],
        preventive_actions=[SupplierAction(id="pa-1", description="Add interlock", **action)],
        supplier_response=SupplierResponse(
            response_date=T0,
            responded_by="foundry-qa",
            acknowledgment=True,
            root_cause_analysis="Preheat skipped",
            proposed_actions="Interlock",
        ),
        review_status=ReviewStatus.APPROVED,
        review_comments="Effective",
        reviewed_by="sqe",
        review_date=T1,
        issue_date=T0,
        close_date=T1,
        closed_by="sqe",
    )


class TestPersistedLayout:

    @pytest.mark.parametrize("build", [full_ncr, full_mrb, full_capa, full_scar])
    def test_load_reverses_dump(self, build):
        record = build()
        document = dump_record(record)
        assert load_record(document) == record
        assert dump_record(load_record(document)) == document

    def test_nested_collections_use_camel_case(self):
        capa = dump_record(full_capa())
        assert [m["name"] for m in capa["d1Team"]["teamMembers"]] == ["Alice", "Bob"]
        assert capa["sourceNCRNumber"] == "NCR-2026-0001"

        mrb = dump_record(full_mrb())
        assert [m["vote"] for m in mrb["members"]] == ["approve", "reject", "abstain"]
        assert mrb["costImpact"]["totalCost"] == 175.75
        assert mrb["actionItems"][0]["completedDate"].startswith("2026-03-09")

        scar = dump_record(full_scar())
        assert scar["correctiveActions"][0]["effectivenessRating"] == 5
        assert scar["sourceNCRId"] == "ncr-0001"
        assert scar["attachments"][0]["storageUrl"] == "blob://evidence.pdf"
