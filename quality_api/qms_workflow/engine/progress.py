"""
Display-only progress derivation.

progress() never raises: unknown item types or statuses map to step 0.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from qms_workflow.schemas.progress import Milestone, MilestoneView, Progress
from qms_workflow.schemas.registry import QualityRecord, item_type_of

STEP_TABLES: Dict[str, Dict[str, int]] = {
    "ncr": {
        "draft": 0,
        "open": 0,
        "under_review": 1,
        "pending_disposition": 2,
        "closed": 3,
    },
    "mrb": {
        "pending_review": 0,
        "in_review": 1,
        "pending_disposition": 2,
        "approved": 3,
        "rejected": 3,
        "closed": 4,
    },
    "capa": {
        "draft": 0,
        "open": 1,
        "in_progress": 2,
        "pending_review": 3,
        "under_investigation": 4,
        "implementing": 5,
        "pending_verification": 6,
        "completed": 7,
        "verified": 8,
        "closed": 9,
    },
    "scar": {
        "draft": 0,
        "issued": 1,
        "supplier_response": 2,
        "review": 3,
        "closed": 4,
    },
}


def _value(x: Any) -> Any:
    return getattr(x, "value", x)


# PUBLIC_INTERFACE
def progress(item_type: Any, status: Any) -> Progress:
    """Map a status to {stepIndex, totalSteps, percent}; percent rounds half up."""
    table = STEP_TABLES.get(_value(item_type), {})
    total = max(table.values()) if table else 0
    index = table.get(_value(status), 0)
    percent = int(math.floor(index / total * 100 + 0.5)) if total else 0
    return Progress(step_index=index, total_steps=total, percent=percent)


@dataclass(frozen=True)
class MilestoneDef:
    id: str
    title: str
    description: str
    statuses: FrozenSet[str]
    date: Optional[Callable[[Any], Any]] = None


def _m(id: str, title: str, description: str, statuses: List[str], date=None) -> MilestoneDef:
    return MilestoneDef(id, title, description, frozenset(statuses), date)


MILESTONES: Dict[str, List[MilestoneDef]] = {
    "ncr": [
        _m("created", "Created", "NCR has been created and documented", ["draft", "open"], lambda r: r.created_at),
        _m("in_review", "In Review", "Technical review of the non-conformance", ["under_review"]),
        _m("pending_disposition", "Pending Disposition", "Awaiting final disposition decision",
           ["pending_disposition"]),
        _m("disposition_complete", "Disposition Complete", "NCR has been dispositioned and closed", ["closed"],
           lambda r: r.closed_date),
    ],
    "mrb": [
        _m("pending_review", "Pending Review", "MRB has been created and is awaiting review", ["pending_review"],
           lambda r: r.created_at),
        _m("in_review", "In Review", "MRB is being reviewed by the board", ["in_review"],
           lambda r: r.review_start_date),
        _m("pending_disposition", "Pending Disposition", "MRB is pending final disposition decision",
           ["pending_disposition"]),
        _m("decision", "Board Decision", "The board approved or rejected the disposition", ["approved", "rejected"],
           lambda r: r.disposition.approval_date if r.disposition else None),
        _m("closed", "Closed", "MRB has been closed", ["closed"], lambda r: r.closed_date),
    ],
    "capa": [
        _m("draft", "Draft", "Initial creation of the CAPA", ["draft"], lambda r: r.created_at),
        _m("open", "Open", "CAPA has been officially opened", ["open"], lambda r: r.submitted_date),
        _m("in_progress", "In Progress", "Investigation and corrective actions under way",
           ["in_progress", "pending_review", "under_investigation", "implementing"],
           lambda r: r.implementation_start_date),
        _m("pending_verification", "Pending Verification", "Awaiting verification of effectiveness",
           ["pending_verification", "completed"], lambda r: r.implementation_end_date),
        _m("verified", "Verified", "Effectiveness of actions has been verified", ["verified"],
           lambda r: r.verification_date),
        _m("closed", "Closed", "CAPA has been verified and closed", ["closed"], lambda r: r.closed_date),
    ],
    "scar": [
        _m("draft", "Draft", "Initial creation of the SCAR", ["draft"], lambda r: r.created_at),
        _m("issued", "Issued", "SCAR has been issued to the supplier", ["issued"], lambda r: r.issue_date),
        _m("supplier_response", "Supplier Response", "Supplier has responded to the SCAR", ["supplier_response"],
           lambda r: r.supplier_response.response_date if r.supplier_response else None),
        _m("review", "Review", "Response is being reviewed for adequacy", ["review"], lambda r: r.review_date),
        _m("closed", "Closed", "SCAR has been closed", ["closed"], lambda r: r.close_date),
    ],
}


# PUBLIC_INTERFACE
def milestones(record: QualityRecord) -> MilestoneView:
    """
    Milestone list for a record: milestones before the current one are complete,
    the one covering the current status is current, later ones are pending.
    A status outside the milestone chain (a cancelled CAPA) leaves every milestone
    pending and no current milestone.
    """
    kind = item_type_of(record).value
    status = _value(record.status)
    defs = MILESTONES[kind]
    current_index = next((i for i, d in enumerate(defs) if status in d.statuses), None)

    items: List[Milestone] = []
    for i, d in enumerate(defs):
        if current_index is None or i > current_index:
            state = "pending"
        elif i == current_index:
            state = "current"
        else:
            state = "complete"
        when = d.date(record) if d.date is not None else None
        if when is None and state == "current" and d.date is None:
            when = record.updated_at
        title = d.title
        if d.id == "decision" and status in ("approved", "rejected"):
            title = status.title()
        items.append(Milestone(id=d.id, title=title, description=d.description, status=state, date=when))

    current_id = defs[current_index].id if current_index is not None else ""
    return MilestoneView(
        milestones=items,
        current_milestone_id=current_id,
        progress=progress(kind, status),
    )
