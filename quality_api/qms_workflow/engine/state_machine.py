"""
Per-entity status state machines.

Each StateMachine holds the single authoritative transition table for one item
type. Edges may require a reason (closing, cancelling and returning to an
earlier status) and may carry a guard and an effect from engine.guards.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple, Type

from qms_workflow.core.errors import (
    InvalidTransitionError,
    RecordValidationError,
    TerminalStateError,
)
from qms_workflow.schemas.enums import (
    CAPAStatus,
    ItemType,
    MRBStatus,
    NCRStatus,
    SCARStatus,
)
from qms_workflow.schemas.registry import QualityRecord, item_type_of

from . import guards
from .guards import TransitionContext

logger = logging.getLogger(__name__)

Hook = Callable[[QualityRecord, TransitionContext], None]


@dataclass(frozen=True)
class Transition:
    source: Enum
    target: Enum
    label: str
    requires_reason: bool = False
    guard: Optional[Hook] = None
    effect: Optional[Hook] = None


class StateMachine:
    """Transition table for one item type."""

    def __init__(
        self,
        item_type: ItemType,
        statuses: Type[Enum],
        initial: Enum,
        terminal: Iterable[Enum],
        transitions: List[Transition],
    ) -> None:
        self.item_type = item_type
        self.statuses = statuses
        self.initial = initial
        self.terminal: FrozenSet[Enum] = frozenset(terminal)
        self._edges: Dict[Tuple[Enum, Enum], Transition] = {}
        for t in transitions:
            if t.source in self.terminal:
                raise ValueError(f"{item_type.value}: terminal status {t.source.value} has an outgoing edge")
            self._edges[(t.source, t.target)] = t

    def parse_status(self, value) -> Enum:
        try:
            return self.statuses(value)
        except ValueError:
            raise RecordValidationError(
                f"{value!r} is not a {self.item_type.value} status",
                {"allowed": [s.value for s in self.statuses]},
            )

    def is_terminal(self, status: Enum) -> bool:
        return status in self.terminal

    def find(self, source: Enum, target: Enum) -> Optional[Transition]:
        return self._edges.get((source, target))

    def outgoing(self, source: Enum) -> List[Transition]:
        return [t for (s, _), t in self._edges.items() if s == source]

    def transitions(self) -> List[Transition]:
        return list(self._edges.values())

    def reachable(self) -> Set[Enum]:
        """Statuses reachable from the initial status through the table."""
        seen = {self.initial}
        queue = deque([self.initial])
        while queue:
            current = queue.popleft()
            for t in self.outgoing(current):
                if t.target not in seen:
                    seen.add(t.target)
                    queue.append(t.target)
        return seen


NCR_MACHINE = StateMachine(
    ItemType.NCR,
    NCRStatus,
    initial=NCRStatus.DRAFT,
    terminal=[NCRStatus.CLOSED],
    transitions=[
        Transition(NCRStatus.DRAFT, NCRStatus.OPEN, "Open"),
        Transition(NCRStatus.OPEN, NCRStatus.UNDER_REVIEW, "Start review"),
        Transition(NCRStatus.UNDER_REVIEW, NCRStatus.PENDING_DISPOSITION, "Request disposition"),
        Transition(
            NCRStatus.PENDING_DISPOSITION,
            NCRStatus.CLOSED,
            "Close",
            requires_reason=True,
            guard=guards.ncr_can_close,
            effect=guards.stamp_closed,
        ),
    ],
)

MRB_MACHINE = StateMachine(
    ItemType.MRB,
    MRBStatus,
    initial=MRBStatus.PENDING_REVIEW,
    terminal=[MRBStatus.CLOSED],
    transitions=[
        Transition(MRBStatus.PENDING_REVIEW, MRBStatus.IN_REVIEW, "Start review", effect=guards.mrb_start_review),
        Transition(MRBStatus.IN_REVIEW, MRBStatus.PENDING_DISPOSITION, "Request disposition"),
        Transition(
            MRBStatus.PENDING_DISPOSITION,
            MRBStatus.APPROVED,
            "Approve",
            requires_reason=True,
            guard=guards.mrb_can_approve,
            effect=guards.mrb_record_decision,
        ),
        Transition(
            MRBStatus.PENDING_DISPOSITION,
            MRBStatus.REJECTED,
            "Reject",
            requires_reason=True,
            guard=guards.mrb_can_reject,
            effect=guards.mrb_record_decision,
        ),
        Transition(MRBStatus.APPROVED, MRBStatus.CLOSED, "Close", requires_reason=True, effect=guards.stamp_closed),
        Transition(MRBStatus.REJECTED, MRBStatus.CLOSED, "Close", requires_reason=True, effect=guards.stamp_closed),
        Transition(MRBStatus.IN_REVIEW, MRBStatus.PENDING_REVIEW, "Return to pending review", requires_reason=True),
        Transition(MRBStatus.PENDING_DISPOSITION, MRBStatus.IN_REVIEW, "Return to review", requires_reason=True),
    ],
)

_CAPA_CHAIN = [
    CAPAStatus.DRAFT,
    CAPAStatus.OPEN,
    CAPAStatus.IN_PROGRESS,
    CAPAStatus.PENDING_REVIEW,
    CAPAStatus.UNDER_INVESTIGATION,
    CAPAStatus.IMPLEMENTING,
    CAPAStatus.PENDING_VERIFICATION,
    CAPAStatus.COMPLETED,
    CAPAStatus.VERIFIED,
    CAPAStatus.CLOSED,
]

_CAPA_FORWARD = {
    CAPAStatus.OPEN: ("Open", None, guards.capa_submitted),
    CAPAStatus.IN_PROGRESS: ("Start work", None, None),
    CAPAStatus.PENDING_REVIEW: ("Submit for review", None, None),
    CAPAStatus.UNDER_INVESTIGATION: ("Start investigation", None, None),
    CAPAStatus.IMPLEMENTING: ("Start implementation", guards.capa_can_implement, guards.capa_implementation_started),
    CAPAStatus.PENDING_VERIFICATION: (
        "Request verification",
        guards.capa_can_verify_implementation,
        guards.capa_implementation_ended,
    ),
    CAPAStatus.COMPLETED: ("Complete", None, None),
    CAPAStatus.VERIFIED: ("Verify effectiveness", guards.capa_can_mark_verified, guards.capa_verified),
    CAPAStatus.CLOSED: ("Close", guards.capa_can_close, guards.stamp_closed),
}


def _capa_transitions() -> List[Transition]:
    edges: List[Transition] = []
    for source, target in zip(_CAPA_CHAIN, _CAPA_CHAIN[1:]):
        label, guard, effect = _CAPA_FORWARD[target]
        edges.append(
            Transition(
                source,
                target,
                label,
                requires_reason=target == CAPAStatus.CLOSED,
                guard=guard,
                effect=effect,
            )
        )
    for source in _CAPA_CHAIN[:-1]:
        edges.append(
            Transition(source, CAPAStatus.CANCELLED, "Cancel", requires_reason=True, effect=guards.capa_cancelled)
        )
    edges.extend(
        [
            Transition(CAPAStatus.OPEN, CAPAStatus.DRAFT, "Return to draft", requires_reason=True),
            Transition(CAPAStatus.IN_PROGRESS, CAPAStatus.OPEN, "Return to open", requires_reason=True),
            Transition(
                CAPAStatus.PENDING_VERIFICATION,
                CAPAStatus.IMPLEMENTING,
                "Verification failed",
                requires_reason=True,
            ),
        ]
    )
    return edges


CAPA_MACHINE = StateMachine(
    ItemType.CAPA,
    CAPAStatus,
    initial=CAPAStatus.DRAFT,
    terminal=[CAPAStatus.CLOSED, CAPAStatus.CANCELLED],
    transitions=_capa_transitions(),
)

SCAR_MACHINE = StateMachine(
    ItemType.SCAR,
    SCARStatus,
    initial=SCARStatus.DRAFT,
    terminal=[SCARStatus.CLOSED],
    transitions=[
        Transition(SCARStatus.DRAFT, SCARStatus.ISSUED, "Issue to supplier", effect=guards.scar_issued),
        Transition(
            SCARStatus.ISSUED,
            SCARStatus.SUPPLIER_RESPONSE,
            "Supplier responded",
            guard=guards.scar_has_response,
        ),
        Transition(SCARStatus.SUPPLIER_RESPONSE, SCARStatus.REVIEW, "Start review"),
        Transition(
            SCARStatus.REVIEW,
            SCARStatus.CLOSED,
            "Close",
            requires_reason=True,
            guard=guards.scar_can_close,
            effect=guards.scar_closed,
        ),
        Transition(SCARStatus.SUPPLIER_RESPONSE, SCARStatus.ISSUED, "Request new response", requires_reason=True),
        Transition(SCARStatus.REVIEW, SCARStatus.SUPPLIER_RESPONSE, "Return for more information", requires_reason=True),
    ],
)

MACHINES: Dict[ItemType, StateMachine] = {
    ItemType.NCR: NCR_MACHINE,
    ItemType.MRB: MRB_MACHINE,
    ItemType.CAPA: CAPA_MACHINE,
    ItemType.SCAR: SCAR_MACHINE,
}


# PUBLIC_INTERFACE
def machine_for(item_type: ItemType) -> StateMachine:
    return MACHINES[item_type]


def ensure_not_terminal(record: QualityRecord) -> None:
    """Raise TerminalStateError when the record's status is terminal."""
    machine = MACHINES[item_type_of(record)]
    if machine.is_terminal(record.status):
        raise TerminalStateError(
            f"{record.number} is {record.status.value}; no further changes are allowed",
            {"status": record.status.value},
        )


# PUBLIC_INTERFACE
def apply_transition(record: QualityRecord, target_status, ctx: TransitionContext) -> QualityRecord:
    """
    Validate and apply a status transition.

    Returns a new snapshot with the status set and the edge's effect applied.
    The input record is never modified.

    Raises:
        RecordValidationError: unknown target status, or a missing reason on an edge that needs one
        TerminalStateError: the record is already terminal
        InvalidTransitionError: the edge is not in the table
        GuardFailedError: the edge's precondition does not hold
    """
    machine = MACHINES[item_type_of(record)]
    target = machine.parse_status(target_status)
    ensure_not_terminal(record)

    edge = machine.find(record.status, target)
    if edge is None:
        raise InvalidTransitionError(
            f"{machine.item_type.value} cannot move from {record.status.value} to {target.value}",
            {
                "from": record.status.value,
                "to": target.value,
                "allowed": [t.target.value for t in machine.outgoing(record.status)],
            },
        )
    if edge.requires_reason and not (ctx.reason and ctx.reason.strip()):
        raise RecordValidationError(
            f"A reason is required to {edge.label.lower()} ({record.status.value} -> {target.value})"
        )
    if edge.guard is not None:
        edge.guard(record, ctx)

    updated = record.model_copy(deep=True)
    updated.status = target
    if edge.effect is not None:
        edge.effect(updated, ctx)
    logger.debug("%s %s: %s -> %s", machine.item_type.value, record.number, record.status.value, target.value)
    return updated


# PUBLIC_INTERFACE
def allowed_transitions(item_type: ItemType, status) -> List[Transition]:
    """Outgoing edges for a status, for clients that render action buttons."""
    machine = MACHINES[item_type]
    return machine.outgoing(machine.parse_status(status))
