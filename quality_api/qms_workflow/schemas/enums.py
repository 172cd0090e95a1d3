from __future__ import annotations

from enum import Enum


class ItemType(str, Enum):
    NCR = "ncr"
    MRB = "mrb"
    CAPA = "capa"
    SCAR = "scar"


# NCR
class NCRStatus(str, Enum):
    DRAFT = "draft"
    OPEN = "open"
    UNDER_REVIEW = "under_review"
    PENDING_DISPOSITION = "pending_disposition"
    CLOSED = "closed"


class NCRType(str, Enum):
    MATERIAL = "material"
    DOCUMENTATION = "documentation"
    PRODUCT = "product"
    PROCESS = "process"
    EQUIPMENT = "equipment"


class Severity(str, Enum):
    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DispositionDecision(str, Enum):
    USE_AS_IS = "use_as_is"
    REWORK = "rework"
    REPAIR = "repair"
    RETURN_TO_SUPPLIER = "return_to_supplier"
    SCRAP = "scrap"
    DEVIATE = "deviate"


# MRB
class MRBStatus(str, Enum):
    PENDING_REVIEW = "pending_review"
    IN_REVIEW = "in_review"
    PENDING_DISPOSITION = "pending_disposition"
    APPROVED = "approved"
    REJECTED = "rejected"
    CLOSED = "closed"


class MRBType(str, Enum):
    MATERIAL = "material"
    ASSEMBLY = "assembly"
    COMPONENT = "component"
    FINISHED_PRODUCT = "finished_product"


class Vote(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    ABSTAIN = "abstain"


class QuorumOutcome(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    UNDECIDED = "undecided"


class ActionItemStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# CAPA
class CAPAStatus(str, Enum):
    DRAFT = "draft"
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    PENDING_REVIEW = "pending_review"
    UNDER_INVESTIGATION = "under_investigation"
    IMPLEMENTING = "implementing"
    PENDING_VERIFICATION = "pending_verification"
    COMPLETED = "completed"
    VERIFIED = "verified"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class CAPAType(str, Enum):
    CORRECTIVE = "corrective"
    PREVENTIVE = "preventive"
    IMPROVEMENT = "improvement"


class RootCauseMethod(str, Enum):
    FIVE_WHY = "5-why"
    FISHBONE = "fishbone"
    PARETO = "pareto"
    FMEA = "fmea"
    OTHER = "other"


class EightDStepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    VERIFIED = "verified"


class EightDStepKey(str, Enum):
    """The eight CAPA discipline steps, in sequence order."""

    D1 = "d1"
    D2 = "d2"
    D3 = "d3"
    D4 = "d4"
    D5 = "d5"
    D6 = "d6"
    D7 = "d7"
    D8 = "d8"

    @property
    def field_name(self) -> str:
        return STEP_FIELD_NAMES[self.value]


# Attribute names of the step sub-records on the CAPA model.
STEP_FIELD_NAMES = {
    "d1": "d1_team",
    "d2": "d2_problem",
    "d3": "d3_containment",
    "d4": "d4_root_cause",
    "d5": "d5_corrective_actions",
    "d6": "d6_implementation",
    "d7": "d7_prevention",
    "d8": "d8_recognition",
}


# SCAR
class SCARStatus(str, Enum):
    DRAFT = "draft"
    ISSUED = "issued"
    SUPPLIER_RESPONSE = "supplier_response"
    REVIEW = "review"
    CLOSED = "closed"


class ReviewStatus(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING_INFO = "pending_info"


class SCARItemKind(str, Enum):
    CONTAINMENT = "containment"
    ROOT_CAUSE = "root_cause"
    CORRECTIVE = "corrective"
    PREVENTIVE = "preventive"


# Shared sub-records
class TaskStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AuditAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    MEMBER_ADDED = "member_added"
    VOTE_CAST = "vote_cast"
    DISPOSITION_SET = "disposition_set"
    DISPOSITION_APPROVED = "disposition_approved"
    ACTION_ITEM_ADDED = "action_item_added"
    ACTION_ITEM_UPDATED = "action_item_updated"
    STEP_PLANNED = "step_planned"
    STEP_UPDATED = "step_updated"
    SUPPLIER_RESPONSE_RECORDED = "supplier_response_recorded"
    REVIEW_RECORDED = "review_recorded"
    SCAR_ITEM_ADDED = "scar_item_added"
    SCAR_ACTION_VERIFIED = "scar_action_verified"
    LINKED = "linked"
    UNLINKED = "unlinked"
    NOTE_ADDED = "note_added"
    TASK_ADDED = "task_added"
    TASK_UPDATED = "task_updated"
    ATTACHMENT_ADDED = "attachment_added"
    ATTACHMENT_REMOVED = "attachment_removed"


class GuardReason(str, Enum):
    QUORUM_NOT_MET = "QuorumNotMet"
    OUTCOME_UNDECIDED = "OutcomeUndecided"
    OUTCOME_MISMATCH = "OutcomeMismatch"
    STEP_INCOMPLETE = "StepIncomplete"
    DISPOSITION_MISSING = "DispositionMissing"
    APPROVALS_MISSING = "ApprovalsMissing"
    SUPPLIER_RESPONSE_MISSING = "SupplierResponseMissing"
    REVIEW_NOT_APPROVED = "ReviewNotApproved"


STATUS_ENUMS = {
    ItemType.NCR: NCRStatus,
    ItemType.MRB: MRBStatus,
    ItemType.CAPA: CAPAStatus,
    ItemType.SCAR: SCARStatus,
}
