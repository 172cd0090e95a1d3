"""
Typed workflow errors.

Every failure of a workflow operation is raised as a subclass of
QualityWorkflowError. The `code` attribute is the machine-readable kind that
callers switch on; the HTTP layer maps codes to status codes in one place
(qms_workflow.api.main).
"""

from __future__ import annotations

from typing import Any, Optional


class QualityWorkflowError(Exception):
    """Base class for all workflow errors."""

    code: str = "WorkflowError"

    def __init__(self, message: str, details: Optional[Any] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class RecordValidationError(QualityWorkflowError):
    """Malformed input record or request (missing field, value outside its enum)."""

    code = "ValidationError"


class InvalidTransitionError(QualityWorkflowError):
    """The requested edge is not in the entity's transition table."""

    code = "InvalidTransition"


class TerminalStateError(QualityWorkflowError):
    """The record is already in a terminal status."""

    code = "TerminalStateViolation"


class GuardFailedError(QualityWorkflowError):
    """The edge exists but its precondition does not hold."""

    code = "GuardFailed"

    def __init__(self, reason: str, message: str, details: Optional[dict] = None) -> None:
        payload = {"reason": reason}
        if details:
            payload.update(details)
        super().__init__(message, payload)
        self.reason = reason


class DuplicateVoteError(QualityWorkflowError):
    code = "DuplicateVote"


class NotAMemberError(QualityWorkflowError):
    code = "NotAMember"


class DanglingLinkError(QualityWorkflowError):
    """A link or unlink would leave a reference on only one side."""

    code = "DanglingLinkError"


class StaleWriteConflictError(QualityWorkflowError):
    """
    The caller's expected version does not match the stored one.

    `current` carries the stored record document so the caller can re-apply.
    """

    code = "StaleWriteConflict"

    def __init__(self, message: str, current: Optional[dict] = None) -> None:
        super().__init__(message, {"current": current} if current is not None else None)
        self.current = current


class RecordNotFoundError(QualityWorkflowError):
    code = "NotFound"
