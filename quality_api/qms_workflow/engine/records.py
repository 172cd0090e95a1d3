"""Record construction and edits that are not status transitions."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ValidationError

from qms_workflow.core.errors import RecordNotFoundError, RecordValidationError
from qms_workflow.schemas.common import Attachment, Note, Task
from qms_workflow.schemas.enums import ItemType, TaskStatus
from qms_workflow.schemas.mrb import BoardMember
from qms_workflow.schemas.record import RecordFilter
from qms_workflow.schemas.registry import RECORD_MODELS, QualityRecord

from .approvals import new_id


# PUBLIC_INTERFACE
def new_record(
    item_type: ItemType,
    payload: BaseModel,
    number: str,
    actor_id: str,
    now: datetime,
    default_quorum: int,
) -> QualityRecord:
    """
    Build a record in its initial status from a validated create payload.

    Workflow-owned fields (status, disposition, votes, steps, links, stamps) are
    never taken from the payload.
    """
    data: Dict[str, Any] = payload.model_dump(exclude={"number"})
    data.update(
        id=new_id(),
        number=number,
        version=1,
        created_at=now,
        created_by=actor_id,
        updated_at=now,
    )
    if item_type == ItemType.NCR and not data.get("reported_by"):
        data["reported_by"] = actor_id
    if item_type == ItemType.CAPA and not data.get("requested_by"):
        data["requested_by"] = actor_id
    if item_type == ItemType.MRB:
        data["quorum_required"] = data.get("quorum_required") or default_quorum
        data["members"] = [BoardMember(**m) for m in data.get("members") or []]
    model = RECORD_MODELS[item_type]
    try:
        return model(**data)  # type: ignore[return-value]
    except ValidationError as exc:
        raise RecordValidationError(
            f"Invalid {item_type.value} payload",
            exc.errors(include_url=False, include_context=False, include_input=False),
        )


# PUBLIC_INTERFACE
def apply_field_updates(record: QualityRecord, fields: Dict[str, Any]) -> QualityRecord:
    """Apply already-resolved editable field values and validate the result."""
    data = record.model_dump()
    data.update(fields)
    try:
        return type(record).model_validate(data)  # type: ignore[return-value]
    except ValidationError as exc:
        raise RecordValidationError(
            f"Invalid update for {record.number}",
            exc.errors(include_url=False, include_context=False, include_input=False),
        )


def add_note(record: QualityRecord, author: str, text: str, now: datetime) -> QualityRecord:
    updated = record.model_copy(deep=True)
    updated.notes.append(Note(id=new_id(), author=author, text=text, created_at=now))
    return updated


def add_task(
    record: QualityRecord,
    title: str,
    assignee: Optional[str] = None,
    due_date: Optional[date] = None,
) -> QualityRecord:
    updated = record.model_copy(deep=True)
    updated.tasks.append(Task(id=new_id(), title=title, assignee=assignee, due_date=due_date))
    return updated


def update_task(record: QualityRecord, task_id: str, status: TaskStatus, now: datetime) -> QualityRecord:
    updated = record.model_copy(deep=True)
    task = next((t for t in updated.tasks if t.id == task_id), None)
    if task is None:
        raise RecordNotFoundError(f"Task {task_id} not found on {record.number}")
    task.status = status
    task.completed_date = now if status == TaskStatus.COMPLETED else None
    return updated


def add_attachment(record: QualityRecord, attachment: Attachment) -> QualityRecord:
    updated = record.model_copy(deep=True)
    updated.attachments.append(attachment)
    return updated


def find_attachment(record: QualityRecord, attachment_id: str) -> Attachment:
    for a in record.attachments:
        if a.id == attachment_id:
            return a
    raise RecordNotFoundError(f"Attachment {attachment_id} not found on {record.number}")


def remove_attachment(record: QualityRecord, attachment_id: str) -> QualityRecord:
    find_attachment(record, attachment_id)
    updated = record.model_copy(deep=True)
    updated.attachments = [a for a in updated.attachments if a.id != attachment_id]
    return updated


def _enum_value(value: Any) -> Optional[str]:
    return getattr(value, "value", value)


# PUBLIC_INTERFACE
def matches_filter(record: QualityRecord, flt: RecordFilter) -> bool:
    """
    True when the record passes every part of the list filter.

    Search is a case-insensitive substring match on title, description, number
    and reporter. Records without a type, severity or priority never match a
    non-empty selection on that attribute.
    """
    needle = (flt.search or "").strip().lower()
    if needle:
        haystack = (record.title, record.description, record.number, getattr(record, "reported_by", None))
        if not any(needle in value.lower() for value in haystack if value):
            return False
    selections = (
        (flt.statuses, record.status),
        (flt.types, getattr(record, "type", None)),
        (flt.severities, getattr(record, "severity", None)),
        (flt.priorities, getattr(record, "priority", None)),
    )
    for wanted, value in selections:
        if wanted and _enum_value(value) not in wanted:
            return False
    created = record.created_at.date()
    if flt.created_from and created < flt.created_from:
        return False
    if flt.created_to and created > flt.created_to:
        return False
    return True
