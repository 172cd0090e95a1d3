"""
Audit trail recording.

Diffs are computed over the persisted JSON layout so field names in the trail
match the wire format. Array fields are summarized as counts to bound entry size.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from qms_workflow.schemas.audit import AuditDetails, AuditEntry, AuditFilter, FieldChange
from qms_workflow.schemas.enums import AuditAction, ItemType

from .approvals import new_id

IGNORED_FIELDS = frozenset({"updatedAt", "version"})
STATUS_FIELDS = frozenset({"status", "reviewStatus"})


def _kind(field: str, before: Any, after: Any) -> str:
    if field in STATUS_FIELDS:
        return "status"
    if isinstance(before, list) or isinstance(after, list):
        return "array"
    if field.endswith("Date") or field.endswith("At"):
        return "date"
    return "value"


def _render(kind: str, value: Any) -> Any:
    if kind == "array":
        return len(value) if isinstance(value, list) else 0
    return value


# PUBLIC_INTERFACE
def compute_changes(before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]) -> List[FieldChange]:
    """Field-level diff of two record documents, in a stable (sorted) field order."""
    before = before or {}
    after = after or {}
    changes: List[FieldChange] = []
    for field in sorted(set(before) | set(after)):
        if field in IGNORED_FIELDS:
            continue
        old, new = before.get(field), after.get(field)
        if old == new:
            continue
        kind = _kind(field, old, new)
        changes.append(FieldChange(field=field, kind=kind, before=_render(kind, old), after=_render(kind, new)))
    return changes


def _summary(document: Dict[str, Any]) -> Dict[str, Any]:
    return {k: document.get(k) for k in ("number", "recordType", "status", "title")}


# PUBLIC_INTERFACE
def build_entry(
    *,
    seq: int,
    action: AuditAction,
    item_type: ItemType,
    item_id: str,
    actor_id: str,
    now: datetime,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    reason: Optional[str] = None,
    comments: Optional[str] = None,
    related_item_id: Optional[str] = None,
    related_item_type: Optional[ItemType] = None,
) -> AuditEntry:
    """
    Build one audit entry for a committed action.

    For creations the entry carries a summary of the new record; otherwise
    details.before/after hold only the changed fields.
    """
    if before is None and after is not None:
        details = AuditDetails(after=_summary(after), reason=reason, comments=comments)
    else:
        changes = compute_changes(before, after)
        details = AuditDetails(
            before={c.field: c.before for c in changes},
            after={c.field: c.after for c in changes},
            fields=[c.field for c in changes],
            changes=changes,
            reason=reason,
            comments=comments,
        )
    return AuditEntry(
        id=new_id(),
        seq=seq,
        timestamp=now,
        actor_id=actor_id,
        action=action,
        item_id=item_id,
        item_type=item_type,
        details=details,
        related_item_id=related_item_id,
        related_item_type=related_item_type,
    )


def _is_status_change(entry: AuditEntry) -> bool:
    return entry.action == AuditAction.STATUS_CHANGED or any(
        c.kind == "status" for c in entry.details.changes
    )


# PUBLIC_INTERFACE
def filter_entries(entries: List[AuditEntry], flt: AuditFilter) -> Tuple[int, List[AuditEntry]]:
    """Apply an AuditFilter to entries ordered oldest-first. Returns (total matching, page)."""
    matched: List[AuditEntry] = []
    for e in entries:
        if flt.actions and e.action not in flt.actions:
            continue
        if flt.actor_id and e.actor_id != flt.actor_id:
            continue
        if flt.since and e.timestamp < flt.since:
            continue
        if flt.until and e.timestamp > flt.until:
            continue
        if flt.status_changes_only and not _is_status_change(e):
            continue
        matched.append(e)
    return len(matched), matched[flt.offset: flt.offset + flt.limit]
