from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field

from .common import QualityModel
from .enums import AuditAction, ItemType


class FieldChange(QualityModel):
    """One changed field. Arrays are rendered as counts, statuses as from/to pairs."""
    field: str
    kind: Literal["status", "date", "array", "value"]
    before: Any = None
    after: Any = None


class AuditDetails(QualityModel):
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    fields: List[str] = Field(default_factory=list)
    changes: List[FieldChange] = Field(default_factory=list)
    comments: Optional[str] = None
    reason: Optional[str] = None


# PUBLIC_INTERFACE
class AuditEntry(QualityModel):
    """Immutable history entry. `seq` increases by one per entry for the same item."""
    id: str
    seq: int = Field(..., ge=1)
    timestamp: datetime
    actor_id: str
    action: AuditAction
    item_id: str
    item_type: ItemType
    details: AuditDetails = Field(default_factory=AuditDetails)
    related_item_id: Optional[str] = None
    related_item_type: Optional[ItemType] = None


class AuditFilter(QualityModel):
    """Filter applied when querying an item's audit trail."""
    actions: Optional[List[AuditAction]] = None
    actor_id: Optional[str] = None
    since: Optional[datetime] = None
    until: Optional[datetime] = None
    status_changes_only: bool = False
    # Link entries are stored once, on the parent; the child sees them through this.
    include_related: bool = True
    limit: int = Field(default=500, ge=1, le=5000)
    offset: int = Field(default=0, ge=0)


class AuditTrail(QualityModel):
    item_id: str
    total: int
    entries: List[AuditEntry]
