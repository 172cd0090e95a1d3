"""
Building blocks shared by the four record models: the editable descriptive
fields, the workflow-owned envelope, disposition sign-offs and the list filter.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import Field

from .common import Attachment, Note, QualityModel, Task


class RecordFields(QualityModel):
    """Editable descriptive fields shared by every quality record."""
    title: str = Field(..., min_length=1, max_length=300)
    description: str = Field(default="", max_length=10000)


class RecordEnvelope(QualityModel):
    """
    Workflow-owned identity and bookkeeping fields shared by every quality record.

    `version` starts at 1 and is incremented by every committed mutation; callers
    pass the version they last observed to detect concurrent edits.
    """
    id: str = Field(..., description="Record id (uuid4 string)")
    number: str = Field(..., min_length=1, description="Human readable number, e.g. NCR-2026-0001")
    version: int = Field(1, ge=1)
    created_at: datetime
    created_by: str = Field(..., min_length=1)
    updated_at: datetime
    attachments: List[Attachment] = Field(default_factory=list)
    notes: List[Note] = Field(default_factory=list)
    tasks: List[Task] = Field(default_factory=list)


class Signoff(QualityModel):
    """One approver's sign-off on a disposition."""
    approver_id: str = Field(..., min_length=1)
    name: Optional[str] = None
    role: Optional[str] = None
    date: datetime
    comment: Optional[str] = None


class RecordFilter(QualityModel):
    """
    Filter for record lists: free-text search over title, description, number
    and reporter, multi-select on status, type, severity and priority, and an
    inclusive created-date range. Empty selections match everything.
    """
    search: Optional[str] = None
    statuses: List[str] = Field(default_factory=list)
    types: List[str] = Field(default_factory=list)
    severities: List[str] = Field(default_factory=list)
    priorities: List[str] = Field(default_factory=list)
    created_from: Optional[date] = None
    created_to: Optional[date] = None

    def is_empty(self) -> bool:
        return not (
            (self.search and self.search.strip())
            or self.statuses
            or self.types
            or self.severities
            or self.priorities
            or self.created_from
            or self.created_to
        )
