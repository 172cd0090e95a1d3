from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .enums import TaskStatus


class QualityModel(BaseModel):
    """
    Base for persisted quality documents and request bodies.

    Field names are camelCase on the wire (alias generator) and snake_case in Python.
    Unknown fields are rejected.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class MessageResponse(BaseModel):
    """Standard message response."""
    message: str = Field(..., description="Human readable message")
    details: Optional[dict] = Field(default=None, description="Optional extra data")


class ReadinessResponse(BaseModel):
    """Readiness check result."""
    ready: bool
    store_backend: str = Field(..., description="memory or postgres")
    detail: Optional[str] = Field(default=None, description="Why the store is not ready")


class ErrorInfo(BaseModel):
    """Structured error description."""
    type: str = Field(..., description="Machine-readable error type code")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Any] = Field(default=None, description="Optional error details (e.g., validation issues)")


# PUBLIC_INTERFACE
class ErrorResponse(BaseModel):
    """Standardized API error envelope returned by exception handlers."""
    status: int = Field(..., description="HTTP status code")
    error: ErrorInfo = Field(..., description="Error details")
    correlation_id: Optional[str] = Field(default=None, description="Request correlation ID")
    tenant_id: Optional[str] = Field(default=None, description="Tenant ID (if available)")
    path: Optional[str] = Field(default=None, description="Request path")
    method: Optional[str] = Field(default=None, description="HTTP method")
    timestamp: datetime = Field(..., description="Error timestamp (UTC)")


class Attachment(QualityModel):
    """Attachment metadata. The bytes live in the blob store behind storageUrl."""
    id: str = Field(..., description="Attachment id")
    file_name: str = Field(..., min_length=1)
    size: int = Field(..., ge=0, description="Size in bytes")
    mime_type: str = Field(...)
    storage_url: str = Field(..., description="Blob store URL")
    uploaded_by: str = Field(...)
    uploaded_at: datetime = Field(...)


class Note(QualityModel):
    id: str
    author: str
    text: str = Field(..., min_length=1)
    created_at: datetime


class Task(QualityModel):
    id: str
    title: str = Field(..., min_length=1)
    assignee: Optional[str] = None
    due_date: Optional[date] = None
    status: TaskStatus = TaskStatus.OPEN
    completed_date: Optional[datetime] = None
