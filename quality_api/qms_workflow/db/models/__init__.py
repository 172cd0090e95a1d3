"""
ORM models for quality workflow persistence.

Importing this package ensures model classes are registered with the Base
metadata for Alembic and runtime usage.
"""

from .quality import (  # noqa: F401
    AuditEntryRow,
    NumberSequenceRow,
    QualityRecordRow,
)
