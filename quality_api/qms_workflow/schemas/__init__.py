"""
Public Pydantic schemas used by FastAPI routes, services, and tests.

Schemas are grouped by record type (ncr, mrb, capa, scar) plus shared pieces:
enums, common envelopes, audit entries, progress views and request bodies.
registry ties record types to their models.
"""

from .common import MessageResponse  # noqa: F401
