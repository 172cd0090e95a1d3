"""
Pytest configuration and fixtures for the quality workflow test suite.
"""

from uuid import UUID

import pytest

from qms_workflow.repositories.memory import InMemoryQualityDatabase
from qms_workflow.repositories.unit_of_work import memory_uow_factory
from qms_workflow.services.blob import InMemoryBlobStore
from qms_workflow.services.workflow import WorkflowService

from .factories import SteppingClock

TENANT_A = UUID("11111111-1111-1111-1111-111111111111")
TENANT_B = UUID("22222222-2222-2222-2222-222222222222")


@pytest.fixture
def tenant_id() -> UUID:
    return TENANT_A


@pytest.fixture
def other_tenant_id() -> UUID:
    return TENANT_B


@pytest.fixture
def memory_db() -> InMemoryQualityDatabase:
    """Fresh process-local record store."""
    return InMemoryQualityDatabase()


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture
def service(memory_db, blob_store, clock) -> WorkflowService:
    """WorkflowService over the in-memory store with one required NCR approver."""
    return WorkflowService(
        memory_uow_factory(memory_db),
        blob_store,
        required_approvers=1,
        default_quorum=3,
        max_attachment_bytes=1024,
        clock=clock,
    )
