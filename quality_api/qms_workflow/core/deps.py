from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import Header, HTTPException, Request, status

from qms_workflow.core.settings import AppSettings
from qms_workflow.db.session import get_session_maker
from qms_workflow.repositories.unit_of_work import memory_uow_factory, sql_uow_factory
from qms_workflow.services.workflow import WorkflowService

logger = logging.getLogger(__name__)


def _bad_header(message: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


# PUBLIC_INTERFACE
async def get_tenant_id(x_tenant_id: str | None = Header(default=None, alias="X-Tenant-ID")) -> UUID:
    """
    Tenant of the request, from X-Tenant-ID.

    Every record, number sequence and audit entry is scoped to it. Missing or
    non-UUID values are a 400, before any workflow code runs.
    """
    if not x_tenant_id:
        raise _bad_header("X-Tenant-ID header is required.")
    try:
        return UUID(x_tenant_id)
    except ValueError:
        logger.info("Rejected malformed X-Tenant-ID %r", x_tenant_id)
        raise _bad_header("X-Tenant-ID header must be a valid UUID string.")


# PUBLIC_INTERFACE
async def get_actor_id(x_actor_id: str | None = Header(default=None, alias="X-Actor-ID")) -> str:
    """
    Return the acting user id from the X-Actor-ID header.

    Identity is asserted by the gateway in front of this service; every audit
    entry is attributed to this value.
    """
    actor = (x_actor_id or "").strip()
    if not actor:
        raise _bad_header("X-Actor-ID header is required.")
    return actor


# PUBLIC_INTERFACE
def build_workflow_service(state: Any) -> WorkflowService:
    """
    Build a WorkflowService from the application state (settings, memory store, blob store).

    The record store is chosen by STORE_BACKEND: "postgres" opens a tenant-scoped
    session per operation, "memory" uses the process-local store created at startup.
    """
    settings: AppSettings = state.settings
    if settings.STORE_BACKEND == "postgres":
        uow_factory = sql_uow_factory(get_session_maker())
    else:
        uow_factory = memory_uow_factory(state.memory_db)
    return WorkflowService(
        uow_factory,
        state.blob_store,
        required_approvers=settings.NCR_REQUIRED_APPROVERS,
        default_quorum=settings.MRB_DEFAULT_QUORUM,
        max_attachment_bytes=settings.MAX_ATTACHMENT_BYTES,
    )


# PUBLIC_INTERFACE
def get_workflow_service(request: Request) -> WorkflowService:
    """Request-scoped WorkflowService; tests override this dependency."""
    return build_workflow_service(request.app.state)
