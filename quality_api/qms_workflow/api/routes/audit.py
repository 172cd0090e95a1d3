from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from qms_workflow.core.deps import get_tenant_id, get_workflow_service
from qms_workflow.schemas.audit import AuditFilter, AuditTrail
from qms_workflow.schemas.enums import AuditAction, ItemType
from qms_workflow.schemas.progress import MilestoneView, Progress
from qms_workflow.services.workflow import WorkflowService

router = APIRouter(prefix="/quality", tags=["Audit"])


# PUBLIC_INTERFACE
@router.get(
    "/progress",
    response_model=Progress,
    summary="Status progress",
    description="Step index and percent for a status. Unknown types or statuses report step 0.",
)
async def get_progress(
    item_type: str = Query(..., alias="itemType"),
    status: str = Query(...),
    service: WorkflowService = Depends(get_workflow_service),
) -> Progress:
    return service.get_progress(item_type, status)


# PUBLIC_INTERFACE
@router.get(
    "/{item_type}/{record_id}/audit",
    response_model=AuditTrail,
    summary="Audit trail",
    description="Audit entries for a record, oldest first.",
)
async def query_audit_trail(
    item_type: ItemType,
    record_id: str,
    actions: Optional[List[AuditAction]] = Query(None, description="Only these actions"),
    actor_id: Optional[str] = Query(None, alias="actorId"),
    since: Optional[datetime] = Query(None),
    until: Optional[datetime] = Query(None),
    status_changes_only: bool = Query(False, alias="statusChangesOnly"),
    include_related: bool = Query(
        True, alias="includeRelated", description="Include link entries recorded on the other side of a link"
    ),
    limit: int = Query(500, ge=1, le=5000),
    offset: int = Query(0, ge=0),
    tenant_id: UUID = Depends(get_tenant_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> AuditTrail:
    flt = AuditFilter(
        actions=actions,
        actor_id=actor_id,
        since=since,
        until=until,
        status_changes_only=status_changes_only,
        include_related=include_related,
        limit=limit,
        offset=offset,
    )
    return await service.query_audit_trail(tenant_id, item_type, record_id, flt)


# PUBLIC_INTERFACE
@router.get(
    "/{item_type}/{record_id}/milestones",
    response_model=MilestoneView,
    summary="Milestones",
    description="Milestone list with the current milestone and progress.",
)
async def get_milestones(
    item_type: ItemType,
    record_id: str,
    tenant_id: UUID = Depends(get_tenant_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> MilestoneView:
    return await service.get_milestones(tenant_id, item_type, record_id)
