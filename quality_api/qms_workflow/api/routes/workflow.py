"""
Workflow actions: single and batch transitions, dispositions, board voting,
8D steps, SCAR review and record linkage.

Included ahead of the records router so the literal /quality/links paths are
matched before /quality/{item_type}/{record_id}.
"""

from __future__ import annotations

from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends

from qms_workflow.core.deps import get_actor_id, get_tenant_id, get_workflow_service
from qms_workflow.schemas.enums import EightDStepKey, ItemType
from qms_workflow.schemas.registry import dump_record
from qms_workflow.schemas.requests import (
    ActionItemRequest,
    ActionItemUpdateRequest,
    BatchItemResult,
    BatchTransitionRequest,
    DispositionRequest,
    LinkRequest,
    MemberRequest,
    QuorumView,
    ReviewRequest,
    SCARItemRequest,
    SCARVerifyRequest,
    SignoffRequest,
    StepAdvanceRequest,
    StepPlanRequest,
    SupplierResponseRequest,
    TransitionRequest,
    VoteRequest,
)
from qms_workflow.services.workflow import WorkflowService

router = APIRouter(prefix="/quality", tags=["Workflow"])


# PUBLIC_INTERFACE
@router.post(
    "/links",
    response_model=Dict[str, Any],
    summary="Link records",
    description="Set both sides of an NCR/MRB/CAPA/SCAR reference in one transaction.",
)
async def link_records(
    payload: LinkRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    parent, child = await service.link(tenant_id, actor_id, payload)
    return {"parent": dump_record(parent), "child": dump_record(child)}


# PUBLIC_INTERFACE
@router.post(
    "/links/unlink",
    response_model=Dict[str, Any],
    summary="Unlink records",
    description="Clear both sides of an existing reference in one transaction.",
)
async def unlink_records(
    payload: LinkRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    parent, child = await service.unlink(tenant_id, actor_id, payload)
    return {"parent": dump_record(parent), "child": dump_record(child)}


# PUBLIC_INTERFACE
@router.get(
    "/links/check",
    response_model=List[Dict[str, Any]],
    summary="Find one-sided links",
    description="Lists references that are not mirrored on the referenced record. Empty when consistent.",
)
async def check_links(
    tenant_id: UUID = Depends(get_tenant_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> List[Dict[str, Any]]:
    return await service.check_links(tenant_id)


# PUBLIC_INTERFACE
@router.post(
    "/{item_type}/batch/transition",
    response_model=List[BatchItemResult],
    summary="Change status of several records",
    description=(
        "Apply one transition to each listed record at its own expectedVersion. "
        "Records succeed or fail independently; each result carries the new version or the error."
    ),
)
async def batch_transition(
    item_type: ItemType,
    payload: BatchTransitionRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> List[BatchItemResult]:
    return await service.batch_transition(tenant_id, item_type, actor_id, payload)


# PUBLIC_INTERFACE
@router.post(
    "/{item_type}/{record_id}/transition",
    response_model=Dict[str, Any],
    summary="Change status",
    description=(
        "Move the record along one edge of its state machine. Closing, cancelling, "
        "board decisions and returns to an earlier status require a reason."
    ),
)
async def transition_record(
    item_type: ItemType,
    record_id: str,
    payload: TransitionRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    return dump_record(await service.transition(tenant_id, item_type, record_id, actor_id, payload))


# PUBLIC_INTERFACE
@router.put("/{item_type}/{record_id}/disposition", response_model=Dict[str, Any], summary="Set disposition")
async def set_disposition(
    item_type: ItemType,
    record_id: str,
    payload: DispositionRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    return dump_record(await service.set_disposition(tenant_id, item_type, record_id, actor_id, payload))


# PUBLIC_INTERFACE
@router.post(
    "/ncr/{ncr_id}/disposition/signoffs",
    response_model=Dict[str, Any],
    summary="Sign off NCR disposition",
)
async def sign_off_disposition(
    ncr_id: str,
    payload: SignoffRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    return dump_record(await service.approve_disposition(tenant_id, ncr_id, actor_id, payload))


# PUBLIC_INTERFACE
@router.post("/mrb/{mrb_id}/members", response_model=Dict[str, Any], summary="Add board member")
async def add_member(
    mrb_id: str,
    payload: MemberRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    return dump_record(await service.add_member(tenant_id, mrb_id, actor_id, payload))


# PUBLIC_INTERFACE
@router.post("/mrb/{mrb_id}/votes", response_model=Dict[str, Any], summary="Cast vote")
async def cast_vote(
    mrb_id: str,
    payload: VoteRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    return dump_record(await service.cast_vote(tenant_id, mrb_id, actor_id, payload))


# PUBLIC_INTERFACE
@router.get("/mrb/{mrb_id}/quorum", response_model=QuorumView, summary="Evaluate quorum")
async def get_quorum(
    mrb_id: str,
    tenant_id: UUID = Depends(get_tenant_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> QuorumView:
    return await service.evaluate_quorum(tenant_id, mrb_id)


# PUBLIC_INTERFACE
@router.post("/mrb/{mrb_id}/action-items", response_model=Dict[str, Any], summary="Add action item")
async def add_action_item(
    mrb_id: str,
    payload: ActionItemRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    return dump_record(await service.add_action_item(tenant_id, mrb_id, actor_id, payload))


# PUBLIC_INTERFACE
@router.patch("/mrb/{mrb_id}/action-items/{item_id}", response_model=Dict[str, Any], summary="Update action item")
async def update_action_item(
    mrb_id: str,
    item_id: str,
    payload: ActionItemUpdateRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    return dump_record(await service.update_action_item(tenant_id, mrb_id, item_id, actor_id, payload))


# PUBLIC_INTERFACE
@router.put("/capa/{capa_id}/steps/{step}", response_model=Dict[str, Any], summary="Plan 8D step")
async def plan_step(
    capa_id: str,
    step: EightDStepKey,
    payload: StepPlanRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    return dump_record(await service.plan_step(tenant_id, capa_id, step, actor_id, payload))


# PUBLIC_INTERFACE
@router.post("/capa/{capa_id}/steps/{step}/advance", response_model=Dict[str, Any], summary="Advance 8D step")
async def advance_step(
    capa_id: str,
    step: EightDStepKey,
    payload: StepAdvanceRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    return dump_record(await service.advance_step(tenant_id, capa_id, step, actor_id, payload))


# PUBLIC_INTERFACE
@router.post("/scar/{scar_id}/supplier-response", response_model=Dict[str, Any], summary="Record supplier response")
async def record_supplier_response(
    scar_id: str,
    payload: SupplierResponseRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    return dump_record(await service.record_supplier_response(tenant_id, scar_id, actor_id, payload))


# PUBLIC_INTERFACE
@router.post("/scar/{scar_id}/review", response_model=Dict[str, Any], summary="Record review outcome")
async def record_review(
    scar_id: str,
    payload: ReviewRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    return dump_record(await service.set_review_status(tenant_id, scar_id, actor_id, payload))


# PUBLIC_INTERFACE
@router.post("/scar/{scar_id}/items", response_model=Dict[str, Any], summary="Add SCAR entry")
async def add_scar_item(
    scar_id: str,
    payload: SCARItemRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    return dump_record(await service.add_scar_item(tenant_id, scar_id, actor_id, payload))


# PUBLIC_INTERFACE
@router.post("/scar/{scar_id}/items/verify", response_model=Dict[str, Any], summary="Verify SCAR entry")
async def verify_scar_item(
    scar_id: str,
    payload: SCARVerifyRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    return dump_record(await service.verify_scar_action(tenant_id, scar_id, actor_id, payload))
