from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional
from urllib.parse import quote
from uuid import UUID

from fastapi import APIRouter, Body, Depends, File, Form, Query, Response, UploadFile

from qms_workflow.core.deps import get_actor_id, get_tenant_id, get_workflow_service
from qms_workflow.schemas.enums import ItemType
from qms_workflow.schemas.record import RecordFilter
from qms_workflow.schemas.registry import describe_schema, dump_record
from qms_workflow.schemas.requests import (
    AllowedTransition,
    FieldUpdateRequest,
    NoteRequest,
    TaskRequest,
    TaskUpdateRequest,
)
from qms_workflow.services.workflow import WorkflowService

router = APIRouter(prefix="/quality", tags=["Records"])


# PUBLIC_INTERFACE
@router.get(
    "/schemas/{item_type}",
    response_model=List[Dict[str, Any]],
    summary="Describe record fields",
    description="Field names, types, enum values and editability for one record type.",
)
async def get_schema(item_type: ItemType) -> List[Dict[str, Any]]:
    return describe_schema(item_type)


# PUBLIC_INTERFACE
@router.get(
    "/{item_type}",
    response_model=List[Dict[str, Any]],
    summary="List records",
    description=(
        "List records of one type ordered by created_at desc. Repeat status, type, severity "
        "or priority to select several values; createdFrom and createdTo are inclusive dates."
    ),
)
async def list_records(
    item_type: ItemType,
    tenant_id: UUID = Depends(get_tenant_id),
    service: WorkflowService = Depends(get_workflow_service),
    search: Optional[str] = Query(None, description="Substring of title, description, number or reporter"),
    status: List[str] = Query([], description="Filter by status"),
    type_: List[str] = Query([], alias="type"),
    severity: List[str] = Query([]),
    priority: List[str] = Query([]),
    created_from: Optional[date] = Query(None, alias="createdFrom"),
    created_to: Optional[date] = Query(None, alias="createdTo"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
) -> List[Dict[str, Any]]:
    flt = RecordFilter(
        search=search,
        statuses=status,
        types=type_,
        severities=severity,
        priorities=priority,
        created_from=created_from,
        created_to=created_to,
    )
    rows = await service.list_records(tenant_id, item_type, limit=limit, offset=offset, flt=flt)
    return [dump_record(r) for r in rows]


# PUBLIC_INTERFACE
@router.post(
    "/{item_type}",
    response_model=Dict[str, Any],
    status_code=201,
    summary="Create record",
    description="Create an NCR, MRB, CAPA or SCAR in its initial status.",
)
async def create_record(
    item_type: ItemType,
    payload: Dict[str, Any] = Body(...),
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    record = await service.create_record(tenant_id, item_type, payload, actor_id)
    return dump_record(record)


# PUBLIC_INTERFACE
@router.get(
    "/{item_type}/{record_id}",
    response_model=Dict[str, Any],
    summary="Get record",
    description="Fetch a record by id or number.",
)
async def get_record(
    item_type: ItemType,
    record_id: str,
    tenant_id: UUID = Depends(get_tenant_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    return dump_record(await service.get_record(tenant_id, item_type, record_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{item_type}/{record_id}",
    response_model=Dict[str, Any],
    summary="Edit descriptive fields",
)
async def update_fields(
    item_type: ItemType,
    record_id: str,
    payload: FieldUpdateRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    record = await service.update_fields(
        tenant_id, item_type, record_id, actor_id, payload.fields, payload.expected_version
    )
    return dump_record(record)


# PUBLIC_INTERFACE
@router.get(
    "/{item_type}/{record_id}/transitions",
    response_model=List[AllowedTransition],
    summary="Allowed transitions",
    description="Edges leaving the record's current status.",
)
async def list_transitions(
    item_type: ItemType,
    record_id: str,
    tenant_id: UUID = Depends(get_tenant_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> List[AllowedTransition]:
    return await service.allowed_transitions(tenant_id, item_type, record_id)


# PUBLIC_INTERFACE
@router.post("/{item_type}/{record_id}/notes", response_model=Dict[str, Any], summary="Add note")
async def add_note(
    item_type: ItemType,
    record_id: str,
    payload: NoteRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    record = await service.add_note(tenant_id, item_type, record_id, actor_id, payload.text, payload.expected_version)
    return dump_record(record)


# PUBLIC_INTERFACE
@router.post("/{item_type}/{record_id}/tasks", response_model=Dict[str, Any], summary="Add task")
async def add_task(
    item_type: ItemType,
    record_id: str,
    payload: TaskRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    return dump_record(await service.add_task(tenant_id, item_type, record_id, actor_id, payload))


# PUBLIC_INTERFACE
@router.patch("/{item_type}/{record_id}/tasks/{task_id}", response_model=Dict[str, Any], summary="Update task")
async def update_task(
    item_type: ItemType,
    record_id: str,
    task_id: str,
    payload: TaskUpdateRequest,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    return dump_record(await service.update_task(tenant_id, item_type, record_id, task_id, actor_id, payload))


# PUBLIC_INTERFACE
@router.post(
    "/{item_type}/{record_id}/attachments",
    response_model=Dict[str, Any],
    status_code=201,
    summary="Upload attachment",
    description="Multipart upload; the bytes go to blob storage and the record keeps the metadata.",
)
async def upload_attachment(
    item_type: ItemType,
    record_id: str,
    file: UploadFile = File(...),
    expected_version: int = Form(..., alias="expectedVersion", ge=1),
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    data = await file.read()
    record = await service.add_attachment(
        tenant_id,
        item_type,
        record_id,
        actor_id,
        file.filename or "attachment",
        data,
        file.content_type or "application/octet-stream",
        expected_version,
    )
    return dump_record(record)


# PUBLIC_INTERFACE
@router.get("/{item_type}/{record_id}/attachments/{attachment_id}", summary="Download attachment")
async def download_attachment(
    item_type: ItemType,
    record_id: str,
    attachment_id: str,
    tenant_id: UUID = Depends(get_tenant_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Response:
    attachment, data = await service.download_attachment(tenant_id, item_type, record_id, attachment_id)
    headers = {"Content-Disposition": f"attachment; filename*=UTF-8''{quote(attachment.file_name)}"}
    return Response(content=data, media_type=attachment.mime_type, headers=headers)


# PUBLIC_INTERFACE
@router.delete(
    "/{item_type}/{record_id}/attachments/{attachment_id}",
    response_model=Dict[str, Any],
    summary="Remove attachment",
    description="Removes the attachment from the record. Stored bytes are retained.",
)
async def remove_attachment(
    item_type: ItemType,
    record_id: str,
    attachment_id: str,
    expected_version: int = Query(..., alias="expectedVersion", ge=1),
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: str = Depends(get_actor_id),
    service: WorkflowService = Depends(get_workflow_service),
) -> Dict[str, Any]:
    record = await service.remove_attachment(
        tenant_id, item_type, record_id, attachment_id, actor_id, expected_version
    )
    return dump_record(record)
