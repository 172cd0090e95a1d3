"""
Workflow service: the operations surface over NCR, MRB, CAPA and SCAR records.

Every mutating operation runs in one unit of work: load the current snapshot,
check the caller's expected version, apply an engine function, bump the version,
write the snapshot with a compare-and-swap and append exactly one audit entry.
Any error raised along the way rolls the whole unit back.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID

from qms_workflow.core.errors import (
    QualityWorkflowError,
    RecordNotFoundError,
    RecordValidationError,
    StaleWriteConflictError,
)
from qms_workflow.engine import approvals, linkage, records
from qms_workflow.engine.audit import build_entry, filter_entries
from qms_workflow.engine.guards import TransitionContext
from qms_workflow.engine.progress import milestones, progress
from qms_workflow.engine.state_machine import (
    allowed_transitions,
    apply_transition,
    ensure_not_terminal,
    machine_for,
)
from qms_workflow.repositories.unit_of_work import AbstractUnitOfWork, UnitOfWorkFactory
from qms_workflow.schemas.audit import AuditFilter, AuditTrail
from qms_workflow.schemas.common import Attachment, ErrorInfo
from qms_workflow.schemas.enums import AuditAction, EightDStepKey, ItemType
from qms_workflow.schemas.progress import MilestoneView, Progress
from qms_workflow.schemas.record import RecordFilter
from qms_workflow.schemas.registry import (
    QualityRecord,
    dump_record,
    item_type_of,
    revalidate,
    validate_create,
    validate_field_updates,
)
from qms_workflow.schemas.requests import (
    ActionItemRequest,
    ActionItemUpdateRequest,
    AllowedTransition,
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
    TaskRequest,
    TaskUpdateRequest,
    TransitionRequest,
    VoteRequest,
)

from .base import BaseService
from .blob import BlobStore

logger = logging.getLogger(__name__)

Change = Callable[[QualityRecord, datetime], QualityRecord]


class WorkflowService(BaseService):
    """
    Domain service for the quality nonconformance workflow.

    Parameters:
        uow_factory: builds a unit of work for a tenant
        blob_store: where attachment bytes are kept
        required_approvers: NCR disposition sign-offs needed before close
        default_quorum: MRB quorum when a create request does not set one
        max_attachment_bytes: upload size limit
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        blob_store: BlobStore,
        required_approvers: int = 1,
        default_quorum: int = 3,
        max_attachment_bytes: int = 5 * 1024 * 1024,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        super().__init__(uow_factory, clock)
        self.blob_store = blob_store
        self.required_approvers = required_approvers
        self.default_quorum = default_quorum
        self.max_attachment_bytes = max_attachment_bytes

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    async def _load(self, uow: AbstractUnitOfWork, item_type: ItemType, record_id: str) -> QualityRecord:
        record = await uow.records.get(record_id, item_type)
        if record is None:
            record = await uow.records.get_by_number(item_type, record_id)
        if record is None:
            raise RecordNotFoundError(
                f"{item_type.value.upper()} {record_id} not found",
                {"itemType": item_type.value, "id": record_id},
            )
        return record

    @staticmethod
    def _check_version(record: QualityRecord, expected_version: Optional[int]) -> None:
        if expected_version is None:
            raise RecordValidationError(
                f"expectedVersion is required to change {record.number}",
                {"id": record.id, "field": "expectedVersion"},
            )
        if expected_version != record.version:
            raise StaleWriteConflictError(
                f"{record.number} is at version {record.version}, not {expected_version}",
                current=dump_record(record),
            )

    async def _save(
        self,
        uow: AbstractUnitOfWork,
        before: QualityRecord,
        updated: QualityRecord,
        now: datetime,
    ) -> QualityRecord:
        updated = updated.model_copy(deep=True)
        updated.version = before.version + 1
        updated.updated_at = now
        updated = revalidate(updated)
        await uow.records.replace(updated, before.version)
        return updated

    async def _append_audit(
        self,
        uow: AbstractUnitOfWork,
        *,
        action: AuditAction,
        record: QualityRecord,
        actor_id: str,
        now: datetime,
        before: Optional[Dict[str, Any]],
        reason: Optional[str] = None,
        comments: Optional[str] = None,
        related: Optional[QualityRecord] = None,
    ) -> None:
        entry = build_entry(
            seq=await uow.audit.next_seq(record.id),
            action=action,
            item_type=item_type_of(record),
            item_id=record.id,
            actor_id=actor_id,
            now=now,
            before=before,
            after=dump_record(record),
            reason=reason,
            comments=comments,
            related_item_id=related.id if related is not None else None,
            related_item_type=item_type_of(related) if related is not None else None,
        )
        await uow.audit.append(entry)

    async def _mutate(
        self,
        tenant_id: UUID,
        item_type: ItemType,
        record_id: str,
        actor_id: str,
        action: AuditAction,
        change: Change,
        *,
        expected_version: Optional[int],
        reason: Optional[str] = None,
        comments: Optional[str] = None,
        check_terminal: bool = True,
    ) -> QualityRecord:
        now = self.clock()
        try:
            async with self.uow_factory(tenant_id) as uow:
                before = await self._load(uow, item_type, record_id)
                self._check_version(before, expected_version)
                if check_terminal:
                    ensure_not_terminal(before)
                saved = await self._save(uow, before, change(before, now), now)
                await self._append_audit(
                    uow,
                    action=action,
                    record=saved,
                    actor_id=actor_id,
                    now=now,
                    before=dump_record(before),
                    reason=reason,
                    comments=comments,
                )
        except QualityWorkflowError as exc:
            logger.warning("%s on %s %s rejected: %s %s", action.value, item_type.value, record_id, exc.code, exc)
            raise
        logger.info("%s %s v%d (%s)", item_type.value.upper(), saved.number, saved.version, action.value)
        return saved

    async def _read(self, tenant_id: UUID, item_type: ItemType, record_id: str) -> QualityRecord:
        async with self.uow_factory(tenant_id) as uow:
            return await self._load(uow, item_type, record_id)

    # ------------------------------------------------------------------
    # records
    # ------------------------------------------------------------------

    # PUBLIC_INTERFACE
    async def create_record(self, tenant_id: UUID, item_type: ItemType, payload: Any, actor_id: str) -> QualityRecord:
        """
        Create a record in its initial status and append its `created` audit entry.

        A number is allocated from the per-tenant, per-year sequence unless the
        payload supplies one; a supplied number that is already taken is rejected.
        Allocated numbers skip over values that were supplied earlier.
        """
        create = validate_create(item_type, payload)
        now = self.clock()
        try:
            async with self.uow_factory(tenant_id) as uow:
                number = getattr(create, "number", None)
                if number:
                    if await uow.records.get_by_number(item_type, number) is not None:
                        raise RecordValidationError(f"{number} already exists", {"number": number})
                else:
                    number = await uow.records.next_number(item_type, now.year)
                    while await uow.records.get_by_number(item_type, number) is not None:
                        number = await uow.records.next_number(item_type, now.year)
                record = records.new_record(item_type, create, number, actor_id, now, self.default_quorum)
                await uow.records.add(record)
                await self._append_audit(
                    uow, action=AuditAction.CREATED, record=record, actor_id=actor_id, now=now, before=None
                )
        except QualityWorkflowError as exc:
            logger.warning("create %s rejected: %s %s", item_type.value, exc.code, exc)
            raise
        logger.info("Created %s %s", item_type.value.upper(), record.number)
        return record

    # PUBLIC_INTERFACE
    async def get_record(self, tenant_id: UUID, item_type: ItemType, record_id: str) -> QualityRecord:
        """Fetch a record by id or by its number."""
        return await self._read(tenant_id, item_type, record_id)

    # PUBLIC_INTERFACE
    async def list_records(
        self,
        tenant_id: UUID,
        item_type: Optional[ItemType] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        flt: Optional[RecordFilter] = None,
    ) -> List[QualityRecord]:
        """
        List records newest first, optionally filtered by type, status and a RecordFilter.

        Statuses are checked against the type's state machine when a type is
        given. Without a filter the store pages the rows; with one the rows are
        matched here and paged afterwards.
        """
        flt = flt or RecordFilter()
        if flt.created_from and flt.created_to and flt.created_from > flt.created_to:
            raise RecordValidationError(
                "createdFrom must not be after createdTo",
                {"createdFrom": flt.created_from.isoformat(), "createdTo": flt.created_to.isoformat()},
            )
        if item_type is not None:
            machine = machine_for(item_type)
            for wanted in ([status] if status else []) + flt.statuses:
                machine.parse_status(wanted)
        async with self.uow_factory(tenant_id) as uow:
            if flt.is_empty():
                return await uow.records.list(item_type=item_type, status=status, limit=limit, offset=offset)
            rows = await uow.records.list(item_type=item_type, status=status)
        matched = [r for r in rows if records.matches_filter(r, flt)]
        end = None if limit is None else offset + limit
        return matched[offset:end]

    # PUBLIC_INTERFACE
    async def update_fields(
        self,
        tenant_id: UUID,
        item_type: ItemType,
        record_id: str,
        actor_id: str,
        fields: Dict[str, Any],
        expected_version: int,
    ) -> QualityRecord:
        """Edit descriptive fields. Status and workflow-owned fields are not editable here."""
        resolved = validate_field_updates(item_type, fields)
        return await self._mutate(
            tenant_id,
            item_type,
            record_id,
            actor_id,
            AuditAction.UPDATED,
            lambda r, now: records.apply_field_updates(r, resolved),
            expected_version=expected_version,
        )

    # ------------------------------------------------------------------
    # state machine
    # ------------------------------------------------------------------

    # PUBLIC_INTERFACE
    async def transition(
        self,
        tenant_id: UUID,
        item_type: ItemType,
        record_id: str,
        actor_id: str,
        request: TransitionRequest,
    ) -> QualityRecord:
        """Move a record along one edge of its state machine."""

        def change(record: QualityRecord, now: datetime) -> QualityRecord:
            ctx = TransitionContext(
                actor_id=actor_id,
                now=now,
                reason=request.reason,
                comments=request.comments,
                required_approvers=self.required_approvers,
                disposition=request.disposition,
            )
            return apply_transition(record, request.target_status, ctx)

        return await self._mutate(
            tenant_id,
            item_type,
            record_id,
            actor_id,
            AuditAction.STATUS_CHANGED,
            change,
            expected_version=request.expected_version,
            reason=request.reason,
            comments=request.comments,
            check_terminal=False,
        )

    # PUBLIC_INTERFACE
    async def batch_transition(
        self, tenant_id: UUID, item_type: ItemType, actor_id: str, request: BatchTransitionRequest
    ) -> List[BatchItemResult]:
        """
        Apply one transition to several records.

        Each record runs in its own unit of work, so a rejected record neither
        blocks nor rolls back the others. Results come back in request order.
        """
        results: List[BatchItemResult] = []
        for item in request.items:
            single = TransitionRequest(
                target_status=request.target_status,
                reason=request.reason,
                comments=request.comments,
                expected_version=item.expected_version,
            )
            try:
                saved = await self.transition(tenant_id, item_type, item.record_id, actor_id, single)
            except QualityWorkflowError as exc:
                error = ErrorInfo(type=exc.code, message=exc.message, details=exc.details)
                results.append(BatchItemResult(record_id=item.record_id, ok=False, error=error))
                continue
            results.append(
                BatchItemResult(record_id=item.record_id, ok=True, version=saved.version, status=saved.status.value)
            )
        failed = sum(1 for r in results if not r.ok)
        logger.info(
            "Batch %s -> %s: %d applied, %d rejected",
            item_type.value,
            request.target_status,
            len(results) - failed,
            failed,
        )
        return results

    # PUBLIC_INTERFACE
    async def allowed_transitions(
        self, tenant_id: UUID, item_type: ItemType, record_id: str
    ) -> List[AllowedTransition]:
        """Edges leaving the record's current status."""
        record = await self._read(tenant_id, item_type, record_id)
        return [
            AllowedTransition(
                target_status=t.target.value,
                label=t.label,
                requires_reason=t.requires_reason,
                guarded=t.guard is not None,
            )
            for t in allowed_transitions(item_type, record.status)
        ]

    # ------------------------------------------------------------------
    # MRB board
    # ------------------------------------------------------------------

    # PUBLIC_INTERFACE
    async def add_member(self, tenant_id: UUID, mrb_id: str, actor_id: str, request: MemberRequest) -> QualityRecord:
        return await self._mutate(
            tenant_id,
            ItemType.MRB,
            mrb_id,
            actor_id,
            AuditAction.MEMBER_ADDED,
            lambda r, now: approvals.add_member(r, request.member_id, request.name, request.role, request.is_chair),
            expected_version=request.expected_version,
        )

    # PUBLIC_INTERFACE
    async def cast_vote(self, tenant_id: UUID, mrb_id: str, actor_id: str, request: VoteRequest) -> QualityRecord:
        """Record one board member's vote; exactly one audit entry per accepted vote."""
        return await self._mutate(
            tenant_id,
            ItemType.MRB,
            mrb_id,
            actor_id,
            AuditAction.VOTE_CAST,
            lambda r, now: approvals.cast_vote(r, request.member_id, request.vote, now, request.comment),
            expected_version=request.expected_version,
            comments=request.comment,
        )

    # PUBLIC_INTERFACE
    async def evaluate_quorum(self, tenant_id: UUID, mrb_id: str) -> QuorumView:
        mrb = await self._read(tenant_id, ItemType.MRB, mrb_id)
        return QuorumView.model_validate(approvals.evaluate_quorum(mrb).as_dict())

    # PUBLIC_INTERFACE
    async def add_action_item(
        self, tenant_id: UUID, mrb_id: str, actor_id: str, request: ActionItemRequest
    ) -> QualityRecord:
        return await self._mutate(
            tenant_id,
            ItemType.MRB,
            mrb_id,
            actor_id,
            AuditAction.ACTION_ITEM_ADDED,
            lambda r, now: approvals.add_action_item(r, request.description, request.assigned_to, request.due_date),
            expected_version=request.expected_version,
        )

    # PUBLIC_INTERFACE
    async def update_action_item(
        self, tenant_id: UUID, mrb_id: str, item_id: str, actor_id: str, request: ActionItemUpdateRequest
    ) -> QualityRecord:
        return await self._mutate(
            tenant_id,
            ItemType.MRB,
            mrb_id,
            actor_id,
            AuditAction.ACTION_ITEM_UPDATED,
            lambda r, now: approvals.update_action_item(r, item_id, now, request.status, request.comments),
            expected_version=request.expected_version,
        )

    # ------------------------------------------------------------------
    # dispositions
    # ------------------------------------------------------------------

    # PUBLIC_INTERFACE
    async def set_disposition(
        self, tenant_id: UUID, item_type: ItemType, record_id: str, actor_id: str, request: DispositionRequest
    ) -> QualityRecord:
        """Set the disposition decision of an NCR or an MRB."""
        if item_type == ItemType.NCR:
            setter = approvals.set_ncr_disposition
        elif item_type == ItemType.MRB:
            setter = approvals.set_mrb_disposition
        else:
            raise RecordValidationError(f"{item_type.value} records have no disposition")
        return await self._mutate(
            tenant_id,
            item_type,
            record_id,
            actor_id,
            AuditAction.DISPOSITION_SET,
            lambda r, now: setter(r, request.decision, request.justification, request.conditions),
            expected_version=request.expected_version,
            comments=request.justification,
        )

    # PUBLIC_INTERFACE
    async def approve_disposition(
        self, tenant_id: UUID, ncr_id: str, actor_id: str, request: SignoffRequest
    ) -> QualityRecord:
        """Append one sign-off to an NCR disposition."""
        approver_id = request.approver_id or actor_id
        return await self._mutate(
            tenant_id,
            ItemType.NCR,
            ncr_id,
            actor_id,
            AuditAction.DISPOSITION_APPROVED,
            lambda r, now: approvals.approve_ncr_disposition(
                r, approver_id, now, self.required_approvers, request.name, request.role, request.comment
            ),
            expected_version=request.expected_version,
            comments=request.comment,
        )

    # ------------------------------------------------------------------
    # CAPA 8D
    # ------------------------------------------------------------------

    # PUBLIC_INTERFACE
    async def plan_step(
        self, tenant_id: UUID, capa_id: str, step: EightDStepKey, actor_id: str, request: StepPlanRequest
    ) -> QualityRecord:
        return await self._mutate(
            tenant_id,
            ItemType.CAPA,
            capa_id,
            actor_id,
            AuditAction.STEP_PLANNED,
            lambda r, now: approvals.plan_step(
                r, step, request.description, request.owner, request.due_date, request.team_members
            ),
            expected_version=request.expected_version,
        )

    # PUBLIC_INTERFACE
    async def advance_step(
        self, tenant_id: UUID, capa_id: str, step: EightDStepKey, actor_id: str, request: StepAdvanceRequest
    ) -> QualityRecord:
        return await self._mutate(
            tenant_id,
            ItemType.CAPA,
            capa_id,
            actor_id,
            AuditAction.STEP_UPDATED,
            lambda r, now: approvals.advance_step(r, step, request.status, now, request.comments),
            expected_version=request.expected_version,
            comments=request.comments,
        )

    # ------------------------------------------------------------------
    # SCAR
    # ------------------------------------------------------------------

    # PUBLIC_INTERFACE
    async def record_supplier_response(
        self, tenant_id: UUID, scar_id: str, actor_id: str, request: SupplierResponseRequest
    ) -> QualityRecord:
        return await self._mutate(
            tenant_id,
            ItemType.SCAR,
            scar_id,
            actor_id,
            AuditAction.SUPPLIER_RESPONSE_RECORDED,
            lambda r, now: approvals.record_supplier_response(
                r,
                request.responded_by,
                now,
                request.acknowledgment,
                request.root_cause_analysis,
                request.proposed_actions,
            ),
            expected_version=request.expected_version,
        )

    # PUBLIC_INTERFACE
    async def set_review_status(
        self, tenant_id: UUID, scar_id: str, actor_id: str, request: ReviewRequest
    ) -> QualityRecord:
        return await self._mutate(
            tenant_id,
            ItemType.SCAR,
            scar_id,
            actor_id,
            AuditAction.REVIEW_RECORDED,
            lambda r, now: approvals.set_review_status(r, request.review_status, actor_id, now, request.review_comments),
            expected_version=request.expected_version,
            comments=request.review_comments,
        )

    # PUBLIC_INTERFACE
    async def add_scar_item(self, tenant_id: UUID, scar_id: str, actor_id: str, request: SCARItemRequest) -> QualityRecord:
        return await self._mutate(
            tenant_id,
            ItemType.SCAR,
            scar_id,
            actor_id,
            AuditAction.SCAR_ITEM_ADDED,
            lambda r, now: approvals.add_scar_item(
                r,
                request.kind,
                request.description,
                request.category,
                request.analysis,
                request.responsible,
                request.due_date,
            ),
            expected_version=request.expected_version,
        )

    # PUBLIC_INTERFACE
    async def verify_scar_action(
        self, tenant_id: UUID, scar_id: str, actor_id: str, request: SCARVerifyRequest
    ) -> QualityRecord:
        return await self._mutate(
            tenant_id,
            ItemType.SCAR,
            scar_id,
            actor_id,
            AuditAction.SCAR_ACTION_VERIFIED,
            lambda r, now: approvals.verify_scar_item(
                r, request.kind, request.item_id, now, request.effectiveness_rating
            ),
            expected_version=request.expected_version,
        )

    # ------------------------------------------------------------------
    # linkage
    # ------------------------------------------------------------------

    async def _relink(
        self, tenant_id: UUID, actor_id: str, request: LinkRequest, unlink: bool
    ) -> Tuple[QualityRecord, QualityRecord]:
        action = AuditAction.UNLINKED if unlink else AuditAction.LINKED
        now = self.clock()
        try:
            async with self.uow_factory(tenant_id) as uow:
                parent = await self._load(uow, request.parent_type, request.parent_id)
                child = await self._load(uow, request.child_type, request.child_id)
                self._check_version(parent, request.parent_version)
                self._check_version(child, request.child_version)
                fn = linkage.unlink_records if unlink else linkage.link_records
                new_parent, new_child = fn(parent, child)
                saved_parent = await self._save(uow, parent, new_parent, now)
                saved_child = await self._save(uow, child, new_child, now)
                await self._append_audit(
                    uow,
                    action=action,
                    record=saved_parent,
                    actor_id=actor_id,
                    now=now,
                    before=dump_record(parent),
                    related=saved_child,
                )
        except QualityWorkflowError as exc:
            logger.warning(
                "%s %s %s -> %s %s rejected: %s %s",
                action.value,
                request.parent_type.value,
                request.parent_id,
                request.child_type.value,
                request.child_id,
                exc.code,
                exc,
            )
            raise
        logger.info("%s %s <-> %s", action.value, saved_parent.number, saved_child.number)
        return saved_parent, saved_child

    # PUBLIC_INTERFACE
    async def link(self, tenant_id: UUID, actor_id: str, request: LinkRequest) -> Tuple[QualityRecord, QualityRecord]:
        """
        Link parent -> child, writing both references in one transaction.

        Closed records may still be linked. One audit entry is appended on the
        parent with the child as its related item; the child's trail shows it
        because audit queries include related entries by default.
        """
        return await self._relink(tenant_id, actor_id, request, unlink=False)

    # PUBLIC_INTERFACE
    async def unlink(self, tenant_id: UUID, actor_id: str, request: LinkRequest) -> Tuple[QualityRecord, QualityRecord]:
        """Clear both sides of a link in one transaction."""
        return await self._relink(tenant_id, actor_id, request, unlink=True)

    # PUBLIC_INTERFACE
    async def check_links(self, tenant_id: UUID) -> List[dict]:
        """Report references that are not mirrored on the other side."""
        async with self.uow_factory(tenant_id) as uow:
            everything = await uow.records.list()
        return linkage.find_dangling_links(everything)

    # ------------------------------------------------------------------
    # notes, tasks, attachments
    # ------------------------------------------------------------------

    # PUBLIC_INTERFACE
    async def add_note(
        self,
        tenant_id: UUID,
        item_type: ItemType,
        record_id: str,
        actor_id: str,
        text: str,
        expected_version: int,
    ) -> QualityRecord:
        return await self._mutate(
            tenant_id,
            item_type,
            record_id,
            actor_id,
            AuditAction.NOTE_ADDED,
            lambda r, now: records.add_note(r, actor_id, text, now),
            expected_version=expected_version,
        )

    # PUBLIC_INTERFACE
    async def add_task(
        self, tenant_id: UUID, item_type: ItemType, record_id: str, actor_id: str, request: TaskRequest
    ) -> QualityRecord:
        return await self._mutate(
            tenant_id,
            item_type,
            record_id,
            actor_id,
            AuditAction.TASK_ADDED,
            lambda r, now: records.add_task(r, request.title, request.assignee, request.due_date),
            expected_version=request.expected_version,
        )

    # PUBLIC_INTERFACE
    async def update_task(
        self,
        tenant_id: UUID,
        item_type: ItemType,
        record_id: str,
        task_id: str,
        actor_id: str,
        request: TaskUpdateRequest,
    ) -> QualityRecord:
        return await self._mutate(
            tenant_id,
            item_type,
            record_id,
            actor_id,
            AuditAction.TASK_UPDATED,
            lambda r, now: records.update_task(r, task_id, request.status, now),
            expected_version=request.expected_version,
        )

    # PUBLIC_INTERFACE
    async def add_attachment(
        self,
        tenant_id: UUID,
        item_type: ItemType,
        record_id: str,
        actor_id: str,
        file_name: str,
        data: bytes,
        mime_type: str,
        expected_version: int,
    ) -> QualityRecord:
        """
        Store the bytes in the blob store and add the attachment metadata.

        The record is checked before the upload so a rejected request never
        writes a blob; a blob written for a mutation that later fails is left
        in place.
        """
        if not data:
            raise RecordValidationError("Attachment is empty")
        if len(data) > self.max_attachment_bytes:
            raise RecordValidationError(
                f"Attachment is {len(data)} bytes; the limit is {self.max_attachment_bytes}",
                {"size": len(data), "limit": self.max_attachment_bytes},
            )
        current = await self._read(tenant_id, item_type, record_id)
        self._check_version(current, expected_version)
        ensure_not_terminal(current)

        url = await self.blob_store.upload(file_name, data, mime_type)

        def change(record: QualityRecord, now: datetime) -> QualityRecord:
            attachment = Attachment(
                id=approvals.new_id(),
                file_name=file_name,
                size=len(data),
                mime_type=mime_type,
                storage_url=url,
                uploaded_by=actor_id,
                uploaded_at=now,
            )
            return records.add_attachment(record, attachment)

        return await self._mutate(
            tenant_id,
            item_type,
            record_id,
            actor_id,
            AuditAction.ATTACHMENT_ADDED,
            change,
            expected_version=expected_version,
        )

    # PUBLIC_INTERFACE
    async def remove_attachment(
        self,
        tenant_id: UUID,
        item_type: ItemType,
        record_id: str,
        attachment_id: str,
        actor_id: str,
        expected_version: int,
    ) -> QualityRecord:
        """Remove attachment metadata. The stored bytes are kept."""
        return await self._mutate(
            tenant_id,
            item_type,
            record_id,
            actor_id,
            AuditAction.ATTACHMENT_REMOVED,
            lambda r, now: records.remove_attachment(r, attachment_id),
            expected_version=expected_version,
        )

    # PUBLIC_INTERFACE
    async def download_attachment(
        self, tenant_id: UUID, item_type: ItemType, record_id: str, attachment_id: str
    ) -> Tuple[Attachment, bytes]:
        record = await self._read(tenant_id, item_type, record_id)
        attachment = records.find_attachment(record, attachment_id)
        return attachment, await self.blob_store.download(attachment.storage_url)

    # ------------------------------------------------------------------
    # read side
    # ------------------------------------------------------------------

    # PUBLIC_INTERFACE
    async def query_audit_trail(
        self, tenant_id: UUID, item_type: ItemType, record_id: str, flt: Optional[AuditFilter] = None
    ) -> AuditTrail:
        """Audit entries for a record, oldest first, filtered and paged."""
        flt = flt or AuditFilter()
        async with self.uow_factory(tenant_id) as uow:
            record = await self._load(uow, item_type, record_id)
            entries = await uow.audit.list_for_item(record.id, flt.include_related)
        entries.sort(key=lambda e: (e.timestamp, e.item_id != record.id, e.seq))
        total, page = filter_entries(entries, flt)
        return AuditTrail(item_id=record.id, total=total, entries=page)

    # PUBLIC_INTERFACE
    def get_progress(self, item_type: Any, status: Any) -> Progress:
        """Display progress for a status. Never raises."""
        return progress(item_type, status)

    # PUBLIC_INTERFACE
    async def get_milestones(self, tenant_id: UUID, item_type: ItemType, record_id: str) -> MilestoneView:
        record = await self._read(tenant_id, item_type, record_id)
        return milestones(record)
