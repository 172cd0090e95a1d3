"""
Demo data for the quality workflow.

Seeds one linked set for the configured seed tenant:
- NCR for an out-of-tolerance bore, moved to pending_disposition
- MRB with a three-member board (one chair), linked to the NCR
- CAPA opened from the NCR with D1 planned
- SCAR issued to the supplier of the affected lot

Everything goes through WorkflowService, so the demo records carry a full audit
trail. Seeding is skipped when the tenant already has records.

Usage:
  python -m qms_workflow.db.run_migrations upgrade head
  python -m qms_workflow.db.seed
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional
from uuid import UUID

from qms_workflow.core.settings import get_app_settings
from qms_workflow.schemas.enums import EightDStepKey, ItemType
from qms_workflow.schemas.requests import LinkRequest, MemberRequest, StepPlanRequest, TransitionRequest
from qms_workflow.services.workflow import WorkflowService

logger = logging.getLogger(__name__)

SEED_ACTOR = "seed"


def _link_request(ncr, child_type: ItemType, child) -> LinkRequest:
    return LinkRequest(
        parent_type=ItemType.NCR,
        parent_id=ncr.id,
        child_type=child_type,
        child_id=child.id,
        parent_version=ncr.version,
        child_version=child.version,
    )


# PUBLIC_INTERFACE
async def seed_demo_records(service: WorkflowService, tenant_id: Optional[UUID] = None) -> bool:
    """
    Create the demo NCR/MRB/CAPA/SCAR set.

    Returns:
        True when records were created, False when the tenant already had data.
    """
    tenant_id = tenant_id or get_app_settings().SEED_TENANT_ID
    if await service.list_records(tenant_id, limit=1):
        logger.info("Tenant %s already has quality records; skipping seed", tenant_id)
        return False

    ncr = await service.create_record(
        tenant_id,
        ItemType.NCR,
        {
            "title": "Bore diameter out of tolerance on housing HX-220",
            "description": "CMM inspection found bore at 25.08 mm against 25.00 +/- 0.05 mm.",
            "type": "product",
            "severity": "major",
            "area": "Machining",
            "defectCode": "DIM-001",
            "partNumber": "HX-220",
            "lotNumber": "L-2024-118",
            "quantityAffected": 42,
        },
        SEED_ACTOR,
    )
    for target in ("open", "under_review", "pending_disposition"):
        ncr = await service.transition(
            tenant_id,
            ItemType.NCR,
            ncr.id,
            SEED_ACTOR,
            TransitionRequest(target_status=target, expected_version=ncr.version),
        )

    mrb = await service.create_record(
        tenant_id,
        ItemType.MRB,
        {
            "title": "Disposition of HX-220 lot L-2024-118",
            "type": "component",
            "area": "Machining",
            "severity": "major",
            "partNumber": "HX-220",
            "lotNumber": "L-2024-118",
            "quantity": 42,
            "unit": "EA",
            "quorumRequired": 3,
        },
        SEED_ACTOR,
    )
    for member_id, name, role, chair in (
        ("qe-lead", "Quality Engineering Lead", "Quality", True),
        ("mfg-eng", "Manufacturing Engineer", "Manufacturing", False),
        ("sqe", "Supplier Quality Engineer", "Supply Chain", False),
    ):
        mrb = await service.add_member(
            tenant_id,
            mrb.id,
            SEED_ACTOR,
            MemberRequest(
                member_id=member_id, name=name, role=role, is_chair=chair, expected_version=mrb.version
            ),
        )
    ncr, mrb = await service.link(tenant_id, SEED_ACTOR, _link_request(ncr, ItemType.MRB, mrb))

    capa = await service.create_record(
        tenant_id,
        ItemType.CAPA,
        {
            "title": "Prevent bore drift on HX-220 boring operation",
            "type": "corrective",
            "priority": "high",
            "area": "Machining",
            "rootCauseAnalysisMethod": "5-why",
        },
        SEED_ACTOR,
    )
    capa = await service.transition(
        tenant_id,
        ItemType.CAPA,
        capa.id,
        SEED_ACTOR,
        TransitionRequest(target_status="open", expected_version=capa.version),
    )
    capa = await service.plan_step(
        tenant_id,
        capa.id,
        EightDStepKey.D1,
        SEED_ACTOR,
        StepPlanRequest(
            description="Form cross-functional team", owner="qe-lead", expected_version=capa.version
        ),
    )
    ncr, capa = await service.link(tenant_id, SEED_ACTOR, _link_request(ncr, ItemType.CAPA, capa))

    scar = await service.create_record(
        tenant_id,
        ItemType.SCAR,
        {
            "title": "Casting porosity contributing to bore drift",
            "supplierId": "SUP-0042",
            "supplierName": "Precision Castings Ltd",
            "partNumber": "HX-220",
            "lotNumber": "L-2024-118",
            "defectQuantity": 42,
        },
        SEED_ACTOR,
    )
    scar = await service.transition(
        tenant_id,
        ItemType.SCAR,
        scar.id,
        SEED_ACTOR,
        TransitionRequest(target_status="issued", expected_version=scar.version),
    )
    ncr, scar = await service.link(tenant_id, SEED_ACTOR, _link_request(ncr, ItemType.SCAR, scar))
    logger.info("Seeded demo records %s, %s, %s, %s", ncr.number, mrb.number, capa.number, scar.number)
    return True


async def _seed_from_settings() -> None:
    from qms_workflow.db.session import dispose_engine, get_session_maker
    from qms_workflow.repositories.unit_of_work import sql_uow_factory
    from qms_workflow.services.blob import LocalBlobStore

    settings = get_app_settings()
    if settings.STORE_BACKEND != "postgres":
        logger.warning("STORE_BACKEND=%s keeps no data between processes; nothing to seed", settings.STORE_BACKEND)
        return
    service = WorkflowService(
        sql_uow_factory(get_session_maker()),
        LocalBlobStore(settings.BLOB_STORAGE_ROOT),
        required_approvers=settings.NCR_REQUIRED_APPROVERS,
        default_quorum=settings.MRB_DEFAULT_QUORUM,
        max_attachment_bytes=settings.MAX_ATTACHMENT_BYTES,
    )
    try:
        await seed_demo_records(service, settings.SEED_TENANT_ID)
    finally:
        await dispose_engine()


# PUBLIC_INTERFACE
def main() -> None:
    """Entrypoint to run the asynchronous seeding."""
    asyncio.run(_seed_from_settings())


if __name__ == "__main__":
    main()
