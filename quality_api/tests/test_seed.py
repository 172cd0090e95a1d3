import pytest

from qms_workflow.db.seed import SEED_ACTOR, seed_demo_records
from qms_workflow.schemas.enums import ItemType, NCRStatus


class TestSeedDemoRecords:

    @pytest.mark.asyncio
    async def test_creates_linked_set(self, service, tenant_id):
        assert await seed_demo_records(service, tenant_id) is True

        records = {r.number.split("-")[0]: r for r in await service.list_records(tenant_id)}
        assert sorted(records) == ["CAPA", "MRB", "NCR", "SCAR"]

        ncr = records["NCR"]
        assert ncr.status == NCRStatus.PENDING_DISPOSITION
        assert ncr.mrb_number == records["MRB"].number
        assert ncr.capa_number == records["CAPA"].number
        assert ncr.scar_number == records["SCAR"].number
        assert len(records["MRB"].members) == 3
        assert await service.check_links(tenant_id) == []

    @pytest.mark.asyncio
    async def test_seeded_records_have_audit_trail(self, service, tenant_id):
        await seed_demo_records(service, tenant_id)
        ncr = (await service.list_records(tenant_id, ItemType.NCR))[0]
        trail = await service.query_audit_trail(tenant_id, ItemType.NCR, ncr.id)
        assert trail.total >= 4
        assert {e.actor_id for e in trail.entries} == {SEED_ACTOR}

    @pytest.mark.asyncio
    async def test_second_run_is_a_no_op(self, service, tenant_id, other_tenant_id):
        await seed_demo_records(service, tenant_id)
        assert await seed_demo_records(service, tenant_id) is False
        assert len(await service.list_records(tenant_id)) == 4
        assert await seed_demo_records(service, other_tenant_id) is True
