"""
HTTP surface tests through FastAPI's TestClient.

The workflow service dependency is overridden with one backed by a fresh
in-memory store per test, so no database or blob directory is touched.
"""

import json

import pytest
from fastapi.testclient import TestClient

from qms_workflow.api.main import app
from qms_workflow.core.deps import get_workflow_service
from qms_workflow.repositories.memory import InMemoryQualityDatabase
from qms_workflow.repositories.unit_of_work import memory_uow_factory
from qms_workflow.services.blob import InMemoryBlobStore
from qms_workflow.services.workflow import WorkflowService

from .conftest import TENANT_A
from .factories import SteppingClock, capa_payload, ncr_payload

HEADERS = {"X-Tenant-ID": str(TENANT_A), "X-Actor-ID": "qe-alice"}
BASE = "/api/v1/quality"


@pytest.fixture
def client():
    service = WorkflowService(
        memory_uow_factory(InMemoryQualityDatabase()),
        InMemoryBlobStore(),
        required_approvers=1,
        default_quorum=3,
        max_attachment_bytes=1024,
        clock=SteppingClock(),
    )
    app.dependency_overrides[get_workflow_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_ncr(client, **overrides):
    resp = client.post(f"{BASE}/ncr", json=ncr_payload(**overrides), headers=HEADERS)
    assert resp.status_code == 201, resp.text
    return resp.json()


def transition(client, item_type, record_id, target, version, **extra):
    body = {"targetStatus": target, "expectedVersion": version}
    body.update(extra)
    return client.post(f"{BASE}/{item_type}/{record_id}/transition", json=body, headers=HEADERS)


class TestHealth:

    def test_health(self, client):
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["message"] == "Healthy"
        assert "X-Correlation-ID" in resp.headers

    def test_readiness_memory_store(self, client):
        resp = client.get("/api/v1/health/ready")
        assert resp.status_code == 200
        assert resp.json() == {"ready": True, "store_backend": "memory", "detail": None}

    def test_correlation_id_is_echoed(self, client):
        resp = client.get("/api/v1/health", headers={"X-Correlation-ID": "corr-123"})
        assert resp.headers["X-Correlation-ID"] == "corr-123"

    def test_unknown_route_uses_error_envelope(self, client):
        resp = client.get("/api/v1/nope", headers=HEADERS)
        assert resp.status_code == 404
        assert resp.json()["error"]["type"] == "http_error"
        assert resp.json()["path"] == "/api/v1/nope"

    def test_tenant_header_required(self, client):
        resp = client.get(f"{BASE}/ncr", headers={"X-Actor-ID": "qe-alice"})
        assert resp.status_code == 400
        assert resp.json()["error"]["type"] == "http_error"

    def test_actor_header_required_for_writes(self, client):
        resp = client.post(f"{BASE}/ncr", json=ncr_payload(), headers={"X-Tenant-ID": str(TENANT_A)})
        assert resp.status_code == 400


class TestRecordsApi:

    def test_create_and_fetch(self, client):
        ncr = create_ncr(client)
        assert ncr["number"] == "NCR-2026-0001"
        assert ncr["status"] == "draft"
        assert ncr["partNumber"] == "BRK-100"

        resp = client.get(f"{BASE}/ncr/{ncr['number']}", headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json()["id"] == ncr["id"]

        listed = client.get(f"{BASE}/ncr", headers=HEADERS).json()
        assert [r["id"] for r in listed] == [ncr["id"]]

    def test_missing_required_field(self, client):
        payload = ncr_payload()
        del payload["severity"]
        resp = client.post(f"{BASE}/ncr", json=payload, headers=HEADERS)
        assert resp.status_code == 422
        assert resp.json()["error"]["type"] == "ValidationError"

    def test_unknown_record(self, client):
        resp = client.get(f"{BASE}/capa/CAPA-2026-0099", headers=HEADERS)
        assert resp.status_code == 404
        assert resp.json()["error"]["type"] == "NotFound"

    def test_patch_fields(self, client):
        ncr = create_ncr(client)
        resp = client.patch(
            f"{BASE}/ncr/{ncr['id']}",
            json={"fields": {"lotNumber": "L-78"}, "expectedVersion": 1},
            headers=HEADERS,
        )
        assert resp.status_code == 200
        assert resp.json()["lotNumber"] == "L-78"
        assert resp.json()["version"] == 2

    def test_schema_description(self, client):
        fields = client.get(f"{BASE}/schemas/scar").json()
        by_name = {f["name"]: f for f in fields}
        assert by_name["supplierName"]["required"] is True
        assert by_name["status"]["editable"] is False

    def test_attachment_upload_and_download(self, client):
        ncr = create_ncr(client)
        resp = client.post(
            f"{BASE}/ncr/{ncr['id']}/attachments",
            files={"file": ("report.txt", b"measurements", "text/plain")},
            data={"expectedVersion": "1"},
            headers=HEADERS,
        )
        assert resp.status_code == 201, resp.text
        attachment = resp.json()["attachments"][0]
        assert attachment["size"] == len(b"measurements")

        resp = client.get(f"{BASE}/ncr/{ncr['id']}/attachments/{attachment['id']}", headers=HEADERS)
        assert resp.status_code == 200
        assert resp.content == b"measurements"
        assert "report.txt" in resp.headers["content-disposition"]

    def test_oversized_attachment(self, client):
        ncr = create_ncr(client)
        resp = client.post(
            f"{BASE}/ncr/{ncr['id']}/attachments",
            files={"file": ("big.bin", b"x" * 2048, "application/octet-stream")},
            data={"expectedVersion": "1"},
            headers=HEADERS,
        )
        assert resp.status_code == 422


class TestWorkflowApi:

    def test_transitions_and_errors(self, client):
        ncr = create_ncr(client)
        resp = transition(client, "ncr", ncr["id"], "closed", 1, reason="Skip ahead")
        assert resp.status_code == 409
        body = resp.json()
        assert body["error"]["type"] == "InvalidTransition"
        assert body["error"]["details"]["allowed"] == ["open"]

        resp = transition(client, "ncr", ncr["id"], "open", 1)
        assert resp.status_code == 200
        assert resp.json()["version"] == 2

        resp = transition(client, "ncr", ncr["id"], "under_review", 1)
        assert resp.status_code == 409
        assert resp.json()["error"]["type"] == "StaleWriteConflict"
        assert resp.json()["error"]["details"]["current"]["version"] == 2

        allowed = client.get(f"{BASE}/ncr/{ncr['id']}/transitions", headers=HEADERS).json()
        assert [t["targetStatus"] for t in allowed] == ["under_review"]

    def test_guard_failure_reports_reason(self, client):
        capa = client.post(f"{BASE}/capa", json=capa_payload(), headers=HEADERS).json()
        for version, target in enumerate(("open", "in_progress", "pending_review", "under_investigation"), start=1):
            assert transition(client, "capa", capa["id"], target, version).status_code == 200
        resp = transition(client, "capa", capa["id"], "implementing", 5)
        assert resp.status_code == 409
        assert resp.json()["error"]["type"] == "GuardFailed"
        assert resp.json()["error"]["details"]["reason"] == "StepIncomplete"

    def test_board_vote_and_quorum(self, client):
        mrb = client.post(
            f"{BASE}/mrb",
            json={
                "title": "Lot L-77",
                "type": "material",
                "quorumRequired": 1,
                "members": [{"memberId": "m1", "name": "Quality Lead", "isChair": True}],
            },
            headers=HEADERS,
        ).json()
        assert transition(client, "mrb", mrb["id"], "in_review", 1).status_code == 200
        resp = client.post(
            f"{BASE}/mrb/{mrb['id']}/votes",
            json={"memberId": "m1", "vote": "reject", "expectedVersion": 2},
            headers=HEADERS,
        )
        assert resp.status_code == 200
        quorum = client.get(f"{BASE}/mrb/{mrb['id']}/quorum", headers=HEADERS).json()
        assert quorum["quorumMet"] is True
        assert quorum["outcome"] == "rejected"

        resp = client.post(
            f"{BASE}/mrb/{mrb['id']}/votes",
            json={"memberId": "m9", "vote": "approve", "expectedVersion": 3},
            headers=HEADERS,
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["type"] == "NotAMember"

    def test_link_and_check(self, client):
        ncr = create_ncr(client)
        capa = client.post(f"{BASE}/capa", json=capa_payload(), headers=HEADERS).json()
        resp = client.post(
            f"{BASE}/links",
            json={
                "parentType": "ncr",
                "parentId": ncr["number"],
                "childType": "capa",
                "childId": capa["id"],
                "parentVersion": 1,
                "childVersion": 1,
            },
            headers=HEADERS,
        )
        assert resp.status_code == 200
        assert resp.json()["parent"]["capaNumber"] == capa["number"]
        assert resp.json()["child"]["sourceNCRNumber"] == ncr["number"]
        assert client.get(f"{BASE}/links/check", headers=HEADERS).json() == []

        resp = client.post(
            f"{BASE}/links",
            json={
                "parentType": "capa",
                "parentId": capa["id"],
                "childType": "ncr",
                "childId": ncr["id"],
                "parentVersion": 2,
                "childVersion": 2,
            },
            headers=HEADERS,
        )
        assert resp.status_code == 422


class TestExpectedVersionApi:

    def test_mutations_without_version_are_rejected(self, client):
        ncr = create_ncr(client)
        responses = [
            client.post(f"{BASE}/ncr/{ncr['id']}/transition", json={"targetStatus": "open"}, headers=HEADERS),
            client.patch(f"{BASE}/ncr/{ncr['id']}", json={"fields": {"lotNumber": "L-78"}}, headers=HEADERS),
            client.post(f"{BASE}/ncr/{ncr['id']}/notes", json={"text": "No version"}, headers=HEADERS),
            client.post(
                f"{BASE}/ncr/{ncr['id']}/attachments",
                files={"file": ("report.txt", b"measurements", "text/plain")},
                headers=HEADERS,
            ),
            client.post(
                f"{BASE}/links",
                json={"parentType": "ncr", "parentId": ncr["id"], "childType": "capa", "childId": "x"},
                headers=HEADERS,
            ),
        ]
        assert [r.status_code for r in responses] == [422] * len(responses)
        assert {r.json()["error"]["type"] for r in responses} == {"validation_error"}

        stored = client.get(f"{BASE}/ncr/{ncr['id']}", headers=HEADERS).json()
        assert (stored["version"], stored["status"], stored["notes"]) == (1, "draft", [])

    def test_attachment_removal_needs_version(self, client):
        ncr = create_ncr(client)
        added = client.post(
            f"{BASE}/ncr/{ncr['id']}/attachments",
            files={"file": ("report.txt", b"measurements", "text/plain")},
            data={"expectedVersion": "1"},
            headers=HEADERS,
        ).json()
        url = f"{BASE}/ncr/{ncr['id']}/attachments/{added['attachments'][0]['id']}"
        assert client.delete(url, headers=HEADERS).status_code == 422
        resp = client.delete(url, params={"expectedVersion": 2}, headers=HEADERS)
        assert resp.status_code == 200
        assert resp.json()["attachments"] == []


class TestListFiltersApi:

    def test_search_and_multi_select(self, client):
        porosity = create_ncr(client)
        burr = create_ncr(client, title="Burr on flange", description="Sharp edge", severity="minor")
        label = create_ncr(client, title="Missing label", description="Carton unlabelled", severity="critical")
        transition(client, "ncr", burr["id"], "open", 1)

        def ids(**params):
            resp = client.get(f"{BASE}/ncr", params=params, headers=HEADERS)
            assert resp.status_code == 200, resp.text
            return [r["id"] for r in resp.json()]

        assert ids(search="flange") == [burr["id"]]
        assert ids(search=label["number"]) == [label["id"]]
        assert ids(severity=["major", "critical"]) == [label["id"], porosity["id"]]
        assert ids(status=["open"]) == [burr["id"]]
        assert ids(status=["draft", "open"], severity="minor") == [burr["id"]]
        assert ids(createdFrom="2026-03-02", createdTo="2026-03-02", limit=1) == [label["id"]]
        assert ids(createdTo="2026-03-01") == []

    def test_bad_filters(self, client):
        resp = client.get(f"{BASE}/ncr", params={"status": "approved"}, headers=HEADERS)
        assert resp.status_code == 422
        resp = client.get(
            f"{BASE}/ncr", params={"createdFrom": "2026-03-05", "createdTo": "2026-03-01"}, headers=HEADERS
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["type"] == "ValidationError"
        resp = client.get(f"{BASE}/ncr", params={"createdFrom": "March"}, headers=HEADERS)
        assert resp.status_code == 422
        assert resp.json()["error"]["type"] == "validation_error"


class TestBatchTransitionApi:

    def test_results_per_record(self, client):
        first = create_ncr(client)
        second = create_ncr(client)
        resp = client.post(
            f"{BASE}/ncr/batch/transition",
            json={
                "targetStatus": "open",
                "items": [
                    {"recordId": first["id"], "expectedVersion": 1},
                    {"recordId": second["id"], "expectedVersion": 4},
                    {"recordId": "NCR-2026-0042", "expectedVersion": 1},
                ],
            },
            headers=HEADERS,
        )
        assert resp.status_code == 200, resp.text
        results = resp.json()
        assert [r["ok"] for r in results] == [True, False, False]
        assert (results[0]["version"], results[0]["status"]) == (2, "open")
        assert [r["error"]["type"] for r in results[1:]] == ["StaleWriteConflict", "NotFound"]

        trail = client.get(f"{BASE}/ncr/{first['id']}/audit", headers=HEADERS).json()
        assert [e["action"] for e in trail["entries"]] == ["created", "status_changed"]
        trail = client.get(f"{BASE}/ncr/{second['id']}/audit", headers=HEADERS).json()
        assert trail["total"] == 1

    def test_empty_batch_is_rejected(self, client):
        resp = client.post(
            f"{BASE}/ncr/batch/transition", json={"targetStatus": "open", "items": []}, headers=HEADERS
        )
        assert resp.status_code == 422


class TestReadSideApi:

    def test_audit_trail(self, client):
        ncr = create_ncr(client)
        transition(client, "ncr", ncr["id"], "open", 1, comments="Triage complete")
        trail = client.get(f"{BASE}/ncr/{ncr['id']}/audit", headers=HEADERS).json()
        assert trail["itemId"] == ncr["id"]
        assert trail["total"] == 2
        last = trail["entries"][-1]
        assert last["actorId"] == "qe-alice"
        assert last["action"] == "status_changed"
        assert last["details"]["comments"] == "Triage complete"
        assert last["details"]["changes"][0] == {
            "field": "status",
            "kind": "status",
            "before": "draft",
            "after": "open",
        }

        only_created = client.get(
            f"{BASE}/ncr/{ncr['id']}/audit", params={"actions": "created"}, headers=HEADERS
        ).json()
        assert only_created["total"] == 1

    def test_progress(self, client):
        resp = client.get(f"{BASE}/progress", params={"itemType": "ncr", "status": "closed"})
        assert resp.json() == {"stepIndex": 3, "totalSteps": 3, "percent": 100}
        resp = client.get(f"{BASE}/progress", params={"itemType": "ncr", "status": "bogus"})
        assert resp.json()["percent"] == 0

    def test_milestones(self, client):
        ncr = create_ncr(client)
        view = client.get(f"{BASE}/ncr/{ncr['id']}/milestones", headers=HEADERS).json()
        assert view["currentMilestoneId"] == "created"
        assert view["progress"]["percent"] == 0

    def test_register_export(self, client):
        ncr = create_ncr(client)
        resp = client.get("/api/v1/reports/quality-register", headers=HEADERS)
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        lines = resp.text.strip().splitlines()
        assert lines[0].startswith("item_type,number,title,status")
        assert lines[1].startswith(f"ncr,{ncr['number']},")

    def test_audit_export(self, client):
        ncr = create_ncr(client)
        resp = client.get(f"/api/v1/reports/audit-trail/ncr/{ncr['id']}", headers=HEADERS)
        assert resp.status_code == 200
        assert "audit_trail_NCR-2026-0001.csv" in resp.headers["content-disposition"]
        assert resp.text.splitlines()[1].startswith("1,")

    def test_register_export_xlsx(self, client):
        create_ncr(client)
        resp = client.get("/api/v1/reports/quality-register", params={"format": "xlsx"}, headers=HEADERS)
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/vnd.openxmlformats")
        assert resp.content[:2] == b"PK"

    def test_unknown_export_format(self, client):
        resp = client.get("/api/v1/reports/quality-register", params={"format": "docx"}, headers=HEADERS)
        assert resp.status_code == 422
        assert resp.json()["error"]["type"] == "validation_error"


class TestOpenApiExport:

    def test_writes_document(self, tmp_path):
        from qms_workflow.api.generate_openapi import write_openapi

        path = write_openapi(str(tmp_path / "interfaces"))
        with open(path) as f:
            doc = json.load(f)
        assert "/api/v1/quality/{item_type}/{record_id}/transition" in doc["paths"]
        assert set(doc["x-required-headers"]) == {"X-Tenant-ID", "X-Actor-ID"}
