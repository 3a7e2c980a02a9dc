"""
HTTP mapping tests.

Drives the FastAPI app through TestClient with the store dependency pointed
at a fresh in-memory store.
"""

import pytest
from fastapi.testclient import TestClient

from assetflow.api.deps import get_store_dep
from assetflow.main import app
from assetflow.utils.health import degraded_signal

API = "/api/v1"

REQUESTER = {"X-User-Id": "u-requester", "X-User-Name": "Rita Requester", "X-User-Roles": "operator"}
APPROVER = {"X-User-Id": "u-approver", "X-User-Name": "Alex Approver", "X-User-Roles": "approver"}
OUTSIDER = {"X-User-Id": "u-outsider", "X-User-Roles": "viewer"}


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store_dep] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()


def _submit(client, asset_id="SRV-001", workflow_type="maintenance", **extra):
    body = {"assetId": asset_id, "type": workflow_type, "reason": "Disk replacement"}
    body.update(extra)
    return client.post(f"{API}/workflows", json=body, headers=REQUESTER)


class TestIdentity:

    def test_missing_identity_is_401(self, client):
        response = client.get(f"{API}/workflows")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTHENTICATION_ERROR"

    def test_health_needs_no_identity(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["store"]["backend"] == "memory"


class TestWorkflowRoutes:

    def test_submit_returns_camel_case_resource(self, client, seeded_asset):
        response = _submit(client, priority="high")

        assert response.status_code == 201
        body = response.json()
        assert body["id"].startswith("WF-")
        assert body["type"] == "maintenance"
        assert body["status"] == "pending"
        assert body["assetId"] == "SRV-001"
        assert body["assetName"] == "Web Server 01"
        assert body["requestedChange"] == {"kind": "maintenance", "status": "maintenance"}
        assert body["requesterId"] == "u-requester"
        assert body["requesterName"] == "Rita Requester"
        assert body["priority"] == "high"
        assert body["approverId"] is None
        assert body["decidedAt"] is None
        assert body["approvedAt"] is None
        assert "createdAt" in body and "updatedAt" in body

    def test_second_submit_is_409_locked(self, client, seeded_asset):
        first = _submit(client).json()

        response = _submit(client, workflow_type="status-change")
        assert response.status_code == 409
        error = response.json()["error"]
        assert error["code"] == "ASSET_LOCKED"
        assert error["details"]["workflow_id"] == first["id"]

    def test_unknown_asset_is_404(self, client):
        response = _submit(client, asset_id="SRV-404")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ASSET_NOT_FOUND"

    def test_mismatched_change_is_400(self, client, seeded_asset):
        response = _submit(client, requestedChange={"kind": "decommission"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_unknown_change_kind_is_400(self, client, seeded_asset):
        response = _submit(client, requestedChange={"kind": "teleport"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_approve(self, client, seeded_asset):
        workflow_id = _submit(client).json()["id"]

        response = client.put(
            f"{API}/workflows/{workflow_id}/approve", json={"comments": "Go"}, headers=APPROVER
        )

        assert response.status_code == 200
        body = response.json()
        assert body["asset"]["id"] == "SRV-001"
        assert body["asset"]["status"] == "maintenance"
        assert body["asset"]["activeWorkflowId"] is None
        assert body["workflow"]["status"] == "approved"
        assert body["workflow"]["approverId"] == "u-approver"
        assert body["workflow"]["comments"] == "Go"
        assert body["workflow"]["approvedAt"] == body["workflow"]["decidedAt"]
        assert body["workflow"]["decidedAt"] is not None

    def test_reject_without_body(self, client, seeded_asset):
        workflow_id = _submit(client).json()["id"]

        response = client.put(f"{API}/workflows/{workflow_id}/reject", headers=APPROVER)

        assert response.status_code == 200
        body = response.json()
        assert body["asset"]["status"] == "online"
        assert body["workflow"]["status"] == "rejected"
        assert body["workflow"]["approvedAt"] is None
        assert body["workflow"]["decidedAt"] is not None

    def test_second_decision_is_409_invalid_state(self, client, seeded_asset):
        workflow_id = _submit(client).json()["id"]
        client.put(f"{API}/workflows/{workflow_id}/approve", headers=APPROVER)

        response = client.put(f"{API}/workflows/{workflow_id}/reject", headers=APPROVER)
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INVALID_STATE"

    def test_decision_without_role_is_403(self, client, seeded_asset):
        workflow_id = _submit(client).json()["id"]
        response = client.put(f"{API}/workflows/{workflow_id}/approve", headers=OUTSIDER)
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTHORIZATION_ERROR"

    def test_unknown_workflow_is_404(self, client):
        response = client.get(f"{API}/workflows/WF-000000000000", headers=REQUESTER)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "WORKFLOW_NOT_FOUND"

    def test_listing_pending_and_stats(self, client, make_asset):
        make_asset("SRV-001")
        make_asset("SRV-002")
        decided = _submit(client, asset_id="SRV-001").json()["id"]
        client.put(f"{API}/workflows/{decided}/approve", headers=APPROVER)
        pending = _submit(client, asset_id="SRV-002", workflow_type="decommission").json()["id"]

        body = client.get(f"{API}/workflows/pending", headers=APPROVER).json()
        assert [w["id"] for w in body["items"]] == [pending]
        assert body["total"] == 1

        body = client.get(f"{API}/workflows", params={"status": "approved"}, headers=REQUESTER).json()
        assert [w["id"] for w in body["items"]] == [decided]

        body = client.get(f"{API}/workflows", params={"assetId": "SRV-002"}, headers=REQUESTER).json()
        assert body["total"] == 1
        assert body["pageSize"] == 20

        stats = client.get(f"{API}/workflows/stats", headers=REQUESTER).json()
        assert stats["byStatus"] == {"pending": 1, "approved": 1, "rejected": 0}
        assert stats["byType"]["maintenance"] == 1
        assert stats["byType"]["decommission"] == 1

        response = client.get(f"{API}/workflows/{pending}", headers=REQUESTER)
        assert response.json()["type"] == "decommission"


class TestAssetRoutes:

    def test_register_with_onboarding(self, client):
        response = client.post(
            f"{API}/assets",
            json={"name": "Edge Router", "type": "network", "location": "Branch 7", "ipAddress": "10.0.0.1"},
            headers=REQUESTER
        )

        assert response.status_code == 201
        body = response.json()
        assert body["asset"]["id"] == "NET-001"
        assert body["asset"]["status"] == "offline"
        assert body["asset"]["ipAddress"] == "10.0.0.1"
        assert body["workflow"]["type"] == "onboarding"
        assert body["asset"]["activeWorkflowId"] == body["workflow"]["id"]

        approved = client.put(
            f"{API}/workflows/{body['workflow']['id']}/approve", headers=APPROVER
        ).json()
        assert approved["asset"]["status"] == "online"
        assert approved["asset"]["onboardedAt"] is not None

    def test_register_duplicate_id_is_409(self, client, seeded_asset):
        response = client.post(
            f"{API}/assets", json={"id": "SRV-001", "name": "Clash", "type": "server"}, headers=REQUESTER
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ALREADY_EXISTS"

    def test_register_invalid_type_is_400(self, client):
        response = client.post(f"{API}/assets", json={"name": "X", "type": "toaster"}, headers=REQUESTER)
        assert response.status_code == 400

    def test_delete_requests_decommission(self, client, seeded_asset):
        response = client.delete(f"{API}/assets/SRV-001", headers=REQUESTER)

        assert response.status_code == 202
        body = response.json()
        assert body["type"] == "decommission"
        assert body["status"] == "pending"
        assert body["requestedChange"]["status"] == "decommissioned"

        asset = client.get(f"{API}/assets/SRV-001", headers=REQUESTER)
        assert asset.status_code == 200
        assert asset.json()["status"] == "online"
        assert asset.json()["activeWorkflowId"] == body["id"]

    def test_maintenance_sugar_and_illegal_repeat(self, client, seeded_asset):
        response = client.post(
            f"{API}/assets/SRV-001/maintenance", json={"reason": "Firmware"}, headers=REQUESTER
        )
        assert response.status_code == 201
        client.put(f"{API}/workflows/{response.json()['id']}/approve", headers=APPROVER)

        response = client.post(f"{API}/assets/SRV-001/maintenance", json={}, headers=REQUESTER)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "ILLEGAL_TRANSITION"

    def test_status_change_sugar(self, client, seeded_asset):
        response = client.post(
            f"{API}/assets/SRV-001/status-change", json={"status": "offline"}, headers=REQUESTER
        )
        assert response.status_code == 201
        assert response.json()["requestedChange"] == {"kind": "status-change", "status": "offline"}

    def test_status_change_rejects_maintenance(self, client, seeded_asset):
        response = client.post(
            f"{API}/assets/SRV-001/status-change", json={"status": "maintenance"}, headers=REQUESTER
        )
        assert response.status_code == 400

    def test_no_direct_status_write(self, client, seeded_asset):
        response = client.put(f"{API}/assets/SRV-001", json={"status": "offline"}, headers=REQUESTER)
        assert response.status_code == 405

    def test_listing_and_stats(self, client, make_asset):
        make_asset("SRV-001")
        make_asset("NET-001", asset_type="network", name="Core Switch")
        _submit(client, asset_id="SRV-001")

        body = client.get(f"{API}/assets", headers=REQUESTER).json()
        assert [a["id"] for a in body["items"]] == ["NET-001", "SRV-001"]
        assert body["total"] == 2

        body = client.get(f"{API}/assets", params={"search": "switch"}, headers=REQUESTER).json()
        assert [a["id"] for a in body["items"]] == ["NET-001"]

        body = client.get(f"{API}/assets", params={"type": "server"}, headers=REQUESTER).json()
        assert [a["id"] for a in body["items"]] == ["SRV-001"]

        stats = client.get(f"{API}/assets/stats", headers=REQUESTER).json()
        assert stats == {
            "total": 2, "online": 2, "offline": 0, "maintenance": 0,
            "decommissioned": 0, "pending": 1,
        }

    def test_history_and_audit(self, client, seeded_asset):
        headers = dict(REQUESTER, **{"X-Correlation-Id": "COR-test-1"})
        workflow = client.post(
            f"{API}/workflows", json={"assetId": "SRV-001", "type": "maintenance"}, headers=headers
        )
        assert workflow.headers["X-Correlation-Id"] == "COR-test-1"
        workflow_id = workflow.json()["id"]
        client.put(f"{API}/workflows/{workflow_id}/approve", headers=APPROVER)

        history = client.get(f"{API}/assets/SRV-001/workflows", headers=REQUESTER).json()
        assert [w["id"] for w in history] == [workflow_id]

        audit = client.get(f"{API}/assets/SRV-001/audit", headers=REQUESTER).json()
        actions = [e["action"] for e in audit]
        assert actions[0] == "workflow_approved"
        assert sorted(actions) == ["asset_registered", "workflow_approved", "workflow_submitted"]
        submitted = next(e for e in audit if e["action"] == "workflow_submitted")
        assert submitted["correlationId"] == "COR-test-1"
        assert submitted["resourceId"] == workflow_id

    def test_generated_correlation_id_reaches_audit(self, client, seeded_asset):
        response = client.post(f"{API}/assets/SRV-001/maintenance", json={}, headers=REQUESTER)
        correlation_id = response.headers["X-Correlation-Id"]
        assert correlation_id.startswith("COR-")

        audit = client.get(f"{API}/assets/SRV-001/audit", headers=REQUESTER).json()
        submitted = next(e for e in audit if e["action"] == "workflow_submitted")
        assert submitted["correlationId"] == correlation_id

    def test_history_of_unknown_asset_is_404(self, client):
        response = client.get(f"{API}/assets/SRV-404/audit", headers=REQUESTER)
        assert response.status_code == 404


class TestHealth:

    def test_degraded_signal_surfaces(self, client):
        degraded_signal.raise_signal("audit_append_failed", {"audit_entry_id": "AUD-1"})

        body = client.get("/health").json()
        assert body["status"] == "degraded"
        assert body["degraded_mode"]["incident_count"] == 1
