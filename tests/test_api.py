from __future__ import annotations

from typing import Dict

from fastapi.testclient import TestClient
from sqlalchemy import inspect

from app.core.config import settings
from app.core.database import engine
from app.core.migrations import alembic_config
from app.models.entities import User
from app.seeds.seed_data import DEMO_API_KEY

STAFF_BASE = "/staff/quality-inspections"
CLIENT_BASE = "/client/quality-inspections"
BUSINESS_BASE = "/business/quality-inspections"


def _simple_body(**overrides) -> dict:
    body = {
        "project_id": "demo-project",
        "external_client_id": "demo-client",
        "location": "Stairwell B",
        "overall_rating": 4,
        "remarks": "Handrails secure",
    }
    body.update(overrides)
    return body


def _create_and_submit(client: TestClient, headers: Dict[str, str], **overrides) -> dict:
    created = client.post(f"{STAFF_BASE}/simple", json=_simple_body(**overrides), headers=headers)
    assert created.status_code == 201, created.text
    inspection_id = created.json()["data"]["id"]
    submitted = client.put(f"{STAFF_BASE}/{inspection_id}/submit", headers=headers)
    assert submitted.status_code == 200, submitted.text
    return submitted.json()["data"]


def test_health(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_startup_migrations_target_configured_database(client: TestClient):
    cfg = alembic_config()
    assert cfg.get_main_option("sqlalchemy.url") == settings.database_url
    assert cfg.get_main_option("script_location").endswith("alembic")
    with engine.connect() as connection:
        tables = set(inspect(connection).get_table_names())
    assert {"quality_inspections", "notification_outbox", "audit_logs"} <= tables


def test_login_and_me(client: TestClient, auth_headers):
    headers = auth_headers("leader@example.com", "leaderpass")
    response = client.get("/auth/me", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["email"] == "leader@example.com"
    assert body["tenant_id"] == "demo-tenant"
    assert body["role"] == "staff"


def test_login_rejects_bad_password(client: TestClient):
    response = client.post(
        "/auth/login",
        data={"username": "leader@example.com", "password": "wrong"},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    assert response.status_code == 401


def test_missing_credentials_are_unauthorized(client: TestClient):
    response = client.get(f"{STAFF_BASE}/my-inspections")
    assert response.status_code == 401


def test_api_key_resolves_to_tenant_admin(client: TestClient):
    response = client.get("/auth/me", headers={"X-API-Key": DEMO_API_KEY})
    assert response.status_code == 200
    assert response.json()["email"] == "admin@example.com"

    assert client.get("/auth/me", headers={"X-API-Key": "qik_wrong"}).status_code == 401


def test_full_workflow_over_http(client: TestClient, auth_headers):
    inspector = auth_headers("inspector@example.com", "inspectorpass")
    leader = auth_headers("leader@example.com", "leaderpass")
    ops = auth_headers("ops@example.com", "opspass")
    client_user = auth_headers("client@example.com", "clientpass")

    submitted = _create_and_submit(client, inspector)
    inspection_id = submitted["id"]
    assert submitted["status"] == "pending"
    assert submitted["metadata"]["remarks"] == "Handrails secure"

    pending = client.get(f"{STAFF_BASE}/review/pending", headers=leader)
    assert pending.status_code == 200
    assert [item["id"] for item in pending.json()["data"]["items"]] == [inspection_id]

    approved = client.put(
        f"{STAFF_BASE}/review/{inspection_id}/approve", json={"notes": "Good"}, headers=leader
    )
    assert approved.status_code == 200, approved.text
    assert approved.json()["data"]["status"] == "approved"

    queue = client.get(f"{STAFF_BASE}/final-approval/pending", headers=ops)
    assert queue.json()["data"]["total"] == 1
    summary = client.get(f"{STAFF_BASE}/final-approval/queue-summary", headers=ops)
    assert summary.json()["data"]["total_pending_approval"] == 1

    final = client.put(
        f"{STAFF_BASE}/final-approval/{inspection_id}/approve",
        json={"notes": "Ready for handover", "client_notification_required": True},
        headers=ops,
    )
    assert final.status_code == 200, final.text
    data = final.json()["data"]
    assert data["status"] == "complete"
    assert data["completed_date"] is not None
    assert data["metadata"]["final_decision"]["action"] == "approved"

    listed = client.get(f"{CLIENT_BASE}/", headers=client_user)
    assert listed.status_code == 200
    assert listed.json()["data"]["total"] == 1

    detail = client.get(f"{CLIENT_BASE}/{inspection_id}", headers=client_user)
    assert detail.status_code == 200
    assert "checklist_items" not in detail.json()["data"]
    assert detail.json()["data"]["summary"] == "Handrails secure"

    client_approval = client.put(
        f"{CLIENT_BASE}/{inspection_id}/approve",
        json={"approved": True, "client_signature": "Harbourview PM", "satisfaction_rating": 5},
        headers=client_user,
    )
    assert client_approval.status_code == 200, client_approval.text
    assert client_approval.json()["data"]["client_review_status"] == "approved"
    assert client_approval.json()["data"]["client_approved"] is True

    stats = client.get(f"{CLIENT_BASE}/summary/stats", headers=client_user)
    assert stats.json()["data"]["client_approved_count"] == 1

    analytics = client.get(f"{STAFF_BASE}/final-approval/analytics", headers=ops)
    assert analytics.status_code == 200
    assert analytics.json()["data"]["completed_inspections"] == 1


def test_detailed_submit_without_photos_is_a_bad_request(client: TestClient, auth_headers):
    inspector = auth_headers("inspector@example.com", "inspectorpass")
    created = client.post(
        f"{STAFF_BASE}/detailed",
        json={
            "project_id": "demo-project",
            "external_client_id": "demo-client",
            "location": "Plant room",
            "checklist_items": [{"name": "Valves labelled", "status": "pass"}],
            "signature": "signed",
        },
        headers=inspector,
    )
    assert created.status_code == 201, created.text

    response = client.put(f"{STAFF_BASE}/{created.json()['data']['id']}/submit", headers=inspector)

    assert response.status_code == 400
    assert response.json() == {
        "status": "error",
        "message": "Photos are required for this inspection",
        "code": "invalid_input",
    }


def test_if_match_mismatch_is_a_conflict(client: TestClient, auth_headers):
    inspector = auth_headers("inspector@example.com", "inspectorpass")
    leader = auth_headers("leader@example.com", "leaderpass")
    submitted = _create_and_submit(client, inspector)
    version = submitted["version"]

    stale = client.put(
        f"{STAFF_BASE}/review/{submitted['id']}/approve",
        json={},
        headers={**leader, "If-Match": f'"{version - 1}"'},
    )
    assert stale.status_code == 409
    assert stale.json()["code"] == "conflict"

    fresh = client.put(
        f"{STAFF_BASE}/review/{submitted['id']}/approve",
        json={},
        headers={**leader, "If-Match": f'W/"{version}"'},
    )
    assert fresh.status_code == 200
    assert fresh.json()["data"]["version"] == version + 1

    malformed = client.put(
        f"{STAFF_BASE}/{submitted['id']}/submit", headers={**inspector, "If-Match": "abc"}
    )
    assert malformed.status_code == 400


def test_permission_denied_maps_to_forbidden(client: TestClient, auth_headers):
    inspector = auth_headers("inspector@example.com", "inspectorpass")
    submitted = _create_and_submit(client, inspector)

    response = client.put(f"{STAFF_BASE}/review/{submitted['id']}/approve", json={}, headers=inspector)
    assert response.status_code == 403
    assert response.json()["code"] == "permission_denied"

    crew = auth_headers("crew@example.com", "crewpass")
    assert client.post(f"{STAFF_BASE}/simple", json=_simple_body(), headers=crew).status_code == 403


def test_audiences_are_separated(client: TestClient, auth_headers):
    client_user = auth_headers("client@example.com", "clientpass")
    inspector = auth_headers("inspector@example.com", "inspectorpass")

    assert client.get(f"{STAFF_BASE}/my-inspections", headers=client_user).status_code == 403
    assert client.get(f"{CLIENT_BASE}/", headers=inspector).status_code == 403
    assert client.get(f"{BUSINESS_BASE}/config", headers=inspector).status_code == 403


def test_client_cannot_see_unfinished_inspection(client: TestClient, auth_headers):
    submitted = _create_and_submit(client, auth_headers("inspector@example.com", "inspectorpass"))
    client_user = auth_headers("client@example.com", "clientpass")

    response = client.get(f"{CLIENT_BASE}/{submitted['id']}", headers=client_user)
    assert response.status_code == 404


def test_my_inspections_update_and_delete(client: TestClient, auth_headers):
    inspector = auth_headers("inspector@example.com", "inspectorpass")
    created = client.post(f"{STAFF_BASE}/simple", json=_simple_body(), headers=inspector).json()["data"]

    updated = client.put(
        f"{STAFF_BASE}/{created['id']}",
        json={"overall_rating": 1, "remarks": "Handrail loose"},
        headers=inspector,
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["has_critical_issues"] is True

    listed = client.get(f"{STAFF_BASE}/my-inspections", params={"status": "draft"}, headers=inspector)
    assert listed.json()["data"]["total"] == 1

    deleted = client.delete(f"{STAFF_BASE}/{created['id']}", headers=inspector)
    assert deleted.status_code == 200
    assert client.get(f"{STAFF_BASE}/{created['id']}", headers=inspector).status_code == 404


def test_audit_log_query(client: TestClient, auth_headers):
    inspector = auth_headers("inspector@example.com", "inspectorpass")
    submitted = _create_and_submit(client, inspector)
    client.put(f"{STAFF_BASE}/review/{submitted['id']}/approve", json={}, headers=inspector)
    admin = auth_headers("admin@example.com", "adminpass")

    response = client.get(
        "/business/audit-logs/",
        params={"resourceId": str(submitted["id"]), "success": "false"},
        headers=admin,
    )

    assert response.status_code == 200
    items = response.json()["data"]["items"]
    assert len(items) == 1
    assert items[0]["action"] == "quality_inspection_approved"
    assert items[0]["severity"] == "high"
    assert items[0]["error_code"] == "permission_denied"

    everything = client.get(
        "/business/audit-logs/", params={"resourceId": str(submitted["id"])}, headers=admin
    )
    actions = {item["action"] for item in everything.json()["data"]["items"]}
    assert {"quality_inspection_created", "quality_inspection_submitted"} <= actions


def test_notifications_are_delivered_after_requests(client: TestClient, auth_headers):
    inspector = auth_headers("inspector@example.com", "inspectorpass")
    _create_and_submit(client, inspector, overall_rating=2)
    leader = auth_headers("leader@example.com", "leaderpass")

    response = client.get("/notifications/", params={"unreadOnly": "true"}, headers=leader)
    assert response.status_code == 200
    items = response.json()["data"]["items"]
    event_types = [item["event_type"] for item in items]
    assert "inspection_submitted" in event_types
    submitted = next(item for item in items if item["event_type"] == "inspection_submitted")
    assert submitted["priority"] == "urgent"

    read = client.put(f"/notifications/{submitted['id']}/read", headers=leader)
    assert read.status_code == 200
    assert read.json()["data"]["read_at"] is not None

    remaining = client.put("/notifications/read-all", headers=leader)
    assert remaining.json()["data"] == len(items) - 1

    other = auth_headers("pm@example.com", "pmpass")
    assert client.put(f"/notifications/{submitted['id']}/read", headers=other).status_code == 404


def test_business_config_and_team(client: TestClient, auth_headers, db):
    admin = auth_headers("admin@example.com", "adminpass")

    current = client.get(f"{BUSINESS_BASE}/config", headers=admin)
    assert current.status_code == 200
    config = current.json()["data"]
    assert config["final_approver"] == "operations_manager"

    invalid = client.put(f"{BUSINESS_BASE}/config", json={**config, "can_review": []}, headers=admin)
    assert invalid.status_code == 400
    assert invalid.json()["code"] == "invalid_input"

    not_bool = client.put(f"{BUSINESS_BASE}/config", json={**config, "require_photos": "yes"}, headers=admin)
    assert not_bool.status_code == 422

    updated = client.put(
        f"{BUSINESS_BASE}/config", json={**config, "require_client_signoff": True}, headers=admin
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["require_client_signoff"] is True

    team = client.get(f"{BUSINESS_BASE}/team", headers=admin)
    assert len(team.json()["data"]) == 4

    crew_id = db.query(User).filter(User.email == "crew@example.com").one().id
    assigned = client.post(
        f"{BUSINESS_BASE}/team/assign", json={"user_id": crew_id, "role": "team_leader"}, headers=admin
    )
    assert assigned.status_code == 200, assigned.text
    assert assigned.json()["data"]["quality_role"] == "team_leader"
    assert assigned.json()["data"]["quality_permissions"]["can_review"] is True

    bad_role = client.post(
        f"{BUSINESS_BASE}/team/assign", json={"user_id": crew_id, "role": "boss"}, headers=admin
    )
    assert bad_role.status_code == 400

    removed = client.delete(f"{BUSINESS_BASE}/team/{crew_id}", headers=admin)
    assert removed.status_code == 200
    assert removed.json()["data"]["quality_role"] is None
