import uuid

from fastapi.testclient import TestClient

from synkboard.core.db import SessionLocal
from synkboard.main import create_app
from synkboard.models import Entity, EntityField, Rule, Tenant


def _client() -> TestClient:
    app = create_app()
    return TestClient(app)


def _seed_tenant() -> tuple[str, str]:
    tenant_id = str(uuid.uuid4())
    entity_id = str(uuid.uuid4())
    with SessionLocal() as db:
        db.add(Tenant(id=tenant_id, name="Acme"))
        db.add(Entity(id=entity_id, tenant_id=tenant_id, name="Tickets", slug="tickets"))
        db.add(EntityField(entity_id=entity_id, key="title", name="Title", type="text", position=0))
        db.add(EntityField(entity_id=entity_id, key="priority", name="Priority", type="select", position=1))
        db.add(EntityField(entity_id=entity_id, key="hours", name="Hours", type="number", position=2))
        db.add(
            Rule(
                tenant_id=tenant_id,
                entity_id=entity_id,
                name="High priority",
                conditions=[{"field": "priority", "operator": "equals", "value": "high"}],
                actions=[{"type": "notify", "message": "{{record.fields.title}} needs attention"}],
                run_on="both",
            )
        )
        db.commit()
    return tenant_id, entity_id


def test_health():
    with _client() as client:
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["database"] is True


def test_tenant_header_required():
    with _client() as client:
        resp = client.post("/api/v1/rules/test", json={"conditions": []})
        assert resp.status_code == 400


def test_record_write_triggers_rules_and_logs():
    with _client() as client:
        tenant_id, entity_id = _seed_tenant()
        headers = {"X-Tenant-Id": tenant_id}
        resp = client.post(
            f"/api/v1/entities/{entity_id}/records",
            json={"fields": {"title": "Printer on fire", "priority": "high", "hours": 2}},
            headers=headers,
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["triggered_rules"] == 1
        record_id = body["id"]

        resp = client.put(
            f"/api/v1/entities/{entity_id}/records/{record_id}",
            json={"fields": {"title": "Printer on fire", "priority": "low"}},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json()["triggered_rules"] == 0

        resp = client.get("/api/v1/rules/logs?limit=10", headers=headers)
        assert resp.status_code == 200
        assert resp.headers["X-Total-Count"] == "2"
        assert sorted(item["status"] for item in resp.json()) == ["matched", "skipped"]

        resp = client.get("/api/v1/rules/logs?status=matched", headers=headers)
        assert [item["record_id"] for item in resp.json()] == [record_id]


def test_record_for_unknown_entity_is_404():
    with _client() as client:
        tenant_id, _ = _seed_tenant()
        resp = client.post(
            "/api/v1/entities/missing/records",
            json={"fields": {}},
            headers={"X-Tenant-Id": tenant_id},
        )
        assert resp.status_code == 404


def test_rule_preview_reports_warnings():
    with _client() as client:
        tenant_id, entity_id = _seed_tenant()
        resp = client.post(
            "/api/v1/rules/test",
            json={
                "entity_id": entity_id,
                "conditions": [
                    {"field": "hours", "operator": "gt", "value": 1},
                    {"field": "title", "operator": "gt", "value": 1},
                ],
                "actions": [{"type": "rate", "field": "score", "value": 10}],
                "test_data": {"hours": "3", "title": "5"},
            },
            headers={"X-Tenant-Id": tenant_id},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["matched"] is True
        assert body["conditions_met"] == 2
        assert body["actions_would_execute"] == 1
        assert len(body["warnings"]) == 2


def test_widget_data_and_validation_errors():
    with _client() as client:
        tenant_id, entity_id = _seed_tenant()
        headers = {"X-Tenant-Id": tenant_id}
        for priority, hours in [("high", 3), ("high", 5), ("low", 1)]:
            client.post(
                f"/api/v1/entities/{entity_id}/records",
                json={"fields": {"title": "t", "priority": priority, "hours": hours}},
                headers=headers,
            )

        resp = client.post(
            "/api/v1/widgets/data",
            json={
                "tenant_id": tenant_id,
                "entity_id": entity_id,
                "widget_type": "bar",
                "group_by": "priority",
                "metric_type": "sum",
                "target_field": "hours",
            },
            headers=headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["data"] == [{"label": "high", "value": 8.0}, {"label": "low", "value": 1.0}]
        assert body["total"] == 9.0

        resp = client.post(
            "/api/v1/widgets/data",
            json={"tenant_id": tenant_id, "entity_id": entity_id, "widget_type": "kpi", "metric_type": "sum"},
            headers=headers,
        )
        assert resp.status_code == 422
        assert "target_field" in resp.json()["detail"]

        resp = client.post(
            "/api/v1/widgets/data",
            json={"tenant_id": "someone-else", "entity_id": entity_id, "widget_type": "kpi"},
            headers=headers,
        )
        assert resp.status_code == 403
