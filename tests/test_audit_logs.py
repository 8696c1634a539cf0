from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import add_rows, sync_engine
from orbit_api.core.config import settings
from orbit_api.models.audit import AuditLog
from orbit_api.services.audit import compute_changes, purge_audit_logs
from orbit_api.services.csv_import import import_records


def audit_rows(**filters):
    with Session(sync_engine, expire_on_commit=False) as session:
        stmt = select(AuditLog).filter_by(**filters).order_by(AuditLog.created_at)
        return list(session.execute(stmt).scalars().all())


def test_compute_changes_keeps_only_changed_fields():
    old = {"name": "Madison", "state": "WI", "updated_at": "2025-06-01T00:00:00"}
    new = {"name": "Madison", "state": "IL", "updated_at": "2025-06-02T00:00:00"}

    assert compute_changes("update", old, new) == ({"state": "WI"}, {"state": "IL"}, ["state"])
    assert compute_changes("update", old, dict(old)) == (None, None, None)
    assert compute_changes("create", None, new) == (None, new, None)
    assert compute_changes("delete", old, None) == (old, None, None)


def test_market_lifecycle_is_recorded(client, headers, admin):
    market = client.post("/api/markets", json={"name": "Madison", "state": "WI"}, headers=headers).json()
    client.patch(f"/api/markets/{market['id']}", json={"metro_population": 680000}, headers=headers)
    client.delete(f"/api/markets/{market['id']}", headers=headers)

    entries = audit_rows(entity_type="market")

    assert [e.action for e in entries] == ["create", "update", "delete"]
    assert all(str(e.entity_id) == market["id"] for e in entries)
    assert all(e.user_id == admin.id and e.user_email == admin.email for e in entries)
    assert entries[0].new_values["name"] == "Madison"
    assert entries[1].changed_fields == ["metro_population"]
    assert entries[1].old_values == {"metro_population": None}
    assert entries[1].new_values == {"metro_population": 680000}
    assert entries[2].old_values["deleted_at"] is not None
    assert entries[0].ip_address == "testclient"


def test_update_without_changes_is_not_recorded(client, headers):
    market = client.post("/api/markets", json={"name": "Madison", "state": "WI"}, headers=headers).json()

    response = client.patch(f"/api/markets/{market['id']}", json={"name": "Madison"}, headers=headers)

    assert response.status_code == 200
    assert [e.action for e in audit_rows(entity_type="market")] == ["create"]


def test_forwarded_address_is_recorded(client, headers):
    client.post(
        "/api/verticals",
        json={"name": "HVAC"},
        headers={**headers, "X-Forwarded-For": "203.0.113.7, 10.0.0.1", "User-Agent": "orbit-web"},
    )

    entry = audit_rows(entity_type="vertical")[0]
    assert entry.ip_address == "203.0.113.7"
    assert entry.user_agent == "orbit-web"


def test_nothing_is_recorded_when_disabled(client, headers, monkeypatch):
    monkeypatch.setattr(settings, "feature_audit_logs", False)

    response = client.post("/api/markets", json={"name": "Madison", "state": "WI"}, headers=headers)

    assert response.status_code == 201
    assert audit_rows() == []


def test_list_filters_by_entity_and_action(client, headers):
    market = client.post("/api/markets", json={"name": "Madison", "state": "WI"}, headers=headers).json()
    client.post("/api/verticals", json={"name": "HVAC"}, headers=headers)
    client.patch(f"/api/markets/{market['id']}", json={"notes": "Growing"}, headers=headers)

    response = client.get("/api/audit-logs", params={"entity_type": "market"}, headers=headers)
    body = response.json()
    assert body["total"] == 2
    assert {item["action"] for item in body["items"]} == {"create", "update"}

    response = client.get("/api/audit-logs", params={"action": "create"}, headers=headers)
    assert {item["entity_type"] for item in response.json()["items"]} == {"market", "vertical"}

    response = client.get("/api/audit-logs", params={"entity_id": market["id"], "action": "update"}, headers=headers)
    items = response.json()["items"]
    assert len(items) == 1
    assert items[0]["changed_fields"] == ["notes"]


def test_list_rejects_unknown_filters(client, headers):
    assert client.get("/api/audit-logs", params={"action": "archive"}, headers=headers).status_code == 400
    assert client.get("/api/audit-logs", params={"entity_type": "widget"}, headers=headers).status_code == 400


def test_list_is_scoped_to_tenant(client, headers, other_headers):
    client.post("/api/markets", json={"name": "Madison", "state": "WI"}, headers=headers)

    response = client.get("/api/audit-logs", headers=other_headers)

    assert response.json()["total"] == 0


def test_viewer_can_read_audit_trail(client, headers, viewer_headers):
    client.post("/api/markets", json={"name": "Madison", "state": "WI"}, headers=headers)

    response = client.get("/api/audit-logs", headers=viewer_headers)

    assert response.status_code == 200
    assert response.json()["total"] == 1


@pytest.mark.asyncio
async def test_import_records_its_source(db_session, org, admin):
    actor = {"id": str(admin.id), "email": admin.email}

    await import_records(
        db_session,
        organization_id=org.id,
        entity="companies",
        rows=[{"name": "Summit Heating", "market": "Madison, WI", "vertical": "HVAC"}],
        actor=actor,
    )
    await db_session.commit()

    company = audit_rows(entity_type="company")[0]
    assert company.extra == {"source": "csv_import"}
    assert company.user_id == admin.id
    assert audit_rows(entity_type="market")[0].extra == {"source": "csv_import_auto"}
    assert audit_rows(entity_type="vertical")[0].extra == {"source": "csv_import_auto"}


@pytest.mark.asyncio
async def test_purge_removes_only_expired_entries(db_session, org):
    now = datetime(2025, 6, 3, 12, 0)
    _, recent = add_rows(
        AuditLog(organization_id=org.id, entity_type="market", entity_id=uuid4(), action="create", created_at=now - timedelta(days=120)),
        AuditLog(organization_id=org.id, entity_type="market", entity_id=uuid4(), action="create", created_at=now - timedelta(days=5)),
    )

    purged = await purge_audit_logs(db_session, 90, now=now)
    await db_session.commit()

    assert purged == 1
    assert [e.id for e in audit_rows()] == [recent.id]
