import pytest
from datetime import datetime, timedelta, timezone
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.user_orm import UserORM
from backend.app.services.auth_service import hash_password

from tests.helpers import auth_headers

BASE = "/api/v1/incident-logs"
REASON = "Updated after steward radio report"


def log_payload(**overrides) -> dict:
    payload = {
        "log_number": "EV-1001",
        "event_id": "event-summer-fest",
        "occurrence": "Gate 3 turnstile jammed, queue building",
        "incident_type": "ingress",
        "priority": "medium",
        "location": "Gate 3",
        "callsign_from": "Steward 4",
        "callsign_to": "Control",
        "time_of_occurrence": (datetime.now(timezone.utc) - timedelta(minutes=2)).isoformat(),
    }
    payload.update(overrides)
    return payload


async def create_log(client: AsyncClient, **overrides) -> int:
    response = await client.post(f"{BASE}/", json=log_payload(**overrides), headers=auth_headers("operator"))
    assert response.status_code == 201, response.text
    return response.json()["log"]["id"]


@pytest.mark.asyncio
async def test_create_log(client: AsyncClient, seeded_users):
    response = await client.post(f"{BASE}/", json=log_payload(), headers=auth_headers("operator"))
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["success"] is True
    assert data["warnings"] == []
    assert data["log"]["is_amended"] is False
    assert data["log"]["logged_by_callsign"] == "Loggist"
    assert response.headers["X-Correlation-ID"]


@pytest.mark.asyncio
async def test_create_log_validation_and_scopes(client: AsyncClient, seeded_users):
    retrospective = await client.post(
        f"{BASE}/", json=log_payload(entry_type="retrospective"), headers=auth_headers("operator")
    )
    assert retrospective.status_code == 400
    assert "justification" in retrospective.json()["detail"]

    viewer = await client.post(f"{BASE}/", json=log_payload(), headers=auth_headers("viewer"))
    assert viewer.status_code == 403

    anonymous = await client.post(f"{BASE}/", json=log_payload())
    assert anonymous.status_code == 401


@pytest.mark.asyncio
async def test_late_entry_returns_warnings(client: AsyncClient, seeded_users):
    late = (datetime.now(timezone.utc) - timedelta(minutes=45)).isoformat()
    response = await client.post(f"{BASE}/", json=log_payload(time_of_occurrence=late), headers=auth_headers("operator"))
    assert response.status_code == 201
    assert len(response.json()["warnings"]) == 1


@pytest.mark.asyncio
async def test_can_amend(client: AsyncClient, seeded_users):
    log_id = await create_log(client)

    mine = await client.get(f"{BASE}/{log_id}/can-amend", headers=auth_headers("operator"))
    assert mine.json() == {"can_amend": True, "reason": None}

    theirs = await client.get(f"{BASE}/{log_id}/can-amend", headers=auth_headers("viewer"))
    assert theirs.json()["can_amend"] is False

    missing = await client.get(f"{BASE}/9999/can-amend", headers=auth_headers("operator"))
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_amend_and_read_back(client: AsyncClient, seeded_users):
    log_id = await create_log(client)

    response = await client.post(
        f"{BASE}/{log_id}/amend",
        json={"field_changed": "priority", "new_value": "high", "change_reason": REASON, "change_type": "escalation"},
        headers=auth_headers("operator"),
    )
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["revision"]["revision_number"] == 1
    assert data["revision"]["old_value"] == "medium"
    assert data["log"]["is_amended"] is True

    current = await client.get(f"{BASE}/{log_id}", headers=auth_headers("viewer"))
    assert current.status_code == 200
    assert current.json()["log"]["priority"] == "medium"
    assert current.json()["current_values"]["priority"] == "high"
    assert current.json()["revision_count"] == 1

    history = await client.get(f"{BASE}/{log_id}/revisions", headers=auth_headers("viewer"))
    assert history.status_code == 200
    body = history.json()
    assert body["summary"]["total_revisions"] == 1
    assert body["diffs"][0]["field"] == "Priority"
    assert body["diffs"][0]["changed_by"] == "Jo Loggist"

    listed = await client.get(f"{BASE}/event/event-summer-fest", headers=auth_headers("viewer"))
    assert [log["id"] for log in listed.json()] == [log_id]


@pytest.mark.asyncio
async def test_amend_error_statuses(client: AsyncClient, seeded_users):
    log_id = await create_log(client)
    body = {"field_changed": "location", "new_value": "Gate 4", "change_reason": REASON}

    short = await client.post(
        f"{BASE}/{log_id}/amend", json={**body, "change_reason": "typo"}, headers=auth_headers("operator")
    )
    assert short.status_code == 400

    not_creator = await client.post(f"{BASE}/{log_id}/amend", json=body, headers=auth_headers("operator_2"))
    assert not_creator.status_code == 403
    assert not_creator.json()["detail"].startswith("Only the creator may amend this log")

    viewer = await client.post(f"{BASE}/{log_id}/amend", json=body, headers=auth_headers("viewer"))
    assert viewer.status_code == 403

    missing = await client.post(f"{BASE}/9999/amend", json=body, headers=auth_headers("admin"))
    assert missing.status_code == 404

    history = await client.get(f"{BASE}/{log_id}/revisions", headers=auth_headers("viewer"))
    assert history.json()["revisions"] == []


@pytest.mark.asyncio
async def test_export_revisions(client: AsyncClient, seeded_users):
    log_id = await create_log(client)
    await client.post(
        f"{BASE}/{log_id}/amend",
        json={"field_changed": "status", "new_value": "closed", "change_reason": REASON, "change_type": "status_change"},
        headers=auth_headers("admin"),
    )

    operator = await client.get(f"{BASE}/{log_id}/revisions/export", headers=auth_headers("operator"))
    assert operator.status_code == 403

    response = await client.get(f"{BASE}/{log_id}/revisions/export", headers=auth_headers("controller"))
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert f'incident-log-{log_id}-revisions.txt' in response.headers["content-disposition"]
    assert "INCIDENT LOG REVISION HISTORY" in response.text
    assert "Revision #1 - Status Change" in response.text
    assert "Changed By: Safety Officer" in response.text

    missing = await client.get(f"{BASE}/9999/revisions/export", headers=auth_headers("controller"))
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_token_login(client: AsyncClient, db_session: AsyncSession):
    db_session.add(UserORM(
        id="user-login", username="loggist", hashed_password=hash_password("s3cret-pass"),
        role="operator", callsign="Loggist 2",
    ))
    await db_session.commit()

    bad = await client.post("/api/v1/auth/token", data={"username": "loggist", "password": "wrong"})
    assert bad.status_code == 401

    response = await client.post("/api/v1/auth/token", data={"username": "loggist", "password": "s3cret-pass"})
    assert response.status_code == 200
    token = response.json()["access_token"]
    assert "incident_log:amend" in response.json()["scopes"]

    created = await client.post(f"{BASE}/", json=log_payload(), headers={"Authorization": f"Bearer {token}"})
    assert created.status_code == 201
    assert created.json()["log"]["logged_by_user_id"] == "user-login"


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_default_users_are_seeded_once(db_session: AsyncSession):
    from sqlalchemy import func, select
    from backend.app.services.auth_service import seed_default_users

    await seed_default_users(db_session)
    await seed_default_users(db_session)

    count = (await db_session.execute(select(func.count(UserORM.id)))).scalar_one()
    assert count == 4
