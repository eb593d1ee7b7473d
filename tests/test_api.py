from datetime import timedelta

import httpx
import pytest
import pytest_asyncio

from db.db import AcknowledgmentMethod, ReminderStatus
from main import app
from tests.fakes import T0, seed_event, seed_group, seed_reminder


@pytest_asyncio.fixture
async def client(store):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_create_reminder_derives_time_from_event(client):
    event_id = await seed_event(start_time=T0)
    group_id = await seed_group([{"name": "Ann", "email": "ann@example.org"}])

    resp = await client.post(
        "/v1/reminders",
        json={"event_id": event_id, "group_id": group_id, "advance_minutes": 15},
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "PENDING"
    assert body["sent_at"] is None
    assert body["reminder_time"].startswith("2030-01-01T08:45:00")


@pytest.mark.asyncio
async def test_create_reminder_unknown_event_is_404(client):
    group_id = await seed_group([])
    resp = await client.post(
        "/v1/reminders", json={"event_id": "nope", "group_id": group_id, "advance_minutes": 5}
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_create_reminder_negative_advance_is_422(client):
    resp = await client.post(
        "/v1/reminders", json={"event_id": "e", "group_id": "g", "advance_minutes": -5}
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_reminder(client):
    event_id = await seed_event()
    group_id = await seed_group([])
    rid = await seed_reminder(event_id, group_id, T0)

    resp = await client.get(f"/v1/reminders/{rid}")

    assert resp.status_code == 200
    assert resp.json()["id"] == rid
    assert (await client.get("/v1/reminders/missing")).status_code == 404


@pytest.mark.asyncio
async def test_update_pending_reminder_keeps_reminder_time(client):
    event_id = await seed_event(start_time=T0)
    group_id = await seed_group([])
    created = (await client.post(
        "/v1/reminders",
        json={"event_id": event_id, "group_id": group_id, "advance_minutes": 15},
    )).json()

    resp = await client.put(
        f"/v1/reminders/{created['id']}", json={"message": "Bring water", "advance_minutes": 60}
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Bring water"
    assert body["advance_minutes"] == 60
    assert body["reminder_time"] == created["reminder_time"]


@pytest.mark.asyncio
async def test_update_sent_reminder_is_409(client):
    event_id = await seed_event()
    group_id = await seed_group([])
    rid = await seed_reminder(event_id, group_id, T0, status=ReminderStatus.SENT)

    resp = await client.put(f"/v1/reminders/{rid}", json={"message": "Too late"})

    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_update_unknown_reminder_is_404(client):
    resp = await client.put("/v1/reminders/missing", json={"message": "x"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_manual_ack_on_sent_reminder_succeeds(client, store):
    event_id = await seed_event()
    group_id = await seed_group([])
    rid = await seed_reminder(event_id, group_id, T0 - timedelta(minutes=1), status=ReminderStatus.SENT)
    await store.insert_acknowledgment(rid, AcknowledgmentMethod.EMAIL, notes="Email sent")

    resp = await client.post(
        "/v1/acknowledgments", json={"reminder_id": rid, "method": "MANUAL", "notes": "phoned in"}
    )

    assert resp.status_code == 201
    assert resp.json()["method"] == "MANUAL"
    listed = (await client.get("/v1/acknowledgments", params={"reminder_id": rid})).json()
    assert sorted(a["method"] for a in listed) == ["EMAIL", "MANUAL"]


@pytest.mark.asyncio
async def test_ack_with_invalid_method_is_422(client):
    resp = await client.post("/v1/acknowledgments", json={"reminder_id": "r", "method": "PIGEON"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_ack_for_unknown_reminder_is_404(client):
    resp = await client.post("/v1/acknowledgments", json={"reminder_id": "missing", "method": "WEB_APP"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_deep_link_records_web_app_ack(client, store):
    event_id = await seed_event()
    group_id = await seed_group([])
    rid = await seed_reminder(event_id, group_id, T0)

    resp = await client.get(f"/acknowledge/{rid}", params={"method": "SMS"})

    assert resp.status_code == 200
    acks = await store.list_acknowledgments(rid)
    assert len(acks) == 1
    assert acks[0].method == AcknowledgmentMethod.WEB_APP
    assert acks[0].notes == "Acknowledged from SMS link"
