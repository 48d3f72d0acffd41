"""
HTTP surface: routing, actor resolution and error mapping.
"""

from uuid import uuid4

import pytest

from conftest import START, set_unit_status
from holdgate.models import UnitStatus
from holdgate.notifications import LedgerNotifier


def as_actor(actor) -> dict[str, str]:
    return {"X-Actor-ID": str(actor.actor_id)}


def claim_body(unit_id, phone: str = "9000000001") -> dict:
    return {
        "unit_id": str(unit_id),
        "date_from": START.isoformat(),
        "duration_months": 3,
        "client": {"name": "Acme Foods", "phone": phone},
    }


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_actor_header_required(client, directory):
    response = await client.post("/v1/claims", json=claim_body(directory.unit.unit_id))
    assert response.status_code == 401

    response = await client.post(
        "/v1/claims",
        json=claim_body(directory.unit.unit_id),
        headers={"X-Actor-ID": "not-a-uuid"},
    )
    assert response.status_code == 400

    response = await client.post(
        "/v1/claims",
        json=claim_body(directory.unit.unit_id),
        headers={"X-Actor-ID": str(uuid4())},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_claim_confirm_flow(client, directory):
    d = directory

    first = await client.post("/v1/claims", json=claim_body(d.unit.unit_id), headers=as_actor(d.agent_a))
    assert first.status_code == 201
    assert first.json()["queue_position"] == 1

    second = await client.post(
        "/v1/claims", json=claim_body(d.unit.unit_id, "9000000002"), headers=as_actor(d.agent_b)
    )
    assert second.json()["queue_position"] == 2

    queue = await client.get(f"/v1/units/{d.unit.unit_id}/queue", headers=as_actor(d.agent_b))
    assert [c["queue_position"] for c in queue.json()["claims"]] == [1, 2]

    confirmed = await client.post(
        f"/v1/claims/{first.json()['claim_id']}/confirm", json={}, headers=as_actor(d.agent_a)
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"
    assert confirmed.json()["workflow"]["designer_id"] == str(d.designer.actor_id)

    late = await client.post(
        f"/v1/claims/{second.json()['claim_id']}/confirm", json={}, headers=as_actor(d.agent_b)
    )
    assert late.status_code == 409
    assert late.json()["detail"]["code"] == "CONFLICT"
    assert late.json()["detail"]["winner"] == "agent"


@pytest.mark.asyncio
async def test_error_mapping(client, directory, session_factory):
    d = directory
    created = await client.post(
        "/v1/claims", json=claim_body(d.unit.unit_id), headers=as_actor(d.agent_a)
    )
    claim_id = created.json()["claim_id"]

    forbidden = await client.post(f"/v1/claims/{claim_id}/cancel", headers=as_actor(d.agent_a))
    assert forbidden.status_code == 403
    assert forbidden.json()["detail"]["message"] == "Agents cannot cancel claims"

    missing = await client.get(f"/v1/claims/{uuid4()}", headers=as_actor(d.manager))
    assert missing.status_code == 404

    bad_duration = await client.post(
        "/v1/claims",
        json={**claim_body(d.other_unit.unit_id), "duration_months": 5},
        headers=as_actor(d.agent_a),
    )
    assert bad_duration.status_code == 400

    not_live = await client.post(f"/v1/units/{d.unit.unit_id}/finalize", headers=as_actor(d.owner))
    assert not_live.status_code == 422

    await set_unit_status(session_factory, d.other_unit.unit_id, UnitStatus.LIVE)
    booked = await client.post(
        f"/v1/units/{d.other_unit.unit_id}/finalize", headers=as_actor(d.owner)
    )
    assert booked.status_code == 200
    assert booked.json()["unit"]["status"] == "booked"


@pytest.mark.asyncio
async def test_request_validation(client, directory):
    body = claim_body(directory.unit.unit_id)
    del body["duration_months"]

    response = await client.post("/v1/claims", json=body, headers=as_actor(directory.agent_a))

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_eligible_designers(client, directory):
    response = await client.get("/v1/designers", headers=as_actor(directory.manager))

    assert response.status_code == 200
    assert [a["actor_id"] for a in response.json()["actors"]] == [str(directory.designer.actor_id)]

    denied = await client.get("/v1/fitters", headers=as_actor(directory.agent_a))
    assert denied.status_code == 403


@pytest.mark.asyncio
async def test_notification_ledger(client, directory, session_factory):
    d = directory
    await LedgerNotifier(session_factory).notify(
        [d.agent_a.actor_id], "Claim promoted", "You are now first in queue.", link="/units/x"
    )

    response = await client.get("/v1/notifications", headers=as_actor(d.agent_a))

    assert response.status_code == 200
    notifications = response.json()["notifications"]
    assert [n["title"] for n in notifications] == ["Claim promoted"]
