"""
Tests for visitor pass endpoints: issuance, gate verification, cancellation
and the lazily persisted expiry.
"""

import json

import pytest
from httpx import AsyncClient

from conftest import ADMIN, OTHER_WATCHMAN, RESIDENT_X, RESIDENT_Y, WATCHMAN_1, WATCHMAN_2
from gatehouse.services import pass_service
from gatehouse.services.pass_policy import PASS_CODE_ALPHABET

PASSES = "/api/v1/buildings/1/visitor-passes"
VERIFY = "/api/v1/buildings/1/visitor-passes/verify"


async def issue(client: AsyncClient, headers: dict, **body) -> dict:
    body.setdefault("visitor_name", "Asha Rao")
    response = await client.post(PASSES, json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["pass"]


@pytest.mark.asyncio
async def test_issue_pass_defaults(client: AsyncClient, auth_headers):
    """Generated code, 30 minute validity, resident's own apartment."""
    visitor_pass = await issue(client, auth_headers(RESIDENT_X), apartment_id=99)

    assert visitor_pass["status"] == "active"
    assert len(visitor_pass["code"]) == 6
    assert set(visitor_pass["code"]) <= set(PASS_CODE_ALPHABET)
    assert visitor_pass["apartment_id"] == RESIDENT_X.apartment_id
    assert visitor_pass["created_by"] == RESIDENT_X.id
    assert visitor_pass["created_at"].startswith("2024-01-09T09:00:00")
    assert visitor_pass["expires_at"].startswith("2024-01-09T09:30:00")


@pytest.mark.asyncio
async def test_issue_pass_camel_case_fields(client: AsyncClient, auth_headers):
    response = await client.post(
        PASSES,
        json={"visitorName": "Asha Rao", "apartmentId": 14, "expiresAt": "2024-01-09T12:00:00Z"},
        headers=auth_headers(ADMIN),
    )
    assert response.status_code == 201
    visitor_pass = response.json()["pass"]
    assert visitor_pass["visitor_name"] == "Asha Rao"
    assert visitor_pass["apartment_id"] == 14
    assert visitor_pass["expires_at"].startswith("2024-01-09T12:00:00")


@pytest.mark.asyncio
async def test_issue_pass_offset_expiry_stored_as_utc(client: AsyncClient, auth_headers):
    visitor_pass = await issue(client, auth_headers(RESIDENT_X), expires_at="2024-01-09T15:00:00+05:30")
    assert visitor_pass["expires_at"].startswith("2024-01-09T09:30:00")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "expiry",
    [
        "tomorrow-ish",
        "2024-13-45T99:00:00",
        "",
        "9999-12-31T23:59:59-05:00",
        "0001-01-01T00:00:00+01:00",
    ],
)
async def test_issue_pass_unparseable_expiry_falls_back(client: AsyncClient, auth_headers, expiry):
    visitor_pass = await issue(client, auth_headers(RESIDENT_X), expires_at=expiry)
    assert visitor_pass["expires_at"].startswith("2024-01-09T09:30:00")


@pytest.mark.asyncio
@pytest.mark.parametrize("expiry", [1704790800000, True, {"at": "2024-01-09T12:00:00Z"}])
async def test_issue_pass_non_string_expiry_falls_back(client: AsyncClient, auth_headers, expiry):
    """Epoch millis and other non-text values get the default validity."""
    response = await client.post(
        PASSES,
        json={"visitorName": "Asha Rao", "expiresAt": expiry},
        headers=auth_headers(RESIDENT_X),
    )
    assert response.status_code == 201, response.text
    assert response.json()["pass"]["expires_at"].startswith("2024-01-09T09:30:00")


@pytest.mark.asyncio
async def test_issue_pass_explicit_code(client: AsyncClient, auth_headers):
    visitor_pass = await issue(client, auth_headers(RESIDENT_X), code=" abcd23 ")
    assert visitor_pass["code"] == "ABCD23"

    response = await client.post(PASSES, json={"code": "ABCD23"}, headers=auth_headers(RESIDENT_Y))
    assert response.status_code == 409
    assert response.json()["error"] == "duplicate_pass_code"


@pytest.mark.asyncio
async def test_generated_code_collision_is_retried(client: AsyncClient, auth_headers, monkeypatch):
    codes = iter(["QQQQQQ", "QQQQQQ", "RRRRRR"])
    monkeypatch.setattr(pass_service, "generate_code", lambda length: next(codes))

    first = await issue(client, auth_headers(RESIDENT_X))
    second = await issue(client, auth_headers(RESIDENT_Y))
    assert first["code"] == "QQQQQQ"
    assert second["code"] == "RRRRRR"


@pytest.mark.asyncio
async def test_issue_pass_scoping(client: AsyncClient, auth_headers):
    """Watchmen don't issue passes; nobody issues into another building."""
    assert (await client.post(PASSES, json={}, headers=auth_headers(WATCHMAN_1))).status_code == 403
    other = await client.post("/api/v1/buildings/2/visitor-passes", json={}, headers=auth_headers(RESIDENT_X))
    assert other.status_code == 403


@pytest.mark.asyncio
async def test_verify_pass(client: AsyncClient, auth_headers, clock):
    visitor_pass = await issue(client, auth_headers(RESIDENT_X))
    clock.advance(minutes=5)

    response = await client.post(VERIFY, json={"code": visitor_pass["code"].lower()}, headers=auth_headers(WATCHMAN_1))
    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is True
    assert data["message"] == "verified"
    assert data["status"] == "verified"
    assert data["verified_by"] == WATCHMAN_1.id
    assert data["verified_at"].startswith("2024-01-09T09:05:00")
    assert data["time_remaining_minutes"] == 25
    assert data["visitor_name"] == "Asha Rao"


@pytest.mark.asyncio
async def test_verify_twice_keeps_first_verifier(client: AsyncClient, auth_headers, clock):
    """Second watchman is told "already verified" with the first one's details."""
    visitor_pass = await issue(client, auth_headers(RESIDENT_X))
    first = await client.post(VERIFY, json={"code": visitor_pass["code"]}, headers=auth_headers(WATCHMAN_1))
    assert first.json()["message"] == "verified"

    clock.advance(minutes=2)
    second = await client.post(VERIFY, json={"code": visitor_pass["code"]}, headers=auth_headers(WATCHMAN_2))
    assert second.status_code == 200
    data = second.json()
    assert data["valid"] is True
    assert data["message"] == "already verified"
    assert data["verified_by"] == WATCHMAN_1.id
    assert data["verified_at"] == first.json()["verified_at"]


@pytest.mark.asyncio
async def test_verify_after_expiry(client: AsyncClient, auth_headers, clock):
    """31 minutes after issuance the pass is expired, and stays expired."""
    visitor_pass = await issue(client, auth_headers(RESIDENT_X))
    clock.advance(minutes=31)

    response = await client.post(VERIFY, json={"code": visitor_pass["code"]}, headers=auth_headers(WATCHMAN_1))
    assert response.status_code == 200
    data = response.json()
    assert data["valid"] is False
    assert data["message"] == "expired"
    assert data["status"] == "expired"
    assert data["verified_by"] is None
    assert data["time_remaining_minutes"] == 0

    stored = await client.get(f"/api/v1/visitor-passes/{visitor_pass['id']}", headers=auth_headers(ADMIN))
    assert stored.json()["status"] == "expired"

    again = await client.post(VERIFY, json={"code": visitor_pass["code"]}, headers=auth_headers(WATCHMAN_2))
    assert again.json()["message"] == "expired"


@pytest.mark.asyncio
async def test_verify_at_exact_expiry_instant(client: AsyncClient, auth_headers, clock):
    visitor_pass = await issue(client, auth_headers(RESIDENT_X))
    clock.advance(minutes=30)

    response = await client.post(VERIFY, json={"code": visitor_pass["code"]}, headers=auth_headers(WATCHMAN_1))
    assert response.json()["message"] == "verified"


@pytest.mark.asyncio
async def test_verify_cancelled_pass(client: AsyncClient, auth_headers):
    visitor_pass = await issue(client, auth_headers(RESIDENT_X))
    await client.post(f"/api/v1/visitor-passes/{visitor_pass['id']}/cancel", headers=auth_headers(RESIDENT_X))

    response = await client.post(VERIFY, json={"code": visitor_pass["code"]}, headers=auth_headers(WATCHMAN_1))
    assert response.status_code == 200
    assert response.json()["valid"] is False
    assert response.json()["message"] == "cancelled"


@pytest.mark.asyncio
async def test_verify_by_qr_payload(client: AsyncClient, auth_headers):
    visitor_pass = await issue(client, auth_headers(RESIDENT_X))
    qr = json.dumps({"code": visitor_pass["code"], "building": 1})

    response = await client.post(VERIFY, json={"qr_data": qr}, headers=auth_headers(ADMIN))
    assert response.status_code == 200
    assert response.json()["message"] == "verified"
    assert response.json()["verified_by"] == ADMIN.id


@pytest.mark.asyncio
async def test_verify_bad_qr_payload(client: AsyncClient, auth_headers):
    response = await client.post(VERIFY, json={"qr_data": "not json"}, headers=auth_headers(WATCHMAN_1))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_verify_requires_code(client: AsyncClient, auth_headers):
    response = await client.post(VERIFY, json={"code": "   "}, headers=auth_headers(WATCHMAN_1))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_verify_unknown_code(client: AsyncClient, auth_headers):
    response = await client.post(VERIFY, json={"code": "ZZZZZZ"}, headers=auth_headers(WATCHMAN_1))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_verify_other_building_forbidden(client: AsyncClient, auth_headers):
    """A foreign watchman is refused whether or not the code exists."""
    visitor_pass = await issue(client, auth_headers(RESIDENT_X))

    real = await client.post(VERIFY, json={"code": visitor_pass["code"]}, headers=auth_headers(OTHER_WATCHMAN))
    fake = await client.post(VERIFY, json={"code": "ZZZZZZ"}, headers=auth_headers(OTHER_WATCHMAN))
    assert real.status_code == 403
    assert fake.status_code == 403
    assert real.json() == fake.json()


@pytest.mark.asyncio
async def test_residents_cannot_verify(client: AsyncClient, auth_headers):
    visitor_pass = await issue(client, auth_headers(RESIDENT_X))
    response = await client.post(VERIFY, json={"code": visitor_pass["code"]}, headers=auth_headers(RESIDENT_X))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_cancel_pass(client: AsyncClient, auth_headers):
    visitor_pass = await issue(client, auth_headers(RESIDENT_X))

    response = await client.post(f"/api/v1/visitor-passes/{visitor_pass['id']}/cancel", headers=auth_headers(ADMIN))
    assert response.status_code == 200
    assert response.json() == {
        "message": "Pass cancelled successfully",
        "id": visitor_pass["id"],
        "status": "cancelled",
    }

    again = await client.post(f"/api/v1/visitor-passes/{visitor_pass['id']}/cancel", headers=auth_headers(ADMIN))
    assert again.status_code == 409
    assert again.json()["error"] == "already_cancelled"


@pytest.mark.asyncio
async def test_cancel_pass_not_owner(client: AsyncClient, auth_headers):
    visitor_pass = await issue(client, auth_headers(RESIDENT_X))
    for identity in (RESIDENT_Y, WATCHMAN_1):
        response = await client.post(
            f"/api/v1/visitor-passes/{visitor_pass['id']}/cancel", headers=auth_headers(identity)
        )
        assert response.status_code == 403


@pytest.mark.asyncio
async def test_cancel_verified_or_expired_pass(client: AsyncClient, auth_headers, clock):
    verified = await issue(client, auth_headers(RESIDENT_X))
    lapsed = await issue(client, auth_headers(RESIDENT_X))
    await client.post(VERIFY, json={"code": verified["code"]}, headers=auth_headers(WATCHMAN_1))

    response = await client.post(f"/api/v1/visitor-passes/{verified['id']}/cancel", headers=auth_headers(RESIDENT_X))
    assert response.status_code == 409
    assert response.json()["detail"] == "Pass is verified"

    clock.advance(hours=1)
    response = await client.post(f"/api/v1/visitor-passes/{lapsed['id']}/cancel", headers=auth_headers(RESIDENT_X))
    assert response.status_code == 409
    assert response.json()["detail"] == "Pass is expired"


@pytest.mark.asyncio
async def test_cancel_missing_pass(client: AsyncClient, auth_headers):
    response = await client.post("/api/v1/visitor-passes/777/cancel", headers=auth_headers(ADMIN))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_active_passes(client: AsyncClient, auth_headers, clock):
    """Usable passes only, soonest expiry first; residents see their own."""
    short = await issue(client, auth_headers(RESIDENT_X), expires_at="2024-01-09T09:10:00Z")
    mine = await issue(client, auth_headers(RESIDENT_X))
    theirs = await issue(client, auth_headers(RESIDENT_Y), expires_at="2024-01-09T11:00:00Z")
    used = await issue(client, auth_headers(RESIDENT_Y))
    await client.post(VERIFY, json={"code": used["code"]}, headers=auth_headers(WATCHMAN_1))

    gate = await client.get(PASSES, headers=auth_headers(WATCHMAN_1))
    assert gate.status_code == 200
    assert [p["id"] for p in gate.json()] == [short["id"], mine["id"], theirs["id"]]

    own = await client.get(PASSES, headers=auth_headers(RESIDENT_X))
    assert [p["id"] for p in own.json()] == [short["id"], mine["id"]]

    clock.advance(minutes=15)
    later = await client.get(PASSES, headers=auth_headers(ADMIN))
    assert [p["id"] for p in later.json()] == [mine["id"], theirs["id"]]


@pytest.mark.asyncio
async def test_get_pass_reports_lapsed_as_expired(client: AsyncClient, auth_headers, clock):
    """Reads show the effective status before anyone has persisted it."""
    visitor_pass = await issue(client, auth_headers(RESIDENT_X))
    clock.advance(minutes=45)

    response = await client.get(f"/api/v1/visitor-passes/{visitor_pass['id']}", headers=auth_headers(RESIDENT_X))
    assert response.status_code == 200
    assert response.json()["status"] == "expired"


@pytest.mark.asyncio
async def test_pass_lifecycle_recorded_in_audit_log(client: AsyncClient, auth_headers, clock):
    verified = await issue(client, auth_headers(RESIDENT_X))
    lapsed = await issue(client, auth_headers(RESIDENT_X), expires_at="2024-01-09T09:01:00Z")
    await client.post(VERIFY, json={"code": verified["code"]}, headers=auth_headers(WATCHMAN_1))
    await client.post(VERIFY, json={"code": verified["code"]}, headers=auth_headers(WATCHMAN_2))
    clock.advance(minutes=5)
    await client.post(VERIFY, json={"code": lapsed["code"]}, headers=auth_headers(WATCHMAN_1))
    await client.post(VERIFY, json={"code": lapsed["code"]}, headers=auth_headers(WATCHMAN_2))

    events = (await client.get("/api/v1/buildings/1/events", headers=auth_headers(ADMIN))).json()
    types = sorted(e["type"] for e in events)
    assert types == ["visitor_expired", "visitor_request", "visitor_request", "visitor_verified"]


@pytest.mark.asyncio
async def test_get_pass_residents_see_only_their_own(client: AsyncClient, auth_headers):
    visitor_pass = await issue(client, auth_headers(RESIDENT_X))
    url = f"/api/v1/visitor-passes/{visitor_pass['id']}"

    assert (await client.get(url, headers=auth_headers(RESIDENT_X))).status_code == 200
    assert (await client.get(url, headers=auth_headers(ADMIN))).status_code == 200
    assert (await client.get(url, headers=auth_headers(WATCHMAN_1))).status_code == 200

    response = await client.get(url, headers=auth_headers(RESIDENT_Y))
    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"
