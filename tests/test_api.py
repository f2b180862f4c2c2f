from datetime import timedelta

import httpx
import pytest

from apps.api.main import create_app
from core.config import settings as app_settings
from services.entities import utcnow
from services.seed import seed_demo_profiles

pytestmark = pytest.mark.parametrize("repo", ["memory"], indirect=True)

ADMIN = (app_settings.admin_user, app_settings.admin_pass)


@pytest.fixture
async def client(services):
    await seed_demo_profiles(services.repo)
    app = create_app(services)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def sign_in(client: httpx.AsyncClient, user_id: str) -> dict[str, str]:
    response = await client.post("/auth/session", json={"user_id": user_id})
    assert response.status_code == 201
    return {"Authorization": f"Bearer {response.json()['token']}"}


async def test_health(client):
    assert (await client.get("/health/")).json() == {"status": "healthy"}
    assert (await client.get("/health/storage")).json()["status"] == "healthy"
    assert (await client.get("/health/redis")).json()["status"] == "healthy"


async def test_requires_session(client):
    assert (await client.get("/profiles/me")).status_code == 401
    bad = {"Authorization": "Bearer not-a-session"}
    assert (await client.get("/profiles/me", headers=bad)).status_code == 401


async def test_demo_session_and_logout(client):
    headers = await sign_in(client, "demo-alex")
    session = await client.get("/auth/session", headers=headers)
    assert session.json()["user_id"] == "demo-alex"
    me = await client.get("/profiles/me", headers=headers)
    assert me.json()["name"] == "Alex"

    assert (await client.post("/auth/logout", headers=headers)).status_code == 200
    assert (await client.get("/auth/session", headers=headers)).status_code == 401


async def test_phone_sign_in_and_profile_creation(client, redis_client):
    assert (await client.post("/auth/otp", json={"phone": "+15551234567"})).status_code == 202
    code = await redis_client.get("otp:+15551234567")
    response = await client.post("/auth/session", json={"phone": "+15551234567", "code": code})
    assert response.status_code == 201
    headers = {"Authorization": f"Bearer {response.json()['token']}"}

    assert (await client.get("/profiles/me", headers=headers)).status_code == 404

    birthday = utcnow().date().replace(year=utcnow().year - 30, day=1).isoformat()
    body = {
        "name": "Robin",
        "birthday": birthday,
        "gender": "non_binary",
        "sexuality": "queer",
        "show_me": "everyone",
        "prompts": ["a", "b", "c"],
    }
    created = await client.post("/profiles", json=body, headers=headers)
    assert created.status_code == 201
    assert created.json()["age"] in (29, 30)

    too_young = {**body, "birthday": utcnow().date().isoformat()}
    error = await client.post("/profiles", json=too_young, headers=headers)
    assert error.status_code == 422
    assert error.json()["code"] == "invalid_input"


async def test_schedule_flow_over_http(client):
    alex = await sign_in(client, "demo-alex")
    jordan = await sign_in(client, "demo-jordan")

    first = await client.post("/matches/swipes", json={"to_id": "demo-jordan", "action": "like"}, headers=alex)
    assert first.json() == {"is_match": False, "match_id": None}
    second = await client.post("/matches/swipes", json={"to_id": "demo-alex", "action": "like"}, headers=jordan)
    match_id = second.json()["match_id"]
    assert second.json()["is_match"]

    thread = (await client.get(f"/matches/{match_id}/thread", headers=alex)).json()
    other = await client.get(f"/matches/{match_id}/other-user", headers=alex)
    assert other.json()["id"] == "demo-jordan"

    slot = (utcnow() + timedelta(hours=2)).replace(microsecond=0).isoformat()
    proposal = await client.post(
        f"/threads/{thread['id']}/proposals", json={"call_type": "audio", "slots": [slot]}, headers=alex
    )
    assert proposal.status_code == 201
    assert (await client.get(f"/threads/{thread['id']}", headers=jordan)).json()["mode"] == "confirm"

    own = await client.post(f"/threads/{thread['id']}/confirm", json={"slot": slot}, headers=alex)
    assert own.status_code == 403

    confirmed = await client.post(f"/threads/{thread['id']}/confirm", json={"slot": slot}, headers=jordan)
    assert confirmed.status_code == 201
    event = confirmed.json()

    lobby = (await client.get(f"/calls/{event['id']}/lobby", headers=alex)).json()
    assert not lobby["can_join"]
    early = await client.post(f"/calls/{event['id']}/join", headers=alex)
    assert early.status_code == 412

    upcoming = await client.get(f"/threads/{thread['id']}/upcoming-call", headers=jordan)
    assert upcoming.json()["id"] == event["id"]

    canceled = await client.post(f"/calls/{event['id']}/cancel", headers=jordan)
    assert canceled.json()["state"] == "canceled"
    assert (await client.get(f"/threads/{thread['id']}/upcoming-call", headers=jordan)).status_code == 404


async def test_outsider_cannot_read_match(client):
    alex = await sign_in(client, "demo-alex")
    taylor = await sign_in(client, "demo-taylor")
    await client.put("/dev/auto-match", json={"enabled": True}, auth=ADMIN)
    swipe = await client.post("/matches/swipes", json={"to_id": "demo-jordan", "action": "like"}, headers=alex)
    match_id = swipe.json()["match_id"]

    forbidden = await client.get(f"/matches/{match_id}", headers=taylor)
    assert (forbidden.status_code, forbidden.json()["code"]) == (403, "permission_denied")
    missing = await client.get("/matches/missing", headers=taylor)
    assert missing.status_code == 404
    assert missing.json() == {"detail": "Match not found", "code": "not_found"}

    bad_zone = await client.get("/threads/slot-presets", params={"tz": "Mars/Olympus"}, headers=taylor)
    assert (bad_zone.status_code, bad_zone.json()["code"]) == (422, "invalid_input")


async def test_report_and_block_over_http(client):
    alex = await sign_in(client, "demo-alex")
    report = await client.post(
        "/safety/reports",
        json={"reported_id": "demo-sam", "category": "spam", "notes": "links", "block": True},
        headers=alex,
    )
    assert report.status_code == 201

    candidates = (await client.get("/profiles/candidates", headers=alex)).json()
    assert "demo-sam" not in {p["id"] for p in candidates}
    assert "demo-alex" not in {p["id"] for p in candidates}

    again = await client.post("/safety/reports", json={"reported_id": "demo-blake", "category": "fake"}, headers=alex)
    assert again.status_code == 429


async def test_dev_endpoints_require_admin(client):
    assert (await client.put("/dev/auto-match", json={"enabled": True})).status_code == 401
    assert (await client.put("/dev/auto-match", json={"enabled": True}, auth=("admin", "wrong"))).status_code == 401

    enabled = await client.put("/dev/auto-match", json={"enabled": True}, auth=ADMIN)
    assert enabled.json() == {"enabled": True}
    assert (await client.post("/dev/seed", auth=ADMIN)).json() == {"added": 0}

    assert (await client.post("/dev/reset", auth=ADMIN)).json() == {"ok": True}
    assert (await client.post("/dev/seed", auth=ADMIN)).json() == {"added": 12}


async def test_metrics_endpoint(client):
    await client.get("/health/")
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "api_request_duration_seconds" in response.text
