import base64
import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from onthespot.main import create_app
from onthespot.store.memory_store import MemoryStore

PLAN_BODY = {
    "location_id": "spot-1",
    "location_name": "Main Library",
    "title": "Study group",
    "start_time": "2026-05-01T12:00:00Z",
    "end_time": "2026-05-01T14:00:00Z",
    "max_participants": 2,
}


@pytest.fixture
def client():
    app = create_app(store=MemoryStore())
    with TestClient(app) as client:
        yield client


def settle(client: TestClient) -> None:
    client.portal.call(client.app.state.services.settle)


def sign_in(client: TestClient, user_id: str = "alice") -> None:
    resp = client.post("/session/sign-in", json={"user_id": user_id})
    assert resp.status_code == 200
    assert resp.json() == {"user_id": user_id, "signed_in": True}


def test_health_and_root(client):
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/").json()["docs"] == "/docs"


def test_session_round_trip(client):
    assert client.get("/session").json() == {"user_id": None, "signed_in": False}
    sign_in(client)
    resp = client.post("/session/sign-out")
    assert resp.json()["signed_in"] is False


def test_spot_lifecycle(client):
    assert client.post("/spots", json={"name": "Cafe A", "category": "Cafe", "lat": 37.5, "lng": 127.0}).status_code == 401
    sign_in(client)

    created = client.post("/spots", json={"name": "Cafe A", "category": "Cafe", "lat": 37.5, "lng": 127.0})
    assert created.status_code == 200
    spot = created.json()
    assert spot["current_status"] == "noLine"
    assert spot["category_class"] == "queueBased"

    updated = client.post(f"/spots/{spot['id']}/status", json={"status": "longLine"})
    assert updated.status_code == 200
    assert updated.json()["status_title"] == "Long Wait"

    wrong_axis = client.post(f"/spots/{spot['id']}/status", json={"status": "quiet"})
    assert wrong_axis.status_code == 422
    assert client.post("/spots/missing/status", json={"status": "noLine"}).status_code == 404

    listed = client.get("/spots").json()
    assert [s["id"] for s in listed] == [spot["id"]]
    assert client.get("/spots/search", params={"vibe": "Busy / Full"}).json()[0]["id"] == spot["id"]
    nearby = client.get("/spots/nearby", params={"lat": 37.5, "lng": 127.0, "radius_m": 100}).json()
    assert nearby[0]["distance_m"] == 0.0

    edited = client.patch(f"/spots/{spot['id']}", json={"name": "Cafe B"})
    assert edited.json()["name"] == "Cafe B"

    settle(client)
    profile = client.get("/profile").json()
    assert profile["contribution_points"] == 60
    assert profile["spots_added"] == 1

    notifications = client.get("/notifications").json()
    assert notifications["items"][0]["title"] == "Status Update: Cafe A"
    assert notifications["unread_count"] == 2

    assert client.post(f"/spots/{spot['id']}/hide").json()["changed"] is True
    assert client.get("/spots").json() == []

    assert client.delete(f"/spots/{spot['id']}").status_code == 200
    assert client.get(f"/spots/{spot['id']}").status_code == 404


def test_plan_join_capacity_and_leave(client):
    sign_in(client)
    created = client.post("/plans", json=PLAN_BODY)
    assert created.status_code == 200
    plan = created.json()
    assert plan["participants"] == ["alice"]
    assert plan["host_name"] == "User"

    joined = client.post(f"/plans/{plan['id']}/join", json={"user_id": "bob"})
    assert joined.json()["is_full"] is True
    full = client.post(f"/plans/{plan['id']}/join", json={"user_id": "carol"})
    assert full.status_code == 409

    listed = client.get("/plans", params={"location_id": "spot-1"}).json()
    assert [p["id"] for p in listed] == [plan["id"]]

    left = client.post(f"/plans/{plan['id']}/leave").json()
    assert left["deleted"] is False
    assert left["plan"]["host_id"] == "bob"

    assert client.delete(f"/plans/{plan['id']}").status_code == 403


def test_invalid_plan_is_rejected(client):
    sign_in(client)
    body = dict(PLAN_BODY, max_participants=1)
    assert client.post("/plans", json=body).status_code == 422


def test_chat_messages_and_images(client):
    sign_in(client)
    plan = client.post("/plans", json=PLAN_BODY).json()

    sent = client.post(f"/plans/{plan['id']}/messages", json={"text": "hello"})
    assert sent.status_code == 200
    assert sent.json()["is_mine"] is True

    buf = io.BytesIO()
    Image.new("RGB", (40, 40), (10, 120, 200)).save(buf, format="PNG")
    image = base64.b64encode(buf.getvalue()).decode("ascii")
    sent_image = client.post(f"/plans/{plan['id']}/images", json={"image": image})
    assert sent_image.status_code == 200
    assert sent_image.json()["text"] == "Sent an image"

    bad = client.post(f"/plans/{plan['id']}/images", json={"image": base64.b64encode(b"nope").decode()})
    assert bad.status_code == 413

    settle(client)
    messages = client.get(f"/plans/{plan['id']}/messages").json()
    assert [m["text"] for m in messages] == ["hello", "Sent an image"]
    gallery = client.get(f"/plans/{plan['id']}/gallery").json()
    assert len(gallery) == 1 and gallery[0]["has_image"]

    assert client.post("/plans/missing/messages", json={"text": "hi"}).status_code == 404


def test_moderation_and_profile(client):
    assert client.get("/profile").status_code == 401
    sign_in(client)

    assert client.post("/moderation/blocked/alice").status_code == 422
    assert client.post("/moderation/blocked/bob").json()["changed"] is True
    assert client.post("/moderation/hidden/spot-9").json()["changed"] is True
    assert client.delete("/moderation/hidden/spot-9").json()["changed"] is True
    report = client.post("/moderation/reports", json={"content_id": "m1", "kind": "message", "reason": "spam"})
    assert report.json()["report"]["kind"] == "message"

    saved = client.put("/profile", json={"name": "Alice Lee", "bio": "hi", "home_location": "Seoul"})
    assert saved.json()["name"] == "Alice Lee"
    settle(client)
    assert client.get("/moderation").json()["blocked_users"] == ["bob"]
    assert client.get("/profile/alice").json()["name"] == "Alice Lee"
    assert client.get("/profile/ghost").json()["name"] == "Unknown User"

    assert client.delete("/notifications").status_code == 200
    assert client.get("/notifications").json()["items"] == []
    assert client.get("/session/failures").json() == []
