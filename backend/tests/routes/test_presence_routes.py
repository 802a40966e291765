"""Tests for /api/v1/presence."""


def auth(user_id: str) -> dict:
    return {"X-User-Id": user_id}


def test_update_and_read_presence(client):
    online = client.put("/api/v1/presence", json={"is_online": True}, headers=auth("u1"))
    assert online.status_code == 200
    assert online.json()["is_online"] is True

    client.put("/api/v1/presence", json={"is_online": False}, headers=auth("u1"))
    status = client.get("/api/v1/presence/u1", headers=auth("u2")).json()

    assert status["user_id"] == "u1"
    assert status["is_online"] is False
    assert status["last_seen"] is not None


def test_never_reported_user_is_offline(client):
    status = client.get("/api/v1/presence/u3", headers=auth("u1")).json()

    assert status == {"user_id": "u3", "is_online": False, "last_seen": None}
