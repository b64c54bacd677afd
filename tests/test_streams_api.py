"""
Tests for the stream control and chat history HTTP endpoints.
"""


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_create_and_fetch_stream(client, seed_user):
    response = client.post("/api/streams", json={"userId": "u1", "title": "Seoul night walk", "category": "travel"})
    assert response.status_code == 201
    created = response.json()
    assert created["isLive"] is False
    assert created["isPublic"] is False

    fetched = client.get(f"/api/streams/{created['id']}").json()
    assert fetched["title"] == "Seoul night walk"
    assert fetched["category"] == "travel"


def test_create_stream_requires_title(client):
    response = client.post("/api/streams", json={"userId": "u1"})
    assert response.status_code == 422


def test_missing_stream_is_404(client):
    assert client.get("/api/streams/nope").status_code == 404
    assert client.post("/api/streams/nope/start").status_code == 404
    assert client.post("/api/streams/nope/stop").status_code == 404
    assert client.post("/api/streams/nope/heartbeat", json={"viewerCount": 1}).status_code == 404


def test_start_marks_live_and_registers_heartbeat(client, app, seed_stream):
    response = client.post("/api/streams/abc/start")
    assert response.status_code == 200
    body = response.json()
    assert body["isLive"] is True
    assert body["isPublic"] is True
    assert body["viewerCount"] == 0
    assert body["startedAt"] is not None

    assert "abc" in app.state.liveness
    assert client.get("/api/streams/active").json() == {"streamIds": ["abc"]}
    assert [s["id"] for s in client.get("/api/streams", params={"live": True}).json()] == ["abc"]


def test_stop_marks_offline_and_deregisters(client, app, seed_stream):
    client.post("/api/streams/abc/start")

    body = client.post("/api/streams/abc/stop").json()

    assert body["isLive"] is False
    assert body["isPublic"] is False
    assert body["endedAt"] is not None
    assert "abc" not in app.state.liveness
    assert client.get("/api/streams", params={"live": True}).json() == []


def test_heartbeat_endpoint_records_viewer_count(client, app, seed_stream):
    response = client.post("/api/streams/abc/heartbeat", json={"viewerCount": 12})

    assert response.status_code == 200
    assert app.state.liveness.get("abc").viewer_count == 12
    assert client.get("/api/streams/active").json() == {"streamIds": ["abc"]}


def test_heartbeat_rejects_negative_viewer_count(client):
    response = client.post("/api/streams/abc/heartbeat", json={"viewerCount": -1})
    assert response.status_code == 422


def test_chat_history_endpoint_is_oldest_first(client, seed_stream):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "join_stream", "streamId": "abc"})
        for text in ("first", "second"):
            ws.send_json({"type": "chat_message", "streamId": "abc", "userId": "u1", "message": text})
        seen = 0
        while seen < 2:
            if ws.receive_json()["type"] == "new_message":
                seen += 1

    messages = client.get("/api/streams/abc/chat").json()
    assert [m["message"] for m in messages] == ["first", "second"]
    assert messages[0]["username"] == "minji"

    latest = client.get("/api/streams/abc/chat", params={"limit": 1}).json()
    assert [m["message"] for m in latest] == ["second"]


def test_heartbeat_for_unknown_stream_is_not_registered(client, app):
    response = client.post("/api/streams/ghost/heartbeat", json={"viewerCount": 3})

    assert response.status_code == 404
    assert "ghost" not in app.state.liveness
