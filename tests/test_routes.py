import pytest

pytest.importorskip("httpx", reason="httpx requis pour les tests client FastAPI")

from fastapi.testclient import TestClient

from app.config.settings import settings
from app.main import app
from app.services.room_service import ROOMS


def _until(ws, mtype: str, limit: int = 10) -> dict:
    """Lit les trames jusqu'à celle du type attendu (les gameState peuvent s'intercaler)."""
    for _ in range(limit):
        msg = ws.receive_json()
        if msg.get("type") == mtype:
            return msg
    raise AssertionError(f"no {mtype} frame received")


@pytest.fixture
def client(registry, monkeypatch):
    # pas d'écriture de résultats pendant les tests de routes
    monkeypatch.setattr(ROOMS, "sink", None)
    with TestClient(app) as c:
        yield c


def test_health_and_root(client):
    assert client.get("/").json()["ok"] is True
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["ok"] is True
    stats = client.get("/health/stats").json()
    assert stats["rooms"] == 0


def test_create_and_fetch_room(client):
    created = client.post("/rooms", json={"host_name": "Alice", "password": "pw"})
    assert created.status_code == 200
    payload = created.json()
    assert payload["ok"] is True
    assert len(payload["code"]) == 6
    assert payload["name"] == "Alice's Room"

    view = client.get(f"/rooms/{payload['code'].lower()}")
    assert view.status_code == 200
    body = view.json()
    assert body["phase"] == "lobby"
    assert body["options"]["has_password"] is True
    assert "password" not in body["options"]

    # salon vide : absent de la liste publique
    assert client.get("/rooms").json() == {"rooms": []}
    assert client.get("/rooms/ZZZZZZ").status_code == 404


def test_websocket_join_start_and_leave(client):
    code = client.post("/rooms", json={"name": "Table"}).json()["code"]

    with client.websocket_connect("/ws") as ws_a, client.websocket_connect("/ws") as ws_b:
        ws_a.send_json({"type": "ping"})
        assert ws_a.receive_json() == {"type": "pong"}

        ws_a.send_text("not json")
        assert ws_a.receive_json() == {"type": "error", "error": "invalid_json"}

        ws_a.send_json({"type": "start_game", "request_id": 1})
        assert _until(ws_a, "result")["error"] == "not_in_room"

        ws_a.send_json({"type": "join", "request_id": 2, "room": code, "name": "Alice", "player_id": "alice-1"})
        joined = _until(ws_a, "result")
        assert joined["success"] and joined["seat"] == "player" and joined["request_id"] == 2
        assert len(joined["secret"]) == 32
        state = _until(ws_a, "gameState")["payload"]
        assert state["observer_id"] == "alice-1"

        ws_b.send_json({"type": "join", "room": code, "name": "Bob", "player_id": "bob-22"})
        assert _until(ws_b, "result")["success"]
        _until(ws_b, "gameState")

        listed = client.get("/rooms").json()["rooms"]
        assert [r["player_count"] for r in listed] == [2]

        ws_a.send_json({"type": "dance"})
        assert _until(ws_a, "result")["error"] == "unknown_intent"

        ws_b.send_json({"type": "start_game"})
        state = _until(ws_b, "gameState")["payload"]
        assert state["phase"] == "playing"
        mine = next(p for p in state["players"] if p["id"] == "bob-22")
        other = next(p for p in state["players"] if p["id"] == "alice-1")
        assert all(card["role"] for card in mine["influences"])
        assert all(card["role"] is None for card in other["influences"])
        assert _until(ws_b, "result")["success"]

        public = client.get(f"/rooms/{code}").json()
        assert all(card["role"] is None for p in public["players"] for card in p["influences"])

        ws_a.send_json({"type": "leave"})
        ended = _until(ws_a, "result")
        assert ended["success"]
        over = _until(ws_b, "gameEnded")["payload"]
        assert over["winner_id"] == "bob-22"

        ws_b.send_json({"type": "play_again"})
        rematch = _until(ws_b, "result")
        assert rematch["success"] and rematch["code"] != code

    assert client.get(f"/rooms/{code}").status_code == 404


def test_lobby_channel_lists_rooms_users_and_chat(client):
    code = client.post("/rooms", json={"name": "Table"}).json()["code"]

    with client.websocket_connect("/ws") as lurker, client.websocket_connect("/ws") as alice:
        lurker.send_json({"type": "lobby_chat", "message": "hi"})
        assert _until(lurker, "result")["error"] == "not_in_lobby"

        lurker.send_json({"type": "join_lobby", "name": "Lurker", "player_id": "lurker-1"})
        assert _until(lurker, "roomList")["payload"] == {"rooms": []}
        users = _until(lurker, "onlineUsers")["payload"]["users"]
        assert users == [{"display_name": "Lurker", "is_guest": True, "in_game": False}]
        assert _until(lurker, "result")["success"]

        alice.send_json({"type": "join", "room": code, "name": "Alice", "player_id": "alice-1"})
        assert _until(alice, "result")["success"]
        rooms = _until(lurker, "roomList")["payload"]["rooms"]
        assert [(r["code"], r["player_count"]) for r in rooms] == [(code, 1)]

        # une socket en salon peut aussi suivre le lobby
        alice.send_json({"type": "join_lobby", "name": "Alice", "player_id": "alice-1"})
        assert _until(alice, "result")["success"]
        users = _until(lurker, "onlineUsers")["payload"]["users"]
        assert [(u["display_name"], u["in_game"]) for u in users] == [("Alice", True), ("Lurker", False)]

        lurker.send_json({"type": "lobby_chat", "message": "  anyone up for a game?  "})
        said = _until(alice, "lobbyChat")["payload"]
        assert said["sender_name"] == "Lurker"
        assert said["message"] == "anyone up for a game?"
        assert said["is_guest"] is True
        assert _until(lurker, "result")["success"]

        lurker.send_json({"type": "lobby_chat", "message": "x" * 201})
        assert _until(lurker, "result")["error"] == "message_too_long"
        lurker.send_json({"type": "lobby_chat", "message": "   "})
        assert _until(lurker, "result")["error"] == "empty_message"

        lurker.send_json({"type": "leave_lobby"})
        assert _until(lurker, "result")["success"]
        lurker.send_json({"type": "leave_lobby"})
        assert _until(lurker, "result")["error"] == "not_in_lobby"

    assert client.get("/health/stats").json()["sockets"]["lobby"] == 0


def test_reconnect_over_websocket_needs_the_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "DISCONNECT_GRACE_SECONDS", 30)
    code = client.post("/rooms", json={"name": "Table"}).json()["code"]

    with client.websocket_connect("/ws") as bob:
        with client.websocket_connect("/ws") as alice:
            alice.send_json({"type": "join", "room": code, "name": "Alice", "player_id": "alice-1"})
            secret = _until(alice, "result")["secret"]
            bob.send_json({"type": "join", "room": code, "name": "Bob", "player_id": "bob-22"})
            assert _until(bob, "result")["success"]
            bob.send_json({"type": "start_game"})
            assert _until(bob, "result")["success"]

        with client.websocket_connect("/ws") as intruder:
            intruder.send_json({"type": "reconnect", "room": code, "player_id": "alice-1"})
            assert _until(intruder, "result")["error"] == "invalid_secret"
            intruder.send_json({"type": "join", "room": code, "name": "Alice", "player_id": "alice-1"})
            assert _until(intruder, "result")["error"] == "already_connected"

        with client.websocket_connect("/ws") as back:
            back.send_json({"type": "reconnect", "room": code, "player_id": "alice-1", "secret": secret})
            resumed = _until(back, "result")
            assert resumed["success"] and resumed["reconnected"]
            state = _until(back, "gameState")["payload"]
            assert state["observer_id"] == "alice-1" and state["phase"] == "playing"


def test_http_failures_are_validation_or_not_found(client):
    bad = client.post("/rooms", json={"chat_mode": "loud"})
    assert bad.status_code == 422
    assert client.post("/rooms", json={"anonymous": "maybe"}).status_code == 422
    assert client.get("/rooms/ABC999").json() == {"detail": "room_not_found"}
