import asyncio
import random

import pytest

from app.config.settings import settings
from app.engine.player import Identity, PlayerStatus
from app.engine.room import RoomOptions, RoomPhase
from app.services.identity import GuestIdentityProvider, clean_display_name
from app.services.room_service import RoomService
from app.services.ws_manager import WSManager


@pytest.fixture
def service(registry, recording_sink):
    return RoomService(registry, WSManager(), sink=recording_sink, rng_factory=lambda: random.Random(11))


def _who(pid):
    return Identity(id=pid, display_name=pid.capitalize())


async def _started(service, *pids):
    room = service.create_room(RoomOptions(), host_name="Alice")
    for pid in pids:
        assert (await service.join(room.code, _who(pid)))["success"]
    assert (await service.start_game(room.code, pids[0]))["success"]
    return room


def test_create_room_defaults_name_and_lists_only_occupied(service):
    async def scenario():
        room = service.create_room(RoomOptions(), host_name="Alice")
        assert room.name == "Alice's Room"
        assert service.list_rooms() == []
        await service.join(room.code, _who("alice"))
        return service.list_rooms()

    rooms = asyncio.run(scenario())
    assert len(rooms) == 1
    assert rooms[0].player_count == 1


def test_unknown_room_and_unknown_action(service):
    async def scenario():
        missing = await service.join("NOPE00", _who("alice"))
        room = await _started(service, "alice", "bobby")
        current = room.current_player().id
        bad = await service.declare_action(room.code, current, "bribe")
        ok = await service.declare_action(room.code, current, "income")
        return missing, bad, ok, room

    missing, bad, ok, room = asyncio.run(scenario())
    assert missing == {"success": False, "error": "room_not_found"}
    assert bad == {"success": False, "error": "unknown_action"}
    assert ok == {"success": True}
    assert room.players[0].coins == 3


def test_lobby_disconnect_removes_player_and_closes_room(service, registry):
    async def scenario():
        room = service.create_room(RoomOptions(name="Vide"))
        await service.join(room.code, _who("alice"))
        await service.disconnect(room.code, "alice")
        return room.code

    code = asyncio.run(scenario())
    assert registry.get(code) is None


def test_grace_expiry_forfeits_and_records_result(service, recording_sink, monkeypatch):
    monkeypatch.setattr(settings, "DISCONNECT_GRACE_SECONDS", 0.01)

    async def scenario():
        room = await _started(service, "alice", "bobby")
        await service.disconnect(room.code, "alice")
        assert room.find_player("alice").status == PlayerStatus.DISCONNECTED
        await asyncio.sleep(0.1)
        return room

    room = asyncio.run(scenario())
    assert room.phase == RoomPhase.ENDED
    assert room.winner_id == "bobby"
    assert room.find_player("alice").forfeited
    assert len(recording_sink.results) == 1
    assert recording_sink.results[0].winner_id == "bobby"


def test_reconnect_cancels_grace_timer(service, monkeypatch):
    monkeypatch.setattr(settings, "DISCONNECT_GRACE_SECONDS", 0.05)

    async def scenario():
        room = await _started(service, "alice", "bobby")
        await service.disconnect(room.code, "alice")
        secret = room.find_player("alice").secret
        again = await service.reconnect(room.code, "alice", secret)
        twice = await service.reconnect(room.code, "alice", secret)
        await asyncio.sleep(0.15)
        return room, again, twice

    room, again, twice = asyncio.run(scenario())
    assert again["success"] and again["reconnected"]
    assert twice == {"success": False, "error": "already_connected"}
    assert room.phase == RoomPhase.PLAYING
    assert room.find_player("alice").status == PlayerStatus.ACTIVE


def test_join_while_disconnected_resumes_seat(service, monkeypatch):
    monkeypatch.setattr(settings, "DISCONNECT_GRACE_SECONDS", 5)

    async def scenario():
        room = await _started(service, "alice", "bobby")
        await service.disconnect(room.code, "alice")
        result = await service.join(room.code, _who("alice"), secret=room.find_player("alice").secret)
        slot = service.registry.get(room.code)
        return room, result, dict(slot.grace_timers)

    room, result, timers = asyncio.run(scenario())
    assert result["seat"] == "player" and result["reconnected"]
    assert timers == {}
    assert room.find_player("alice").connected


def test_leave_mid_game_forfeits_then_play_again(service, registry):
    async def scenario():
        room = await _started(service, "alice", "bobby")
        too_early = await service.play_again(room.code, "bobby")
        assert (await service.leave(room.code, "alice"))["success"]
        # alice a déjà abandonné : le salon reste ouvert tant que bobby y est
        first = await service.play_again(room.code, "alice")
        second = await service.play_again(room.code, "bobby")
        joined = await service.join(first["code"], _who("bobby"))
        return room, too_early, first, second, joined

    room, too_early, first, second, joined = asyncio.run(scenario())
    assert too_early == {"success": False, "error": "game_not_ended"}
    assert room.winner_id == "bobby"
    assert first["success"] and second["code"] == first["code"]
    rematch = registry.get(first["code"])
    assert rematch.room.name.endswith(" - Rematch")
    assert joined["seat"] == "player"
    # plus personne dans l'ancien salon
    assert registry.get(room.code) is None


def test_chat_and_switches_through_service(service):
    async def scenario():
        room = service.create_room(RoomOptions(name="Chat"))
        await service.join(room.code, _who("alice"))
        await service.join(room.code, _who("watch"), as_spectator=True)
        said = await service.send_chat(room.code, "watch", "hello")
        empty = await service.send_chat(room.code, "alice", "   ")
        to_player = await service.switch_to_player(room.code, "watch")
        return room, said, empty, to_player

    room, said, empty, to_player = asyncio.run(scenario())
    assert said == {"success": True}
    assert empty["error"] == "empty_message"
    assert to_player["success"]
    assert to_player["secret"] == room.find_player("watch").secret
    assert [p.id for p in room.players] == ["alice", "watch"]


def test_guest_identity_keeps_valid_id_and_cleans_name():
    provider = GuestIdentityProvider()
    kept = provider.resolve(None, "  Ada   Lovelace ", "player-42")
    assert kept.id == "player-42"
    assert kept.display_name == "Ada Lovelace"
    assert kept.is_guest

    issued = provider.resolve(None, "", "x")
    assert issued.id != "x" and len(issued.id) == 32
    assert issued.display_name.startswith("Guest-")

    provider.register_token("tok", Identity(id="acct1", display_name="Registered", user_id="u1", is_guest=False))
    known = provider.resolve("tok", None)
    assert known.user_id == "u1" and known.display_name == "Registered"
    assert clean_display_name("", "fallback") == "fallback"


def test_public_id_alone_cannot_take_a_seat(service, monkeypatch):
    monkeypatch.setattr(settings, "DISCONNECT_GRACE_SECONDS", 5)

    async def scenario():
        room = service.create_room(RoomOptions(), host_name="Alice")
        joined = await service.join(room.code, _who("alice"))
        await service.join(room.code, _who("bobby"))
        await service.start_game(room.code, "alice")
        await service.disconnect(room.code, "alice")
        bare = await service.reconnect(room.code, "alice")
        wrong = await service.reconnect(room.code, "alice", "0" * 32)
        not_text = await service.reconnect(room.code, "alice", 1234)
        hijack = await service.join(room.code, _who("alice"))
        return room, joined, bare, wrong, not_text, hijack

    room, joined, bare, wrong, not_text, hijack = asyncio.run(scenario())
    assert len(joined["secret"]) == 32
    assert bare == wrong == not_text == {"success": False, "error": "invalid_secret"}
    assert hijack == {"success": False, "error": "already_connected"}
    assert room.find_player("alice").status == PlayerStatus.DISCONNECTED


def test_spectator_join_gets_no_secret(service):
    async def scenario():
        room = service.create_room(RoomOptions(name="Vue"))
        await service.join(room.code, _who("alice"))
        return await service.join(room.code, _who("watch"), as_spectator=True)

    watched = asyncio.run(scenario())
    assert watched["seat"] == "spectator"
    assert "secret" not in watched


def test_play_again_applies_option_overrides_once(service, registry):
    async def scenario():
        room = await _started(service, "alice", "bobby")
        await service.leave(room.code, "alice")
        bad = await service.play_again(room.code, "bobby", {"chat_mode": "loud"})
        first = await service.play_again(room.code, "bobby", {
            "use_inquisitor": True, "chat_mode": "unified", "anonymous": True,
            "password": "sneaky", "name": "Renamed",
        })
        return room, bad, first

    room, bad, first = asyncio.run(scenario())
    assert bad == {"success": False, "error": "invalid_options"}
    opts = registry.get(first["code"]).room.options
    assert opts.use_inquisitor and opts.anonymous
    assert opts.chat_mode == "unified"
    assert opts.password is None
    assert opts.name == f"{room.name} - Rematch"


def test_guest_identity_ignores_non_text_fields():
    provider = GuestIdentityProvider()
    odd = provider.resolve(["tok"], 42, {"id": "x"})
    assert len(odd.id) == 32
    assert odd.display_name == f"Guest-{odd.id[:4]}"
