import random

import pytest

from app.engine import lobby
from app.engine.errors import ActionRejected, Rejection
from app.engine.player import Identity, PlayerStatus
from app.engine.room import RoomOptions, RoomPhase


def _room(**options):
    return lobby.create_room("ABC123", RoomOptions(name="Salon", **options), rng=random.Random(5))


def _who(pid):
    return Identity(id=pid, display_name=pid.upper())


def _reason(fn, *args, **kwargs):
    with pytest.raises(ActionRejected) as exc:
        fn(*args, **kwargs)
    return exc.value.reason


def test_first_joiner_becomes_host_and_seventh_spectates():
    room = _room()
    seats = [lobby.join(room, _who(f"p{i}")) for i in range(7)]
    assert seats[:6] == [lobby.SEAT_PLAYER] * 6
    assert seats[6] == lobby.SEAT_SPECTATOR
    assert room.host_id == "p0"
    assert "p6" in room.spectators


def test_full_room_without_spectators_is_rejected():
    room = _room(allow_spectators=False)
    for i in range(6):
        lobby.join(room, _who(f"p{i}"))
    assert _reason(lobby.join, room, _who("late")) == Rejection.ROOM_FULL
    assert _reason(lobby.join, room, _who("watcher"), as_spectator=True) == Rejection.SPECTATORS_NOT_ALLOWED


def test_password_and_duplicate_ids():
    room = _room(password="s3cret")
    assert _reason(lobby.join, room, _who("a")) == Rejection.WRONG_PASSWORD
    assert _reason(lobby.join, room, _who("a"), password="nope") == Rejection.WRONG_PASSWORD
    lobby.join(room, _who("a"), password="s3cret")
    assert _reason(lobby.join, room, _who("a"), password="s3cret") == Rejection.ALREADY_CONNECTED


def test_start_requires_two_players():
    room = _room()
    lobby.join(room, _who("solo"))
    assert _reason(lobby.start_game, room) == Rejection.NOT_ENOUGH_PLAYERS
    assert room.phase == RoomPhase.LOBBY


def test_start_deals_two_cards_and_two_coins():
    room = _room()
    for pid in ("a", "b", "c"):
        lobby.join(room, _who(pid))
    lobby.start_game(room)

    assert room.phase == RoomPhase.PLAYING
    assert sorted(p.id for p in room.players) == ["a", "b", "c"]
    for player in room.players:
        assert len(player.influences) == 2
        assert player.coins == 2
        assert player.stats.coins_earned == 2
    assert len(room.deck) == 15 - 6
    assert room.card_count() == 15
    assert room.started_at is not None
    assert _reason(lobby.start_game, room) == Rejection.GAME_IN_PROGRESS


def test_joining_running_game_makes_spectator():
    room = _room()
    for pid in ("a", "b"):
        lobby.join(room, _who(pid))
    lobby.start_game(room)
    assert lobby.join(room, _who("late")) == lobby.SEAT_SPECTATOR
    assert len(room.players) == 2


def test_leaving_lobby_hands_over_host():
    room = _room()
    lobby.join(room, _who("a"))
    lobby.join(room, _who("b"))
    assert lobby.remove_participant(room, "a")
    assert room.host_id == "b"
    assert not lobby.remove_participant(room, "ghost")


def test_leaving_is_refused_while_playing_and_marks_forfeit_after_end():
    room = _room()
    lobby.join(room, _who("a"))
    lobby.join(room, _who("b"))
    lobby.start_game(room)
    assert _reason(lobby.remove_participant, room, "a") == Rejection.GAME_IN_PROGRESS

    room.phase = RoomPhase.ENDED
    lobby.remove_participant(room, "a")
    assert room.find_player("a").status == PlayerStatus.FORFEITED
    # siège conservé pour l'historique, mais plus de retour possible
    assert _reason(lobby.join, room, _who("a")) == Rejection.HAS_LEFT


def test_switch_between_player_and_spectator():
    room = _room()
    lobby.join(room, _who("a"))
    lobby.join(room, _who("b"))
    lobby.switch_to_spectator(room, "a")
    assert room.find_player("a") is None
    assert "a" in room.spectators
    assert room.host_id == "b"

    lobby.switch_to_player(room, "a")
    assert room.find_player("a") is not None
    assert "a" not in room.spectators
    assert _reason(lobby.switch_to_player, room, "a") == Rejection.PLAYER_NOT_FOUND


def test_switch_refused_when_spectators_disabled():
    room = _room(allow_spectators=False)
    lobby.join(room, _who("a"))
    assert _reason(lobby.switch_to_spectator, room, "a") == Rejection.SPECTATORS_NOT_ALLOWED


def test_chat_truncates_and_flags_spectators(monkeypatch):
    from app.config.settings import settings

    monkeypatch.setattr(settings, "CHAT_MAX_LENGTH", 5)
    room = _room()
    lobby.join(room, _who("a"))
    lobby.join(room, _who("s"), as_spectator=True)

    assert lobby.send_chat(room, "a", "  bonjour  ") == ("A", False)
    assert room.log[-1].payload["message"] == "bonjo"
    assert lobby.send_chat(room, "s", "salut") == ("S", True)
    assert room.log[-1].payload["spectator"] is True
    assert _reason(lobby.send_chat, room, "a", "   ") == Rejection.EMPTY_MESSAGE
    assert _reason(lobby.send_chat, room, "nobody", "hé") == Rejection.PLAYER_NOT_FOUND


def test_chat_disabled():
    room = _room(chat_mode="none")
    lobby.join(room, _who("a"))
    assert _reason(lobby.send_chat, room, "a", "hello") == Rejection.CHAT_DISABLED
