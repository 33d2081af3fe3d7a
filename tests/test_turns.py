import pytest

from app.engine import turns
from app.engine.catalog import ActionKind, Role
from app.engine.errors import LogicFault
from app.engine.room import RoomPhase

HANDS = {
    "a": [Role.DUKE, Role.CAPTAIN],
    "b": [Role.CONTESSA, Role.ASSASSIN],
    "c": [Role.AMBASSADOR, Role.DUKE],
    "d": [Role.CAPTAIN, Role.CONTESSA],
}


def test_advance_skips_dead_seats(table):
    t = table(HANDS)
    t.p("b").alive = False
    t.p("c").alive = False
    assert turns.advance_turn(t.room)
    assert t.current() == "d"
    assert turns.advance_turn(t.room)
    assert t.current() == "a"


def test_advance_waits_for_pending_obligation(table):
    t = table(HANDS)
    t.p("c").influences_to_lose = 1
    assert not turns.advance_turn(t.room)
    assert t.room.awaiting_turn_advance
    assert t.current() == "a"

    t.p("c").influences_to_lose = 0
    assert turns.advance_if_ready(t.room)
    assert t.current() == "b"
    assert not t.room.awaiting_turn_advance


def test_advance_refused_while_action_pending(table):
    t = table(HANDS)
    t.engine.declare("a", ActionKind.TAX)
    with pytest.raises(LogicFault):
        turns.advance_turn(t.room)


def test_placements_follow_elimination_order(table):
    t = table(HANDS)
    t.p("c").influence_loss_caused_by = "a"
    turns.record_elimination(t.room, t.p("c"))
    turns.record_elimination(t.room, t.p("a"))
    assert t.room.phase == RoomPhase.PLAYING
    turns.record_elimination(t.room, t.p("d"))

    assert t.room.phase == RoomPhase.ENDED
    assert t.room.winner_id == "b"
    assert [(rec.player_id, rec.placement) for rec in t.room.eliminations] == [
        ("b", 1), ("d", 2), ("a", 3), ("c", 4),
    ]
    assert t.room.eliminations[-1].eliminated_by == "a"
    assert t.p("a").stats.players_eliminated == 1
    assert t.room.ended_at == 1000.0


def test_forfeit_reveals_cards_and_builds_result(table):
    t = table({"a": [Role.DUKE, Role.CAPTAIN], "b": [Role.CONTESSA, Role.ASSASSIN]})
    turns.forfeit_player(t.room, t.p("b"))

    b = t.p("b")
    assert all(card.revealed for card in b.influences)
    assert b.forfeited and not b.alive
    assert t.room.phase == RoomPhase.ENDED

    result = turns.build_result(t.room)
    assert result.winner_id == "a"
    assert "password" not in result.settings
    by_id = {p.player_id: p for p in result.players}
    assert by_id["b"].forfeited and by_id["b"].placement == 2
    assert by_id["a"].placement == 1
    assert result.duration_seconds == 0.0
