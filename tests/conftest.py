from __future__ import annotations

import random
from typing import Dict, List, Optional

import pytest

from app.engine import lobby
from app.engine.catalog import COPIES_PER_ROLE, Role, roles_in_play
from app.engine.player import Card, Identity, Player
from app.engine.resolution import GameEngine
from app.engine.room import Room, RoomOptions
from app.engine.timers import ManualScheduler
from app.services.room_store import REGISTRY


class RecordingSink:
    """Puits de résultats en mémoire."""

    def __init__(self):
        self.results = []

    def record_game(self, result):
        self.results.append(result)


class Table:
    def __init__(self, room: Room, engine: GameEngine, scheduler: ManualScheduler, sink: RecordingSink):
        self.room = room
        self.engine = engine
        self.scheduler = scheduler
        self.sink = sink

    def p(self, player_id: str) -> Player:
        return self.room.player(player_id)

    def roles(self, player_id: str) -> List[Role]:
        return [card.role for card in self.p(player_id).influences]

    def current(self) -> str:
        return self.room.current_player().id


def make_table(hands: Dict[str, List[Role]], coins: Optional[Dict[str, int]] = None,
               use_inquisitor: bool = False, ranked: bool = True, chat_mode: str = "separate",
               seed: int = 7, anonymous: bool = False) -> Table:
    """
    Partie lancée avec des mains imposées. L'ordre des sièges suit l'ordre de
    `hands`, le premier joueur a la main ; le paquet contient le reste des cartes.
    """
    options = RoomOptions(name="Test", use_inquisitor=use_inquisitor, ranked=ranked, chat_mode=chat_mode,
                          anonymous=anonymous)
    room = lobby.create_room("TEST01", options, rng=random.Random(seed), clock=lambda: 1000.0)
    for pid in hands:
        lobby.join(room, Identity(id=pid, display_name=pid.capitalize()))
    lobby.start_game(room)

    order = list(hands)
    room.players.sort(key=lambda p: order.index(p.id))
    room.current_index = 0
    pool = [role for role in roles_in_play(use_inquisitor) for _ in range(COPIES_PER_ROLE)]
    for player in room.players:
        for role in hands[player.id]:
            pool.remove(role)
        player.influences = [Card(role=role) for role in hands[player.id]]
        if coins and player.id in coins:
            player.coins = coins[player.id]
    room.deck.cards = pool

    scheduler = ManualScheduler()
    sink = RecordingSink()
    return Table(room, GameEngine(room, scheduler, sink=sink), scheduler, sink)


@pytest.fixture
def table():
    return make_table


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def registry():
    REGISTRY.clear()
    try:
        yield REGISTRY
    finally:
        REGISTRY.clear()
