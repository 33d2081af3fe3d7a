"""
Engine: lobby.py
Rôle:
- Cycle de vie d'un salon hors résolution d'action : création, arrivée d'un
  joueur ou d'un spectateur, départ en lobby, changement de place
  (joueur ↔ spectateur), lancement de la partie, chat.
- Salon anonyme : pseudonymes tirés au lancement (`aliases.draw_aliases`).

Notes:
- Un joueur qui rejoint une partie en cours (ou un lobby plein) devient
  spectateur si le salon l'autorise.
- Le départ en cours de partie n'est PAS géré ici : c'est un forfait
  (`GameEngine.forfeit`), le siège reste dans la liste.
"""
from __future__ import annotations

import logging
import random
from typing import Optional, Tuple

from app.config.settings import settings
from app.engine.aliases import draw_aliases
from app.engine.deck import Deck
from app.engine.errors import ActionRejected, Rejection
from app.engine.player import Card, Identity, Player, PlayerStatus
from app.engine.room import Room, RoomOptions, RoomPhase, Spectator

logger = logging.getLogger(__name__)

SEAT_PLAYER = "player"
SEAT_SPECTATOR = "spectator"


def create_room(code: str, options: RoomOptions, rng: Optional[random.Random] = None, clock=None) -> Room:
    rng = rng or random.Random()
    room = Room(code=code, options=options, rng=rng)
    if clock is not None:
        room.clock = clock
    room.deck = Deck.build(options.use_inquisitor, rng=rng)
    room.add_log("system", f"Room {room.name} created", code=code)
    return room


def _check_password(room: Room, password: Optional[str]) -> None:
    if room.options.password and room.options.password != (password or ""):
        raise ActionRejected(Rejection.WRONG_PASSWORD)


def join(room: Room, identity: Identity, as_spectator: bool = False, password: Optional[str] = None) -> str:
    """
    Ajoute un participant ; retourne la place obtenue (`player` ou `spectator`).
    Un identifiant déjà présent et connecté est refusé (onglet dupliqué).
    """
    _check_password(room, password)
    existing = room.find_player(identity.id)
    if existing is not None:
        if existing.forfeited:
            raise ActionRejected(Rejection.HAS_LEFT)
        raise ActionRejected(Rejection.ALREADY_CONNECTED)
    if identity.id in room.spectators:
        raise ActionRejected(Rejection.ALREADY_CONNECTED)

    wants_seat = not as_spectator and room.phase == RoomPhase.LOBBY and len(room.players) < settings.MAX_PLAYERS
    if wants_seat:
        room.players.append(Player(id=identity.id, display_name=identity.display_name, identity=identity))
        if room.host_id is None:
            room.host_id = identity.id
        room.add_log("system", f"{identity.display_name} joined the room", player=identity.id)
        return SEAT_PLAYER

    if not room.options.allow_spectators:
        if room.phase != RoomPhase.LOBBY:
            raise ActionRejected(Rejection.GAME_IN_PROGRESS)
        if as_spectator:
            raise ActionRejected(Rejection.SPECTATORS_NOT_ALLOWED)
        raise ActionRejected(Rejection.ROOM_FULL)
    room.spectators[identity.id] = Spectator(id=identity.id, display_name=identity.display_name)
    room.add_log("system", f"{identity.display_name} is now spectating", player=identity.id)
    return SEAT_SPECTATOR


def remove_participant(room: Room, participant_id: str) -> bool:
    """Retrait pur (lobby, spectateur, partie terminée). Retourne True si quelqu'un a été retiré."""
    spectator = room.spectators.pop(participant_id, None)
    if spectator is not None:
        room.add_log("system", f"{spectator.display_name} stopped spectating", player=participant_id)
        return True
    player = room.find_player(participant_id)
    if player is None:
        return False
    if room.phase == RoomPhase.PLAYING:
        raise ActionRejected(Rejection.GAME_IN_PROGRESS, "leaving a running game is a forfeit")
    if room.phase == RoomPhase.ENDED:
        player.status = PlayerStatus.FORFEITED
    else:
        room.players.remove(player)
        if room.host_id == player.id:
            room.host_id = room.players[0].id if room.players else None
    room.add_log("system", f"{player.display_name} left the room", player=participant_id)
    return True


def switch_to_spectator(room: Room, player_id: str) -> None:
    if room.phase != RoomPhase.LOBBY:
        raise ActionRejected(Rejection.GAME_IN_PROGRESS)
    if not room.options.allow_spectators:
        raise ActionRejected(Rejection.SPECTATORS_NOT_ALLOWED)
    player = room.player(player_id)
    room.players.remove(player)
    room.spectators[player.id] = Spectator(id=player.id, display_name=player.display_name)
    if room.host_id == player.id:
        room.host_id = room.players[0].id if room.players else None
    room.add_log("system", f"{player.display_name} moved to spectators", player=player.id)


def switch_to_player(room: Room, spectator_id: str, identity: Optional[Identity] = None) -> Player:
    if room.phase != RoomPhase.LOBBY:
        raise ActionRejected(Rejection.GAME_IN_PROGRESS)
    spectator = room.spectators.get(spectator_id)
    if spectator is None:
        raise ActionRejected(Rejection.PLAYER_NOT_FOUND, spectator_id)
    if len(room.players) >= settings.MAX_PLAYERS:
        raise ActionRejected(Rejection.ROOM_FULL)
    del room.spectators[spectator_id]
    identity = identity or Identity(id=spectator.id, display_name=spectator.display_name)
    player = Player(id=spectator.id, display_name=spectator.display_name, identity=identity)
    room.players.append(player)
    if room.host_id is None:
        room.host_id = spectator.id
    room.add_log("system", f"{spectator.display_name} took a seat", player=spectator.id)
    return player


def start_game(room: Room) -> None:
    """Mélange l'ordre des sièges, distribue 2 cartes et les pièces de départ à chacun."""
    if room.phase != RoomPhase.LOBBY:
        raise ActionRejected(Rejection.GAME_IN_PROGRESS)
    count = len(room.players)
    if count < settings.MIN_PLAYERS:
        raise ActionRejected(Rejection.NOT_ENOUGH_PLAYERS, f"{count} < {settings.MIN_PLAYERS}")
    if count > settings.MAX_PLAYERS:
        raise ActionRejected(Rejection.ROOM_FULL)

    room.deck = Deck.build(room.options.use_inquisitor, rng=room.rng)
    order = list(room.players)
    for i in range(len(order) - 1, 0, -1):
        j = room.rng.randint(0, i)
        order[i], order[j] = order[j], order[i]
    room.players = order

    for player in room.players:
        player.reset_for_game(settings.STARTING_COINS)
        player.influences = [Card(role=room.deck.draw()) for _ in range(2)]
    if room.options.anonymous:
        for player, alias in zip(room.players, draw_aliases(count, room.rng)):
            player.alias = alias

    room.current_index = 0
    room.action = None
    room.eliminations = []
    room.winner_id = None
    room.awaiting_turn_advance = False
    room.results_recorded = False
    room.phase = RoomPhase.PLAYING
    room.started_at = room.clock()
    room.ended_at = None
    first = room.players[0]
    room.add_log("game", "The game has started!", order=[p.id for p in room.players])
    room.add_log("turn", f"It's {first.label}'s turn", player=first.id)
    logger.info("game started", extra={"room": room.code, "players": count})


def send_chat(room: Room, sender_id: str, message: str) -> Tuple[str, bool]:
    if room.options.chat_mode == "none":
        raise ActionRejected(Rejection.CHAT_DISABLED)
    text = (message or "").strip()[: settings.CHAT_MAX_LENGTH]
    if not text:
        raise ActionRejected(Rejection.EMPTY_MESSAGE)

    player = room.find_player(sender_id)
    if player is not None and not player.forfeited:
        name, is_spectator = player.label, False
    else:
        spectator = room.spectators.get(sender_id)
        if spectator is None:
            raise ActionRejected(Rejection.PLAYER_NOT_FOUND, sender_id)
        name, is_spectator = spectator.display_name, True
    room.add_log("chat", f"{name}: {text}", sender=sender_id, sender_name=name,
                 message=text, spectator=is_spectator)
    return name, is_spectator
