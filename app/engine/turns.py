"""
Engine: turns.py
Rôle:
- Passage du tour (sièges morts ignorés, un seul tour de table maximum).
- Élimination : place = joueurs encore vivants + 1, crédit à l'éliminateur.
- Condition de victoire et construction du résultat de partie.
- Forfait d'un joueur (départ ou délai de reconnexion écoulé).

Notes:
- Le tour n'avance pas tant qu'une obligation (révélation, échange, examen)
  est en attente : `room.awaiting_turn_advance` est posé et `advance_if_ready`
  le reprend quand la dernière obligation est soldée.
"""
from __future__ import annotations

import logging

from app.engine.errors import LogicFault
from app.engine.player import Player, PlayerStatus
from app.engine.room import EliminationRecord, Room, RoomPhase
from app.models.results import GameResult, PlacementEntry, PlayerResult

logger = logging.getLogger(__name__)


def advance_turn(room: Room) -> bool:
    """Passe au prochain joueur vivant ; False si le passage est différé ou la partie finie."""
    if room.phase != RoomPhase.PLAYING:
        return False
    if room.action is not None:
        raise LogicFault(f"turn advance requested while action {room.action.id} is pending")
    if room.has_pending_obligations():
        room.awaiting_turn_advance = True
        return False

    room.awaiting_turn_advance = False
    total = len(room.players)
    for step in range(1, total + 1):
        idx = (room.current_index + step) % total
        candidate = room.players[idx]
        if candidate.alive:
            room.current_index = idx
            room.add_log("turn", f"It's {candidate.label}'s turn", player=candidate.id)
            return True
    raise LogicFault(f"room {room.code}: no living player to take the turn")


def advance_if_ready(room: Room) -> bool:
    if not room.awaiting_turn_advance:
        return False
    if room.action is not None or room.has_pending_obligations():
        return False
    return advance_turn(room)


def release_obligations(room: Room, player: Player) -> None:
    """Lève les obligations du joueur, celles de son partenaire d'examen, et rend ses cartes d'échange."""
    if player.exchange_cards:
        room.deck.put_back_many(player.exchange_cards)
        player.exchange_cards = []
    for other in room.players:
        if other is player:
            continue
        if other.must_show_card_to == player.id:
            other.must_show_card_to = None
        if other.examine_target_id == player.id:
            other.must_choose_examine = False
            other.examine_target_id = None
            other.examined_card_index = None
    player.clear_obligations()


def record_elimination(room: Room, player: Player) -> None:
    eliminator_id = player.influence_loss_caused_by
    player.alive = False
    release_obligations(room, player)
    placement = len(room.living()) + 1

    eliminator = room.find_player(eliminator_id) if eliminator_id else None
    if eliminator is not None and eliminator is not player:
        eliminator.stats.players_eliminated += 1
    else:
        eliminator_id = None

    room.eliminations.append(EliminationRecord(
        player_id=player.id,
        display_name=player.display_name,
        user_id=player.identity.user_id,
        placement=placement,
        eliminated_by=eliminator_id,
        coins_earned=player.stats.coins_earned,
        eliminations=player.stats.players_eliminated,
    ))
    player.influence_loss_caused_by = None
    room.add_log("elimination", f"{player.label} is eliminated from the game!",
                 player=player.id, placement=placement)
    check_win(room)


def check_win(room: Room) -> bool:
    if room.phase != RoomPhase.PLAYING:
        return False
    living = room.living()
    if len(living) > 1:
        return False
    if not living:
        raise LogicFault(f"room {room.code}: every player was eliminated")

    winner = living[0]
    room.winner_id = winner.id
    room.eliminations.append(EliminationRecord(
        player_id=winner.id,
        display_name=winner.display_name,
        user_id=winner.identity.user_id,
        placement=1,
        coins_earned=winner.stats.coins_earned,
        eliminations=winner.stats.players_eliminated,
    ))
    room.eliminations.sort(key=lambda rec: rec.placement)

    if room.action is not None:
        room.action.cancel_timer()
        room.action = None
    for p in room.players:
        if p.exchange_cards:
            room.deck.put_back_many(p.exchange_cards)
            p.exchange_cards = []
        p.clear_obligations()
        p.alias = None
    room.awaiting_turn_advance = False
    room.phase = RoomPhase.ENDED
    room.ended_at = room.clock()
    room.add_log("game", f"{winner.label} wins the game!", winner=winner.id)
    logger.info("game ended", extra={"room": room.code, "winner": winner.id})
    return True


def forfeit_player(room: Room, player: Player) -> None:
    """
    Abandon : toutes les cartes sont révélées, les obligations du joueur et
    celles de son partenaire d'examen sont levées, puis l'élimination est
    enregistrée. La gestion de l'action en cours reste à l'appelant.
    """
    for card in player.influences:
        card.revealed = True

    was_alive = player.alive
    release_obligations(room, player)
    player.status = PlayerStatus.FORFEITED
    room.add_log("system", f"{player.label} has left the game", player=player.id)
    if was_alive:
        record_elimination(room, player)


def build_result(room: Room) -> GameResult:
    by_player = {rec.player_id: rec for rec in room.eliminations}
    players = []
    for p in room.players:
        rec = by_player.get(p.id)
        players.append(PlayerResult(
            player_id=p.id,
            display_name=p.display_name,
            user_id=p.identity.user_id,
            is_guest=p.identity.is_guest,
            placement=rec.placement if rec else len(room.players),
            forfeited=p.forfeited,
            stats=p.stats.to_dict(),
        ))
    return GameResult(
        room_code=room.code,
        settings=room.options.model_dump(exclude={"password"}),
        players=players,
        placements=[
            PlacementEntry(
                player_id=rec.player_id,
                display_name=rec.display_name,
                placement=rec.placement,
                eliminated_by=rec.eliminated_by,
            )
            for rec in room.eliminations
        ],
        winner_id=room.winner_id,
        started_at=room.started_at or room.ended_at or 0.0,
        ended_at=room.ended_at or 0.0,
    )
