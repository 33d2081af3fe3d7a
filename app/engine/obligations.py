"""
Engine: obligations.py
Rôle:
- Obligations à la charge d'un joueur après résolution d'une action :
  perdre une influence (révéler une carte), choisir les cartes gardées lors
  d'un échange, montrer une carte à un examinateur, conclure un examen.

Notes:
- `lose_influence` ne fait qu'incrémenter un compteur (plafonné au nombre de
  cartes encore cachées) ; la révélation effective est un intent du joueur.
- Chaque obligation soldée relance `advance_if_ready` : le tour reprend dès
  que plus personne n'a rien à faire.
"""
from __future__ import annotations

from typing import List, Optional

from app.engine import turns
from app.engine.errors import ActionRejected, LogicFault, Rejection
from app.engine.player import Card, Player
from app.engine.room import Room, RoomPhase


def _require_playing(room: Room) -> None:
    if room.phase != RoomPhase.PLAYING:
        raise ActionRejected(Rejection.GAME_NOT_STARTED)


def _check_index(player: Player, index: int) -> None:
    if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(player.influences):
        raise ActionRejected(Rejection.INVALID_CARD_INDEX, str(index))
    if player.influences[index].revealed:
        raise ActionRejected(Rejection.CARD_ALREADY_REVEALED, str(index))


def lose_influence(room: Room, player: Player, count: int = 1, caused_by: Optional[str] = None) -> int:
    """Ajoute `count` révélations dues (plafonné) ; retourne le nombre effectivement ajouté."""
    headroom = len(player.unrevealed()) - player.influences_to_lose
    added = max(0, min(count, headroom))
    if added:
        player.influences_to_lose += added
        if caused_by and caused_by != player.id:
            player.influence_loss_caused_by = caused_by
    return added


def swap_claimed_card(room: Room, player: Player, index: int) -> None:
    """Carte prouvée lors d'un défi : remplacée par une pioche, puis rendue au paquet mélangé."""
    old = player.influences[index].role
    player.influences[index] = Card(role=room.deck.draw())
    room.deck.put_back(old)
    room.add_log("challenge", f"{player.label} shuffles their {old.value} into the deck and draws a new card",
                 player=player.id, role=old.value)


def reveal_influence(room: Room, player_id: str, index: int) -> None:
    _require_playing(room)
    player = room.player(player_id)
    if player.influences_to_lose <= 0:
        raise ActionRejected(Rejection.NOT_REQUIRED)
    _check_index(player, index)

    card = player.influences[index]
    card.revealed = True
    player.influences_to_lose -= 1
    player.stats.influences_lost += 1
    room.add_log("reveal", f"{player.label} reveals and loses their {card.role.value}",
                 player=player.id, role=card.role.value)

    if not player.unrevealed():
        turns.record_elimination(room, player)
    elif player.influences_to_lose == 0:
        player.influence_loss_caused_by = None
    turns.advance_if_ready(room)


def offered_cards(player: Player) -> List:
    """Cartes proposées pendant un échange : cartes cachées (ordre des sièges) puis cartes piochées."""
    return [player.influences[i].role for i in player.unrevealed()] + list(player.exchange_cards)


def complete_exchange(room: Room, player_id: str, keep: List[int]) -> None:
    _require_playing(room)
    player = room.player(player_id)
    if not player.must_choose_exchange:
        raise ActionRejected(Rejection.NOT_REQUIRED)

    if not isinstance(keep, (list, tuple)) or any(not isinstance(i, int) or isinstance(i, bool) for i in keep):
        raise ActionRejected(Rejection.INVALID_CARD_INDEX, str(keep))
    hidden = player.unrevealed()
    offered = offered_cards(player)
    if len(keep) != len(hidden):
        raise ActionRejected(Rejection.WRONG_KEEP_COUNT, f"keep {len(hidden)}, got {len(keep)}")
    if len(set(keep)) != len(keep) or any(not 0 <= i < len(offered) for i in keep):
        raise ActionRejected(Rejection.INVALID_CARD_INDEX, str(keep))

    kept = [offered[i] for i in keep]
    keep_set = set(keep)
    returned = [role for i, role in enumerate(offered) if i not in keep_set]
    for slot, role in zip(hidden, kept):
        player.influences[slot] = Card(role=role)
    player.exchange_cards = []
    player.must_choose_exchange = False
    room.deck.put_back_many(returned)
    player.stats.influence_exchanged += 1
    room.add_log("exchange", f"{player.label} completes their exchange", player=player.id)
    turns.advance_if_ready(room)


def show_card_to_examiner(room: Room, player_id: str, index: int) -> None:
    _require_playing(room)
    player = room.player(player_id)
    if not player.must_show_card_to:
        raise ActionRejected(Rejection.NOT_REQUIRED)
    _check_index(player, index)
    examiner = room.find_player(player.must_show_card_to)
    if examiner is None or examiner.examine_target_id != player.id:
        raise LogicFault(f"examiner {player.must_show_card_to} lost track of target {player.id}")

    examiner.examined_card_index = index
    player.must_show_card_to = None
    room.add_log("examine", f"{player.label} shows a card to {examiner.label}",
                 player=player.id, examiner=examiner.id)


def complete_examine(room: Room, examiner_id: str, force_exchange: bool) -> None:
    _require_playing(room)
    examiner = room.player(examiner_id)
    if not examiner.must_choose_examine:
        raise ActionRejected(Rejection.NOT_REQUIRED)
    if examiner.examined_card_index is None:
        raise ActionRejected(Rejection.CARD_NOT_SHOWN)
    target = room.find_player(examiner.examine_target_id or "")
    if target is None:
        raise LogicFault(f"examine target {examiner.examine_target_id} not in room {room.code}")

    index = examiner.examined_card_index
    card = target.influences[index]
    if force_exchange and not card.revealed:
        old = card.role
        target.influences[index] = Card(role=room.deck.draw())
        room.deck.put_back(old)
        examiner.stats.influence_forced += 1
        room.add_log("examine", f"{examiner.label} forces {target.label} to exchange the examined card",
                     player=examiner.id, target=target.id, forced=True)
    else:
        room.add_log("examine", f"{examiner.label} lets {target.label} keep the examined card",
                     player=examiner.id, target=target.id, forced=False)

    examiner.stats.influence_examined += 1
    examiner.must_choose_examine = False
    examiner.examine_target_id = None
    examiner.examined_card_index = None
    turns.advance_if_ready(room)
