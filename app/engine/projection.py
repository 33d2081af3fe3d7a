"""
Engine: projection.py
Rôle:
- Calculer, pour un observateur donné, la vue du salon qu'il a le droit de voir.

Règles:
- Cartes cachées d'autrui : face cachée (role=None). Les spectateurs voient tout.
- Cartes d'échange / carte examinée : visibles uniquement par leur détenteur.
- Salon anonyme : les noms montrés sont les pseudonymes tant que la partie dure.
- Le jeton `secret` des joueurs ne figure dans aucune vue.
- Minuteur jamais exposé ; journal limité aux `LOG_WINDOW` dernières entrées
  visibles, chat filtré selon le mode du salon.
"""
from __future__ import annotations

from typing import List, Optional

from app.config.settings import settings
from app.engine.obligations import offered_cards
from app.engine.player import Player
from app.engine.room import ActionInProgress, EliminationRecord, Room, RoomPhase
from app.models.event import LogEntry
from app.models.view import (
    ActionView,
    CardView,
    ClientView,
    EliminationView,
    ExaminedCardView,
    OptionsView,
    PlayerView,
    RoomSummary,
    SpectatorView,
)


def options_view(room: Room) -> OptionsView:
    opts = room.options
    return OptionsView(
        name=room.name,
        use_inquisitor=opts.use_inquisitor,
        allow_spectators=opts.allow_spectators,
        chat_mode=opts.chat_mode,
        has_password=bool(opts.password),
        ranked=opts.ranked,
        anonymous=opts.anonymous,
    )


def _recorded_name(room: Room, rec: EliminationRecord) -> str:
    # pseudonyme tant que la partie anonyme dure
    player = room.find_player(rec.player_id)
    return player.label if player is not None else rec.display_name


def _player_view(room: Room, player: Player, observer_id: Optional[str], is_spectator: bool) -> PlayerView:
    is_owner = observer_id == player.id and not is_spectator
    sees_cards = is_owner or is_spectator
    current = room.current_player()
    view = PlayerView(
        id=player.id,
        display_name=player.label,
        coins=player.coins,
        alive=player.alive,
        status=player.status.value,
        is_current=room.phase == RoomPhase.PLAYING and current is not None and current.id == player.id,
        influences=[
            CardView(role=card.role.value if (card.revealed or sees_cards) else None, revealed=card.revealed)
            for card in player.influences
        ],
        influences_to_lose=player.influences_to_lose,
        must_choose_exchange=player.must_choose_exchange,
        must_choose_examine=player.must_choose_examine,
        must_show_card_to=player.must_show_card_to,
        examine_target_id=player.examine_target_id,
    )
    if is_owner:
        if player.must_choose_exchange:
            view.exchange_cards = [role.value for role in player.exchange_cards]
            view.exchange_options = [role.value for role in offered_cards(player)]
        if player.examine_target_id and player.examined_card_index is not None:
            target = room.find_player(player.examine_target_id)
            if target is not None:
                idx = player.examined_card_index
                view.examined_card = ExaminedCardView(
                    target_id=target.id, index=idx, role=target.influences[idx].role.value
                )
    return view


def _action_view(action: ActionInProgress) -> ActionView:
    return ActionView(
        id=action.id,
        actor_id=action.actor_id,
        kind=action.kind.value,
        target_id=action.target_id,
        claim=action.claim.value if action.claim else None,
        challengeable=action.challengeable,
        blockable=action.blockable,
        block_by_target_only=action.block_by_target_only,
        blocker_roles=[r.value for r in action.blocker_roles],
        phase=action.phase.value,
        pending=sorted(action.pending),
        responses=dict(action.responses),
        blocker_id=action.blocker_id,
        block_role=action.block_role.value if action.block_role else None,
        paused=action.paused,
    )


def visible_log(room: Room, is_spectator: bool) -> List[LogEntry]:
    mode = room.options.chat_mode
    entries = []
    for entry in room.log:
        if entry.kind == "chat":
            if mode == "none":
                continue
            if mode == "separate" and not is_spectator and entry.payload.get("spectator"):
                continue
        entries.append(entry)
    window = settings.LOG_WINDOW
    return entries[-window:] if window > 0 else entries


def project(room: Room, observer_id: Optional[str], is_spectator: bool) -> ClientView:
    current = room.current_player()
    return ClientView(
        code=room.code,
        phase=room.phase.value,
        options=options_view(room),
        host_id=room.host_id,
        observer_id=observer_id,
        is_spectator=is_spectator,
        players=[_player_view(room, p, observer_id, is_spectator) for p in room.players],
        spectators=[SpectatorView(id=s.id, display_name=s.display_name) for s in room.spectators.values()],
        current_player_id=current.id if current is not None and room.phase == RoomPhase.PLAYING else None,
        action=_action_view(room.action) if room.action is not None else None,
        deck_count=len(room.deck),
        log=visible_log(room, is_spectator),
        eliminations=[
            EliminationView(
                player_id=rec.player_id,
                display_name=_recorded_name(room, rec),
                placement=rec.placement,
                eliminated_by=rec.eliminated_by,
            )
            for rec in room.eliminations
        ],
        winner_id=room.winner_id,
        rematch_code=room.rematch_code,
        started_at=room.started_at,
        ended_at=room.ended_at,
    )


def summarize(room: Room) -> RoomSummary:
    return RoomSummary(
        code=room.code,
        name=room.name,
        phase=room.phase.value,
        player_count=sum(1 for p in room.players if not p.forfeited),
        spectator_count=len(room.spectators),
        max_players=settings.MAX_PLAYERS,
        options=options_view(room),
    )
