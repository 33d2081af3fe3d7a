"""
Engine: resolution.py
Rôle:
- Machine à états de résolution d'une action :
  Idle → (déclaration) → awaiting_response → [awaiting_block_challenge] → Idle.
- Défis, contres, défi d'un contre, passes unanimes, expiration de la fenêtre.
- Pause de la fenêtre de réponse tant qu'un répondant attendu est déconnecté.
- Point d'entrée unique du moteur pour un salon (`GameEngine`) : les intents
  d'obligation et le forfait passent aussi par ici pour que la persistance du
  résultat soit déclenchée au bon moment.

Intégrations:
- `Scheduler` injecté (asyncio en production, manuel en test).
- `ResultSink` optionnel, appelé une seule fois quand la partie se termine
  (salons classés uniquement).

Notes:
- Toute méthode publique lève `ActionRejected` AVANT la moindre mutation.
- Le coût d'une action n'est payé qu'au moment de son effet.
"""
from __future__ import annotations

import logging
from functools import partial
from typing import Optional, Protocol

from app.config.settings import settings
from app.engine import obligations, turns
from app.engine.catalog import ActionKind, action_spec, blocker_roles, exchange_draw_count, parse_role
from app.engine.errors import ActionRejected, LogicFault, Rejection
from app.engine.player import Player, PlayerStatus
from app.engine.room import ActionInProgress, ActionPhase, Room, RoomPhase
from app.engine.timers import Scheduler
from app.models.results import GameResult

logger = logging.getLogger(__name__)

PASS = "pass"
CHALLENGE = "challenge"
BLOCK = "block"

_VERBS = {
    ActionKind.INCOME: "takes income",
    ActionKind.FOREIGN_AID: "attempts to take foreign aid",
    ActionKind.TAX: "claims Duke to collect tax",
    ActionKind.ASSASSINATE: "claims Assassin to assassinate",
    ActionKind.STEAL: "claims Captain to steal from",
    ActionKind.EXCHANGE: "claims {claim} to exchange cards",
    ActionKind.EXAMINE: "claims Inquisitor to examine",
    ActionKind.COUP: "launches a coup against",
}


class ResultSink(Protocol):
    def record_game(self, result: GameResult) -> None:
        ...


class GameEngine:
    def __init__(self, room: Room, scheduler: Scheduler, sink: Optional[ResultSink] = None):
        self.room = room
        self.scheduler = scheduler
        self.sink = sink

    # ------------------------------------------------------------------
    # déclaration
    # ------------------------------------------------------------------
    def declare(self, actor_id: str, kind: ActionKind, target_id: Optional[str] = None) -> ActionInProgress:
        room = self.room
        if room.phase != RoomPhase.PLAYING:
            raise ActionRejected(Rejection.GAME_NOT_STARTED)
        actor = room.player(actor_id)
        current = room.current_player()
        if current is None or current.id != actor.id or not actor.alive:
            raise ActionRejected(Rejection.NOT_YOUR_TURN)
        if room.action is not None:
            raise ActionRejected(Rejection.ACTION_IN_PROGRESS)
        if room.has_pending_obligations():
            raise ActionRejected(Rejection.OBLIGATION_PENDING)

        spec = action_spec(kind, room.options.use_inquisitor) if isinstance(kind, ActionKind) else None
        if spec is None:
            raise ActionRejected(Rejection.UNKNOWN_ACTION, str(kind))
        if actor.coins >= settings.MANDATORY_COUP_COINS and kind != ActionKind.COUP:
            raise ActionRejected(Rejection.MUST_COUP)
        if actor.coins < spec.cost:
            raise ActionRejected(Rejection.NOT_ENOUGH_COINS, f"needs {spec.cost}")

        target: Optional[Player] = None
        if spec.needs_target:
            if not target_id:
                raise ActionRejected(Rejection.TARGET_REQUIRED)
            target = room.find_player(target_id)
            if target is None or target.id == actor.id or not target.alive:
                raise ActionRejected(Rejection.INVALID_TARGET, target_id)

        action = ActionInProgress(
            id=room.next_action_id(),
            actor_id=actor.id,
            kind=kind,
            target_id=target.id if target else None,
            claim=spec.claim,
            challengeable=spec.challengeable,
            blockable=spec.blockable,
            block_by_target_only=spec.block_by_target_only,
            blocker_roles=blocker_roles(kind, room.options.use_inquisitor),
        )
        room.action = action
        verb = _VERBS[kind].format(claim=spec.claim.value if spec.claim else "")
        text = f"{actor.label} {verb}" + (f" {target.label}" if target else "")
        room.add_log("action", text, actor=actor.id, action=kind.value,
                     target=action.target_id, claim=spec.claim.value if spec.claim else None)

        if not action.challengeable and not action.blockable:
            self._apply_effect(action)
        else:
            self._open_response_window(action)
        self._settle()
        return action

    # ------------------------------------------------------------------
    # réponses
    # ------------------------------------------------------------------
    def respond(self, player_id: str, response: str, block_role: Optional[str] = None) -> None:
        room = self.room
        action = self._pending_action()
        responder = room.player(player_id)
        if player_id in action.responses:
            raise ActionRejected(Rejection.ALREADY_RESPONDED)
        if player_id not in action.pending:
            raise ActionRejected(Rejection.NOT_ELIGIBLE)

        if action.phase == ActionPhase.AWAITING_BLOCK_CHALLENGE:
            if response == CHALLENGE:
                self.challenge_block(player_id)
                return
            if response != PASS:
                raise ActionRejected(Rejection.CANNOT_BLOCK, "block already declared")
            self._record_pass(action, responder)
            self._settle()
            return

        if response == PASS:
            self._record_pass(action, responder)
        elif response == CHALLENGE:
            if not action.challengeable:
                raise ActionRejected(Rejection.CANNOT_CHALLENGE)
            action.responses[player_id] = CHALLENGE
            self._resolve_challenge(action, responder)
        elif response == BLOCK:
            role = parse_role(block_role or "")
            if not action.blockable:
                raise ActionRejected(Rejection.CANNOT_BLOCK)
            if action.block_by_target_only and player_id != action.target_id:
                raise ActionRejected(Rejection.CANNOT_BLOCK, "only the target may block")
            if role is None or role not in action.blocker_roles:
                raise ActionRejected(Rejection.INVALID_BLOCK_ROLE, str(block_role))
            action.responses[player_id] = BLOCK
            self._open_block_window(action, responder, role)
        else:
            raise ActionRejected(Rejection.INVALID_RESPONSE, str(response))
        self._settle()

    def challenge_block(self, player_id: str) -> None:
        room = self.room
        action = self._pending_action()
        if action.phase != ActionPhase.AWAITING_BLOCK_CHALLENGE:
            raise ActionRejected(Rejection.NO_BLOCK_TO_CHALLENGE)
        challenger = room.player(player_id)
        if player_id in action.responses:
            raise ActionRejected(Rejection.ALREADY_RESPONDED)
        if player_id not in action.pending:
            raise ActionRejected(Rejection.NOT_ELIGIBLE)

        action.responses[player_id] = CHALLENGE
        action.cancel_timer()
        blocker = self._participant(action.blocker_id)
        actor = self._participant(action.actor_id)
        role = action.block_role
        room.add_log("challenge", f"{challenger.label} challenges {blocker.label}'s {role.value}",
                     player=challenger.id, target=blocker.id, role=role.value)

        index = blocker.holds(role)
        if index is not None:
            room.add_log("challenge", f"{blocker.label} reveals {role.value}. The challenge fails!",
                         player=blocker.id, role=role.value, success=False)
            challenger.stats.failed_challenges += 1
            blocker.stats.claims_defended += 1
            obligations.lose_influence(room, challenger, 1, caused_by=blocker.id)
            obligations.swap_claimed_card(room, blocker, index)
            self._block_stands(action, blocker, actor)
        else:
            room.add_log("challenge", f"{blocker.label} does not have {role.value}. The challenge succeeds!",
                         player=blocker.id, role=role.value, success=True)
            challenger.stats.successful_challenges += 1
            blocker.stats.bluffs_caught += 1
            if action.kind == ActionKind.ASSASSINATE:
                blocker.stats.contessa_failed += 1
            elif action.kind == ActionKind.FOREIGN_AID:
                blocker.stats.foreign_aid_block_failed += 1
            obligations.lose_influence(room, blocker, 1, caused_by=challenger.id)
            self._apply_effect(action)
        self._settle()

    # ------------------------------------------------------------------
    # minuteur / connexion
    # ------------------------------------------------------------------
    def on_response_timeout(self, action_id: int, phase: ActionPhase) -> None:
        """Callback du minuteur : sans effet si l'action ou la phase a changé entre-temps."""
        action = self.room.action
        if action is None or action.id != action_id or action.phase != phase or action.paused:
            return
        action.timer = None
        self.room.add_log("system", "Time's up: no further responses", action=action.kind.value)
        if phase == ActionPhase.AWAITING_RESPONSE:
            self._apply_effect(action)
        else:
            self._block_stands(action, self._participant(action.blocker_id), self._participant(action.actor_id))
        self._settle()

    def player_disconnected(self, player_id: str) -> None:
        player = self.room.player(player_id)
        if player.status != PlayerStatus.ACTIVE:
            return
        player.status = PlayerStatus.DISCONNECTED
        self.room.add_log("system", f"{player.label} disconnected", player=player.id)
        if self.room.action is not None:
            self._refresh_pause(self.room.action)

    def player_reconnected(self, player_id: str) -> None:
        player = self.room.player(player_id)
        if player.forfeited:
            raise ActionRejected(Rejection.HAS_LEFT)
        if player.status != PlayerStatus.DISCONNECTED:
            raise ActionRejected(Rejection.NOT_DISCONNECTED)
        player.status = PlayerStatus.ACTIVE
        self.room.add_log("system", f"{player.label} reconnected", player=player.id)
        if self.room.action is not None:
            self._refresh_pause(self.room.action)

    def forfeit(self, player_id: str) -> None:
        room = self.room
        player = room.player(player_id)
        if player.forfeited:
            return
        if room.phase != RoomPhase.PLAYING:
            player.status = PlayerStatus.FORFEITED
            return

        was_current = room.current_player() is player
        turns.forfeit_player(room, player)
        logger.info("player forfeited", extra={"room": room.code, "player": player.id})
        if room.phase == RoomPhase.PLAYING:
            action = room.action
            if action is None:
                if was_current:
                    turns.advance_turn(room)
                else:
                    turns.advance_if_ready(room)
            elif action.actor_id == player.id:
                room.add_log("action", f"{player.label}'s action is cancelled", actor=player.id)
                self._end_action(action)
            elif action.phase == ActionPhase.AWAITING_BLOCK_CHALLENGE and action.blocker_id == player.id:
                # un contre dont l'auteur abandonne tombe : l'action s'applique
                room.add_log("block", f"{player.label}'s block is withdrawn", player=player.id)
                self._apply_effect(action)
            else:
                action.pending.discard(player.id)
                self._after_response(action)
        self._settle()

    # ------------------------------------------------------------------
    # obligations (délégation + persistance)
    # ------------------------------------------------------------------
    def reveal_influence(self, player_id: str, index: int) -> None:
        obligations.reveal_influence(self.room, player_id, index)
        self._settle()

    def choose_exchange(self, player_id: str, keep: list) -> None:
        obligations.complete_exchange(self.room, player_id, keep)
        self._settle()

    def show_card(self, player_id: str, index: int) -> None:
        obligations.show_card_to_examiner(self.room, player_id, index)
        self._settle()

    def resolve_examine(self, player_id: str, force_exchange: bool) -> None:
        obligations.complete_examine(self.room, player_id, force_exchange)
        self._settle()

    # ------------------------------------------------------------------
    # interne
    # ------------------------------------------------------------------
    def _pending_action(self) -> ActionInProgress:
        if self.room.phase != RoomPhase.PLAYING:
            raise ActionRejected(Rejection.GAME_NOT_STARTED)
        if self.room.action is None:
            raise ActionRejected(Rejection.NO_ACTION_PENDING)
        return self.room.action

    def _participant(self, player_id: Optional[str]) -> Player:
        player = self.room.find_player(player_id or "")
        if player is None:
            raise LogicFault(f"player {player_id} referenced by action is not seated in {self.room.code}")
        return player

    def _open_response_window(self, action: ActionInProgress) -> None:
        action.phase = ActionPhase.AWAITING_RESPONSE
        action.responses = {}
        action.pending = {p.id for p in self.room.contenders() if p.id != action.actor_id}
        self._after_response(action)

    def _open_block_window(self, action: ActionInProgress, blocker: Player, role) -> None:
        action.cancel_timer()
        action.paused = False
        action.phase = ActionPhase.AWAITING_BLOCK_CHALLENGE
        action.blocker_id = blocker.id
        action.block_role = role
        action.responses = {}
        action.pending = {p.id for p in self.room.contenders() if p.id != blocker.id}
        self.room.add_log("block", f"{blocker.label} blocks with {role.value}",
                          player=blocker.id, role=role.value)
        self._after_response(action)

    def _record_pass(self, action: ActionInProgress, responder: Player) -> None:
        action.responses[responder.id] = PASS
        action.pending.discard(responder.id)
        self._after_response(action)

    def _after_response(self, action: ActionInProgress) -> None:
        """Clôt la fenêtre si plus personne n'est attendu, sinon ajuste pause / minuteur."""
        if not action.pending:
            action.cancel_timer()
            if action.phase == ActionPhase.AWAITING_RESPONSE:
                self._apply_effect(action)
            else:
                self._block_stands(action, self._participant(action.blocker_id), self._participant(action.actor_id))
            return
        self._refresh_pause(action)

    def _should_pause(self, action: ActionInProgress) -> bool:
        room = self.room
        if action.phase == ActionPhase.AWAITING_RESPONSE and action.blockable and action.block_by_target_only:
            target = room.find_player(action.target_id or "")
            return bool(
                target is not None
                and target.id in action.pending
                and target.status == PlayerStatus.DISCONNECTED
            )
        for pid in action.pending:
            p = room.find_player(pid)
            if p is not None and p.status == PlayerStatus.DISCONNECTED:
                return True
        return False

    def _refresh_pause(self, action: ActionInProgress) -> None:
        if self._should_pause(action):
            if not action.paused:
                action.paused = True
                action.cancel_timer()
                self.room.add_log("system", "Waiting for a disconnected player", action=action.kind.value)
            return
        if action.paused or action.timer is None:
            action.paused = False
            action.timer = self.scheduler.call_later(
                settings.RESPONSE_TIMEOUT_SECONDS,
                partial(self.on_response_timeout, action.id, action.phase),
            )

    def _resolve_challenge(self, action: ActionInProgress, challenger: Player) -> None:
        room = self.room
        actor = self._participant(action.actor_id)
        claim = action.claim
        action.cancel_timer()
        room.add_log("challenge", f"{challenger.label} challenges {actor.label}'s {claim.value}",
                     player=challenger.id, target=actor.id, role=claim.value)

        index = actor.holds(claim)
        if index is not None:
            room.add_log("challenge", f"{actor.label} reveals {claim.value}. The challenge fails!",
                         player=actor.id, role=claim.value, success=False)
            challenger.stats.failed_challenges += 1
            actor.stats.claims_defended += 1
            obligations.lose_influence(room, challenger, 1, caused_by=actor.id)
            obligations.swap_claimed_card(room, actor, index)
            self._apply_effect(action, challenged=True)
            return

        room.add_log("challenge", f"{actor.label} does not have {claim.value}. The challenge succeeds!",
                     player=actor.id, role=claim.value, success=True)
        challenger.stats.successful_challenges += 1
        actor.stats.bluffs_caught += 1
        if action.kind == ActionKind.TAX:
            actor.stats.tax_failed += 1
        elif action.kind == ActionKind.ASSASSINATE:
            actor.stats.assassinations_failed += 1
        obligations.lose_influence(room, actor, 1, caused_by=challenger.id)
        room.add_log("action", f"{actor.label}'s action is cancelled", actor=actor.id)
        self._end_action(action)

    def _block_stands(self, action: ActionInProgress, blocker: Player, actor: Player) -> None:
        room = self.room
        if CHALLENGE not in action.responses.values():
            if blocker.holds(action.block_role) is not None:
                blocker.stats.claims_defended += 1
            else:
                blocker.stats.bluffs_succeeded += 1
        if action.kind == ActionKind.STEAL:
            blocker.stats.steals_blocked += 1
        elif action.kind == ActionKind.ASSASSINATE:
            blocker.stats.contessa_succeeded += 1
            actor.stats.assassinations_failed += 1
        elif action.kind == ActionKind.FOREIGN_AID:
            blocker.stats.foreign_aid_block_succeeded += 1
            actor.stats.foreign_aid_denied += 1
        room.add_log("block", f"{blocker.label}'s block stands. {actor.label}'s action is blocked",
                     player=blocker.id, actor=actor.id)
        self._end_action(action)

    def _apply_effect(self, action: ActionInProgress, challenged: bool = False) -> None:
        room = self.room
        actor = self._participant(action.actor_id)
        target = room.find_player(action.target_id) if action.target_id else None
        spec = action_spec(action.kind, room.options.use_inquisitor)
        action.cancel_timer()
        room.action = None

        if action.claim is not None and not challenged and action.phase == ActionPhase.AWAITING_RESPONSE:
            if actor.holds(action.claim) is not None:
                actor.stats.claims_defended += 1
            else:
                actor.stats.bluffs_succeeded += 1

        if spec.cost:
            actor.coins -= spec.cost
            actor.stats.coins_spent += spec.cost
        actor.stats.actions_performed += 1
        kind = action.kind

        if kind in (ActionKind.INCOME, ActionKind.FOREIGN_AID, ActionKind.TAX):
            actor.coins += spec.gain
            actor.stats.coins_earned += spec.gain
            if kind == ActionKind.INCOME:
                actor.stats.income_taken += 1
            elif kind == ActionKind.FOREIGN_AID:
                actor.stats.foreign_aid_accepted += 1
            else:
                actor.stats.tax_succeeded += 1
            room.add_log("action", f"{actor.label} gains {spec.gain} coin{'s' if spec.gain > 1 else ''}",
                         actor=actor.id, coins=spec.gain)
        elif kind == ActionKind.STEAL:
            stolen = min(spec.gain, target.coins) if target is not None else 0
            if stolen:
                target.coins -= stolen
                target.stats.coins_lost += stolen
                actor.coins += stolen
                actor.stats.coins_earned += stolen
                actor.stats.coins_stolen += stolen
            room.add_log("action", f"{actor.label} steals {stolen} coin{'s' if stolen != 1 else ''}"
                         + (f" from {target.label}" if target else ""),
                         actor=actor.id, target=action.target_id, coins=stolen)
        elif kind in (ActionKind.ASSASSINATE, ActionKind.COUP):
            if target is not None and target.alive:
                obligations.lose_influence(room, target, 1, caused_by=actor.id)
            if kind == ActionKind.COUP:
                actor.stats.coups_enacted += 1
            else:
                actor.stats.assassinations_succeeded += 1
            room.add_log("action", f"{target.label if target else 'The target'} must lose an influence",
                         actor=actor.id, target=action.target_id)
        elif kind == ActionKind.EXCHANGE:
            drawn = room.deck.draw_many(exchange_draw_count(room.options.use_inquisitor))
            actor.exchange_cards = drawn
            actor.must_choose_exchange = True
            room.add_log("exchange", f"{actor.label} draws {len(drawn)} card{'s' if len(drawn) > 1 else ''} to exchange",
                         actor=actor.id, count=len(drawn))
        elif kind == ActionKind.EXAMINE:
            if target is not None and target.alive and not target.forfeited:
                target.must_show_card_to = actor.id
                actor.must_choose_examine = True
                actor.examine_target_id = target.id
                actor.examined_card_index = None
                room.add_log("examine", f"{target.label} must show a card to {actor.label}",
                             actor=actor.id, target=target.id)
        else:
            raise LogicFault(f"no effect for action {kind}")

        turns.advance_turn(room)

    def _end_action(self, action: ActionInProgress) -> None:
        action.cancel_timer()
        self.room.action = None
        turns.advance_turn(self.room)

    def _settle(self) -> None:
        """Remet le résultat au puits une seule fois, dès que la partie est terminée."""
        room = self.room
        if room.phase != RoomPhase.ENDED or room.results_recorded:
            return
        room.results_recorded = True
        if not room.options.ranked or self.sink is None:
            logger.info("game results not recorded", extra={"room": room.code, "ranked": room.options.ranked})
            return
        try:
            self.sink.record_game(turns.build_result(room))
        except OSError:
            logger.exception("failed to record game results", extra={"room": room.code})
