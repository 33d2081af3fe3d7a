"""
Service: room_service.py
Rôle:
- Façade asynchrone du moteur : un intent = un passage sous le verrou du salon,
  puis publication d'une vue par socket connectée au salon.
- Délais de reconnexion : une déconnexion en partie arme un minuteur
  (`DISCONNECT_GRACE_SECONDS`) ; son expiration vaut abandon.
- Fermeture d'un salon quand plus personne ne l'occupe ; revanche (play again).

Intégrations:
- `REGISTRY` (room_store) pour retrouver les salons.
- `WS` (ws_manager) pour pousser `{"type": "gameState", "payload": vue}`
  et l'annonce `{"type": "gameEnded", ...}`.
- `JsonResultSink` (persistence) passé au moteur de chaque salon.
- `LOBBY` (lobby_hub) rafraîchi après chaque changement d'état.

Notes:
- Chaque méthode publique renvoie `{"success": bool, "error"?: code, ...}`.
- Un `LogicFault` est journalisé avec sa trace puis propagé à l'appelant.
- Un siège ne se reprend qu'avec son `secret` (remis à l'arrivée) ; l'identifiant
  public du joueur, visible de tous, ne suffit pas.
"""
from __future__ import annotations

import asyncio
import hmac
import logging
import random
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from app.config.settings import settings
from app.engine import lobby
from app.engine.catalog import parse_action
from app.engine.errors import ActionRejected, LogicFault, Rejection
from app.engine.player import Identity, PlayerStatus
from app.engine.projection import project
from app.engine.resolution import GameEngine, ResultSink
from app.engine.room import Room, RoomOptions, RoomPhase
from app.models.view import ClientView, RoomSummary
from app.services.lobby_hub import LOBBY, LobbyHub
from app.services.persistence import JsonResultSink
from app.services.room_store import REGISTRY, RoomRegistry, RoomSlot
from app.services.scheduler import AsyncioScheduler
from app.services.ws_manager import WS, WSManager

logger = logging.getLogger(__name__)

Result = Dict[str, Any]


# options qu'un joueur peut changer en demandant une revanche
REMATCH_OVERRIDES = ("use_inquisitor", "allow_spectators", "chat_mode", "ranked", "anonymous")


def _rejected(code: str) -> Result:
    return {"success": False, "error": code}


def _secret_matches(expected: str, given: Any) -> bool:
    return isinstance(given, str) and hmac.compare_digest(expected, given)


def _rematch_options(room: Room, overrides: Optional[Dict[str, Any]]) -> RoomOptions:
    data = room.options.model_dump()
    data.update({key: value for key, value in (overrides or {}).items() if key in REMATCH_OVERRIDES})
    data.update(name=f"{room.name} - Rematch", password=None)
    try:
        return RoomOptions.model_validate(data)
    except ValidationError as exc:
        raise ActionRejected(Rejection.INVALID_OPTIONS, str(exc.errors()[0].get("loc"))) from exc


class RoomService:
    def __init__(self, registry: RoomRegistry, ws: WSManager, sink: Optional[ResultSink] = None,
                 rng_factory: Callable[[], random.Random] = random.Random, hub: Optional[LobbyHub] = None):
        self.registry = registry
        self.ws = ws
        self.sink = sink
        self.rng_factory = rng_factory
        self.hub = hub

    # ------------------------------------------------------------------
    # salons
    # ------------------------------------------------------------------
    def create_room(self, options: RoomOptions, host_name: Optional[str] = None) -> Room:
        code = self.registry.generate_code()
        if not options.name:
            options = options.model_copy(update={"name": f"{host_name}'s Room" if host_name else f"Room {code}"})
        room = lobby.create_room(code, options, rng=self.rng_factory())
        lock = asyncio.Lock()
        scheduler = AsyncioScheduler(lock=lock, after_fire=partial(self._after_timer, code))
        engine = GameEngine(room, scheduler, sink=self.sink)
        self.registry.add(RoomSlot(room=room, engine=engine, lock=lock, scheduler=scheduler))
        logger.info("room created", extra={"room": code, "room_name": options.name})
        return room

    def list_rooms(self) -> List[RoomSummary]:
        return self.registry.summaries()

    async def view(self, code: str, observer_id: Optional[str], is_spectator: bool) -> Optional[ClientView]:
        slot = self.registry.get(code)
        if slot is None:
            return None
        async with slot.lock:
            return project(slot.room, observer_id, is_spectator)

    # ------------------------------------------------------------------
    # cœur : exécution sérialisée d'un intent
    # ------------------------------------------------------------------
    async def _run(self, code: str, mutate: Callable[[RoomSlot], Optional[Result]]) -> Result:
        slot = self.registry.get(code)
        if slot is None:
            return _rejected(Rejection.ROOM_NOT_FOUND.value)
        async with slot.lock:
            try:
                extra = mutate(slot) or {}
            except ActionRejected as exc:
                logger.debug("intent rejected", extra={"room": slot.code, "reason": exc.code, "detail": exc.detail})
                return _rejected(exc.code)
            except LogicFault:
                logger.exception("engine fault", extra={"room": slot.code})
                raise
        await self.publish(slot.code)
        await self._close_if_empty(slot.code)
        await self._refresh_lobby()
        return {"success": True, **extra}

    async def publish(self, code: str) -> int:
        """Calcule sous verrou une vue par socket du salon, puis envoie hors verrou."""
        slot = self.registry.get(code)
        if slot is None:
            return 0
        announce = None
        async with slot.lock:
            room = slot.room
            frames = [
                (ws, {"type": "gameState",
                      "payload": project(room, seat.observer_id, seat.is_spectator).model_dump(mode="json")})
                for ws, seat in self.ws.members(code)
            ]
            if room.phase == RoomPhase.ENDED and not slot.end_announced:
                slot.end_announced = True
                announce = {
                    "type": "gameEnded",
                    "payload": {
                        "winner_id": room.winner_id,
                        "placements": [
                            {"player_id": rec.player_id, "display_name": rec.display_name,
                             "placement": rec.placement}
                            for rec in room.eliminations
                        ],
                    },
                }
        sent = await self.ws.send_frames(frames)
        if announce is not None:
            await self.ws.broadcast_room(code, announce)
        return sent

    async def _after_timer(self, code: str) -> None:
        await self.publish(code)
        await self._close_if_empty(code)
        await self._refresh_lobby()

    async def _refresh_lobby(self) -> None:
        if self.hub is not None:
            await self.hub.refresh()

    async def _close_if_empty(self, code: str) -> bool:
        slot = self.registry.get(code)
        if slot is None:
            return False
        async with slot.lock:
            if slot.room.occupied():
                return False
            self.registry.drop(code)
        logger.info("room closed", extra={"room": code})
        return True

    # ------------------------------------------------------------------
    # arrivée / départ / connexion
    # ------------------------------------------------------------------
    async def join(self, code: str, identity: Identity, as_spectator: bool = False,
                   password: Optional[str] = None, secret: Optional[str] = None) -> Result:
        def _mutate(slot: RoomSlot) -> Result:
            room = slot.room
            existing = room.find_player(identity.id)
            if (existing is not None and existing.status == PlayerStatus.DISCONNECTED
                    and _secret_matches(existing.secret, secret)):
                self._resume(slot, identity.id)
                return {"seat": lobby.SEAT_PLAYER, "player_id": identity.id, "reconnected": True}
            seat = lobby.join(room, identity, as_spectator=as_spectator, password=password)
            if seat == lobby.SEAT_PLAYER:
                return {"seat": seat, "player_id": identity.id, "secret": room.player(identity.id).secret}
            return {"seat": seat, "player_id": identity.id}

        return await self._run(code, _mutate)

    async def reconnect(self, code: str, player_id: str, secret: Optional[str] = None) -> Result:
        def _mutate(slot: RoomSlot) -> Result:
            player = slot.room.player(player_id)
            if not _secret_matches(player.secret, secret):
                raise ActionRejected(Rejection.INVALID_SECRET, player_id)
            if player.status == PlayerStatus.ACTIVE:
                raise ActionRejected(Rejection.ALREADY_CONNECTED)
            self._resume(slot, player_id)
            return {"seat": lobby.SEAT_PLAYER, "player_id": player_id, "reconnected": True}

        return await self._run(code, _mutate)

    def _resume(self, slot: RoomSlot, player_id: str) -> None:
        handle = slot.grace_timers.pop(player_id, None)
        if handle is not None:
            handle.cancel()
        slot.engine.player_reconnected(player_id)
        logger.info("player reconnected", extra={"room": slot.code, "player": player_id})

    async def leave(self, code: str, participant_id: str) -> Result:
        def _mutate(slot: RoomSlot) -> None:
            room = slot.room
            handle = slot.grace_timers.pop(participant_id, None)
            if handle is not None:
                handle.cancel()
            player = room.find_player(participant_id)
            if player is not None and room.phase == RoomPhase.PLAYING:
                slot.engine.forfeit(participant_id)
            elif not lobby.remove_participant(room, participant_id):
                raise ActionRejected(Rejection.PLAYER_NOT_FOUND, participant_id)

        return await self._run(code, _mutate)

    async def disconnect(self, code: str, participant_id: str) -> Result:
        """Socket fermée sans `leave` : délai de grâce en partie, retrait sinon."""
        def _mutate(slot: RoomSlot) -> None:
            room = slot.room
            player = room.find_player(participant_id)
            if player is not None and room.phase == RoomPhase.PLAYING:
                if player.forfeited or participant_id in slot.grace_timers:
                    return
                slot.engine.player_disconnected(participant_id)
                slot.grace_timers[participant_id] = slot.scheduler.call_later(
                    settings.DISCONNECT_GRACE_SECONDS,
                    partial(self._grace_expired, slot, participant_id),
                )
                logger.info("player disconnected", extra={"room": slot.code, "player": participant_id})
            else:
                lobby.remove_participant(room, participant_id)

        return await self._run(code, _mutate)

    def _grace_expired(self, slot: RoomSlot, player_id: str) -> None:
        slot.grace_timers.pop(player_id, None)
        logger.info("reconnection grace expired", extra={"room": slot.code, "player": player_id})
        slot.engine.forfeit(player_id)

    # ------------------------------------------------------------------
    # lobby
    # ------------------------------------------------------------------
    async def start_game(self, code: str, player_id: str) -> Result:
        def _mutate(slot: RoomSlot) -> None:
            slot.room.player(player_id)
            lobby.start_game(slot.room)

        return await self._run(code, _mutate)

    async def switch_to_spectator(self, code: str, player_id: str) -> Result:
        return await self._run(code, lambda slot: lobby.switch_to_spectator(slot.room, player_id))

    async def switch_to_player(self, code: str, spectator_id: str) -> Result:
        def _mutate(slot: RoomSlot) -> Result:
            player = lobby.switch_to_player(slot.room, spectator_id)
            return {"secret": player.secret}

        return await self._run(code, _mutate)

    async def send_chat(self, code: str, sender_id: str, message: str) -> Result:
        def _mutate(slot: RoomSlot) -> None:
            lobby.send_chat(slot.room, sender_id, message)

        return await self._run(code, _mutate)

    async def play_again(self, code: str, participant_id: str,
                         overrides: Optional[Dict[str, Any]] = None) -> Result:
        """
        Revanche : le premier demandeur crée le salon (sans mot de passe), les
        suivants y sont renvoyés. `overrides` ne s'applique qu'à la création.
        """
        def _mutate(slot: RoomSlot) -> Result:
            room = slot.room
            if room.phase != RoomPhase.ENDED:
                raise ActionRejected(Rejection.GAME_NOT_ENDED)
            if room.find_player(participant_id) is None and participant_id not in room.spectators:
                raise ActionRejected(Rejection.PLAYER_NOT_FOUND, participant_id)
            rematch = self.registry.get(room.rematch_code) if room.rematch_code else None
            if rematch is None:
                options = _rematch_options(room, overrides)
                rematch_room = self.create_room(options)
                room.rematch_code = rematch_room.code
            lobby.remove_participant(room, participant_id)
            return {"code": room.rematch_code}

        return await self._run(code, _mutate)

    # ------------------------------------------------------------------
    # partie
    # ------------------------------------------------------------------
    async def declare_action(self, code: str, player_id: str, action: str,
                             target_id: Optional[str] = None) -> Result:
        def _mutate(slot: RoomSlot) -> None:
            kind = parse_action(action)
            if kind is None:
                raise ActionRejected(Rejection.UNKNOWN_ACTION, str(action))
            slot.engine.declare(player_id, kind, target_id)

        return await self._run(code, _mutate)

    async def respond(self, code: str, player_id: str, response: str,
                      block_role: Optional[str] = None) -> Result:
        return await self._run(code, lambda slot: slot.engine.respond(player_id, response, block_role))

    async def challenge_block(self, code: str, player_id: str) -> Result:
        return await self._run(code, lambda slot: slot.engine.challenge_block(player_id))

    async def choose_exchange(self, code: str, player_id: str, keep: List[int]) -> Result:
        return await self._run(code, lambda slot: slot.engine.choose_exchange(player_id, keep))

    async def show_card(self, code: str, player_id: str, index: int) -> Result:
        return await self._run(code, lambda slot: slot.engine.show_card(player_id, index))

    async def resolve_examine(self, code: str, player_id: str, force_exchange: bool) -> Result:
        return await self._run(code, lambda slot: slot.engine.resolve_examine(player_id, force_exchange))

    async def reveal_influence(self, code: str, player_id: str, index: int) -> Result:
        return await self._run(code, lambda slot: slot.engine.reveal_influence(player_id, index))


ROOMS = RoomService(REGISTRY, WS, sink=JsonResultSink(), hub=LOBBY)
