# app/services/ws_manager.py
"""
Service: ws_manager.py
- Mapping socket -> place (salon, observateur, spectateur ?) et socket en attente.
- Rattachement idempotent (une socket change de place après switch joueur/spectateur).
- Snapshots immuables pour éviter "dict changed size during iteration".
- Envois JSON (orjson) ; une socket morte est retirée silencieusement du registre.
- Canal lobby global : membres hors salon (ou en salon) qui reçoivent la liste
  des salons, les utilisateurs en ligne et le chat du lobby.
- Admin: stats(), close_all().
"""
from __future__ import annotations
from typing import Dict, Iterable, List, Optional, Set, Tuple, Any
from dataclasses import dataclass, field
from threading import RLock
import logging

from starlette.websockets import WebSocket, WebSocketDisconnect

from app.services.io_utils import dumps_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Seat:
    room_code: str
    observer_id: str
    is_spectator: bool = False


@dataclass(frozen=True)
class LobbyMember:
    id: str
    display_name: str
    is_guest: bool = True


@dataclass
class WSManager:
    _lock: RLock = field(default_factory=RLock, init=False, repr=False)
    # socket -> place dans un salon
    seats: Dict[WebSocket, Seat] = field(default_factory=dict)
    # sockets acceptées mais pas encore dans un salon
    pending: Set[WebSocket] = field(default_factory=set)
    # sockets abonnées au canal lobby
    lobby: Dict[WebSocket, LobbyMember] = field(default_factory=dict)

    async def connect(self, ws: WebSocket) -> None:
        """Accepte la connexion WS et place dans 'pending'."""
        await ws.accept()
        with self._lock:
            self.pending.add(ws)

    def bind(self, ws: WebSocket, room_code: str, observer_id: str, is_spectator: bool) -> Seat:
        seat = Seat(room_code=room_code, observer_id=observer_id, is_spectator=is_spectator)
        with self._lock:
            self.pending.discard(ws)
            self.seats[ws] = seat
        return seat

    def unbind(self, ws: WebSocket) -> Optional[Seat]:
        """Détache la socket de son salon (elle reste ouverte, en attente)."""
        with self._lock:
            seat = self.seats.pop(ws, None)
            if seat is not None:
                self.pending.add(ws)
            return seat

    def _forget(self, ws: WebSocket) -> Optional[Seat]:
        with self._lock:
            self.pending.discard(ws)
            self.lobby.pop(ws, None)
            return self.seats.pop(ws, None)

    async def disconnect(self, ws: WebSocket) -> Optional[Seat]:
        """Ferme proprement la connexion et retourne la place qu'elle occupait."""
        seat = self._forget(ws)
        try:
            await ws.close()
        except RuntimeError:
            # déjà fermée côté client
            pass
        return seat

    def seat_of(self, ws: WebSocket) -> Optional[Seat]:
        with self._lock:
            return self.seats.get(ws)

    # ---------- lobby ----------
    def join_lobby(self, ws: WebSocket, member: LobbyMember) -> None:
        with self._lock:
            self.lobby[ws] = member

    def leave_lobby(self, ws: WebSocket) -> Optional[LobbyMember]:
        with self._lock:
            return self.lobby.pop(ws, None)

    def lobby_member(self, ws: WebSocket) -> Optional[LobbyMember]:
        with self._lock:
            return self.lobby.get(ws)

    def lobby_sockets(self) -> List[WebSocket]:
        with self._lock:
            return list(self.lobby.keys())

    def online_users(self) -> List[Dict[str, Any]]:
        """Membres du lobby dédoublonnés par identifiant ; `in_game` si une socket tient un siège de joueur."""
        with self._lock:
            playing = {seat.observer_id for seat in self.seats.values() if not seat.is_spectator}
            unique: Dict[str, LobbyMember] = {}
            for member in self.lobby.values():
                unique.setdefault(member.id, member)
        users = [
            {"display_name": m.display_name, "is_guest": m.is_guest, "in_game": m.id in playing}
            for m in unique.values()
        ]
        return sorted(users, key=lambda u: u["display_name"].lower())

    # ---------- snapshots immuables ----------
    def members(self, room_code: str) -> List[Tuple[WebSocket, Seat]]:
        with self._lock:
            return [(ws, seat) for ws, seat in self.seats.items() if seat.room_code == room_code]

    # ---------- envois ----------
    async def _send_json_one(self, ws: WebSocket, payload: Any) -> bool:
        """Envoie à un WS; renvoie True si succès, sinon False (et retire le WS mort)."""
        try:
            await ws.send_text(dumps_text(payload))
            return True
        except (RuntimeError, OSError, WebSocketDisconnect) as exc:
            logger.debug("dropping dead socket", extra={"error": str(exc)})
            self._forget(ws)
            return False

    async def send_json(self, ws: WebSocket, payload: Any) -> bool:
        return await self._send_json_one(ws, payload)

    async def send_frames(self, frames: Iterable[Tuple[WebSocket, Any]]) -> int:
        success = 0
        for ws, payload in frames:
            if await self._send_json_one(ws, payload):
                success += 1
        return success

    async def broadcast_room(self, room_code: str, payload: Any) -> int:
        return await self.send_frames((ws, payload) for ws, _ in self.members(room_code))

    async def broadcast_lobby(self, payload: Any) -> int:
        return await self.send_frames((ws, payload) for ws in self.lobby_sockets())

    # ---------- admin ----------
    def stats(self) -> dict:
        with self._lock:
            rooms: Dict[str, int] = {}
            for seat in self.seats.values():
                rooms[seat.room_code] = rooms.get(seat.room_code, 0) + 1
            return {"pending": len(self.pending), "seated": len(self.seats), "lobby": len(self.lobby), "rooms": rooms}

    async def close_all(self) -> None:
        with self._lock:
            sockets = list(self.seats.keys()) + list(self.pending)
            self.seats.clear()
            self.pending.clear()
            self.lobby.clear()
        for ws in sockets:
            try:
                await ws.close()
            except RuntimeError:
                pass


WS = WSManager()
