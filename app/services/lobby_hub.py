"""
Service: lobby_hub.py
Rôle:
- Canal lobby global, indépendant des salons :
  * `roomList`    : salons occupés (même ligne que GET /rooms) ;
  * `onlineUsers` : membres du lobby, dédoublonnés, avec `in_game` ;
  * `lobbyChat`   : chat public du lobby.
- `refresh()` ne pousse que ce qui a changé depuis le dernier envoi ; un membre
  qui vient d'arriver reçoit les deux listes complètes.

Intégrations:
- `REGISTRY` (room_store) pour les résumés de salons.
- `WS` (ws_manager) pour l'appartenance au lobby et les envois.
- `RoomService` appelle `refresh()` après chaque intent réussi et chaque minuteur.

Notes:
- Chaque méthode publique renvoie `{"success": bool, "error"?: code}`, comme
  `RoomService`.
- Le chat du lobby n'est pas conservé : diffusion immédiate uniquement.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from starlette.websockets import WebSocket

from app.config.settings import settings
from app.engine.errors import Rejection
from app.engine.player import Identity
from app.services.room_store import REGISTRY, RoomRegistry
from app.services.ws_manager import WS, LobbyMember, WSManager

logger = logging.getLogger(__name__)

Result = Dict[str, Any]


@dataclass
class LobbyHub:
    registry: RoomRegistry
    ws: WSManager
    # derniers instantanés diffusés (None = jamais envoyé)
    _rooms: Optional[List[Dict[str, Any]]] = field(default=None, init=False, repr=False)
    _users: Optional[List[Dict[str, Any]]] = field(default=None, init=False, repr=False)

    def room_list(self) -> List[Dict[str, Any]]:
        return [summary.model_dump(mode="json") for summary in self.registry.summaries()]

    async def join(self, ws: WebSocket, identity: Identity) -> Result:
        self.ws.join_lobby(ws, LobbyMember(id=identity.id, display_name=identity.display_name,
                                           is_guest=identity.is_guest))
        logger.debug("lobby joined", extra={"player": identity.id})
        await self.refresh(fresh=ws)
        return {"success": True}

    async def leave(self, ws: WebSocket) -> Result:
        if self.ws.leave_lobby(ws) is None:
            return {"success": False, "error": Rejection.NOT_IN_LOBBY.value}
        await self.refresh()
        return {"success": True}

    async def chat(self, ws: WebSocket, message: Any) -> Result:
        member = self.ws.lobby_member(ws)
        if member is None:
            return {"success": False, "error": Rejection.NOT_IN_LOBBY.value}
        text = message.strip() if isinstance(message, str) else ""
        if not text:
            return {"success": False, "error": Rejection.EMPTY_MESSAGE.value}
        if len(text) > settings.LOBBY_CHAT_MAX_LENGTH:
            return {"success": False, "error": Rejection.MESSAGE_TOO_LONG.value}
        await self.ws.broadcast_lobby({
            "type": "lobbyChat",
            "payload": {
                "sender_name": member.display_name,
                "message": text,
                "is_guest": member.is_guest,
                "ts": time.time(),
            },
        })
        return {"success": True}

    async def refresh(self, fresh: Optional[WebSocket] = None) -> int:
        """Pousse les listes modifiées à tout le lobby, et les deux listes à `fresh`."""
        rooms = self.room_list()
        users = self.ws.online_users()
        rooms_changed, users_changed = rooms != self._rooms, users != self._users
        self._rooms, self._users = rooms, users

        room_frame = {"type": "roomList", "payload": {"rooms": rooms}}
        users_frame = {"type": "onlineUsers", "payload": {"users": users}}
        frames = []
        for sock in self.ws.lobby_sockets():
            if rooms_changed or sock is fresh:
                frames.append((sock, room_frame))
            if users_changed or sock is fresh:
                frames.append((sock, users_frame))
        return await self.ws.send_frames(frames)


LOBBY = LobbyHub(REGISTRY, WS)
