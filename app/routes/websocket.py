# app/routes/websocket.py
"""
WebSocket endpoint.

- /ws : canal unique joueurs / spectateurs.
  1. {"type": "join", "room": "ABC123", "name": "...", "player_id": "...",
      "token": "...", "spectator": false, "password": "..."}
     ou {"type": "reconnect", "room": "...", "player_id": "...", "secret": "..."}
     Le résultat d'un join en tant que joueur porte `secret`, à conserver pour
     reprendre le siège (reconnect, ou join avec le même player_id).
  2. puis des intents {"type": ..., "request_id": ..., ...} ; chaque intent
     reçoit {"type": "result", "request_id", "intent", "success", "error"?}.
- Canal lobby, avec ou sans salon : {"type": "join_lobby", "name", "player_id",
  "token"}, {"type": "leave_lobby"}, {"type": "lobby_chat", "message"}.
- Ping/pong pour heartbeat.
- Fermeture sans "leave" : déconnexion (délai de grâce en partie).
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import orjson
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.engine.errors import LogicFault
from app.services.identity import IDENTITY
from app.services.lobby_hub import LOBBY
from app.services.room_service import ROOMS
from app.services.ws_manager import WS, Seat

router = APIRouter()
logger = logging.getLogger(__name__)

LOBBY_INTENTS = ("join_lobby", "leave_lobby", "lobby_chat")


async def _dispatch(seat: Seat, mtype: str, msg: Dict[str, Any]) -> Dict[str, Any]:
    code, pid = seat.room_code, seat.observer_id
    if mtype == "start_game":
        return await ROOMS.start_game(code, pid)
    if mtype == "declare_action":
        return await ROOMS.declare_action(code, pid, str(msg.get("action") or ""), msg.get("target_id"))
    if mtype == "respond":
        return await ROOMS.respond(code, pid, str(msg.get("response") or ""), msg.get("block_role"))
    if mtype == "challenge_block":
        return await ROOMS.challenge_block(code, pid)
    if mtype == "choose_exchange":
        keep = msg.get("keep")
        return await ROOMS.choose_exchange(code, pid, keep if isinstance(keep, list) else [])
    if mtype == "show_card":
        return await ROOMS.show_card(code, pid, msg.get("index"))
    if mtype == "resolve_examine":
        return await ROOMS.resolve_examine(code, pid, bool(msg.get("force_exchange")))
    if mtype == "reveal_influence":
        return await ROOMS.reveal_influence(code, pid, msg.get("index"))
    if mtype == "switch_to_player":
        return await ROOMS.switch_to_player(code, pid)
    if mtype == "switch_to_spectator":
        return await ROOMS.switch_to_spectator(code, pid)
    if mtype == "chat":
        return await ROOMS.send_chat(code, pid, str(msg.get("message") or ""))
    if mtype == "leave":
        return await ROOMS.leave(code, pid)
    if mtype == "play_again":
        options = msg.get("options")
        return await ROOMS.play_again(code, pid, options if isinstance(options, dict) else None)
    return {"success": False, "error": "unknown_intent"}


async def _lobby(ws: WebSocket, mtype: str, msg: Dict[str, Any]) -> Dict[str, Any]:
    if mtype == "join_lobby":
        identity = IDENTITY.resolve(msg.get("token"), msg.get("name"), msg.get("player_id"))
        return await LOBBY.join(ws, identity)
    if mtype == "leave_lobby":
        return await LOBBY.leave(ws)
    return await LOBBY.chat(ws, msg.get("message"))


async def _enter(ws: WebSocket, mtype: str, msg: Dict[str, Any]) -> tuple[Dict[str, Any], Optional[Seat]]:
    """Traite join / reconnect pour une socket qui n'est dans aucun salon."""
    code = str(msg.get("room") or "").strip().upper()
    if mtype == "join":
        identity = IDENTITY.resolve(msg.get("token"), msg.get("name"), msg.get("player_id"))
        result = await ROOMS.join(code, identity, as_spectator=bool(msg.get("spectator")),
                                  password=msg.get("password"), secret=msg.get("secret"))
    elif mtype == "reconnect":
        result = await ROOMS.reconnect(code, str(msg.get("player_id") or ""), msg.get("secret"))
    else:
        return {"success": False, "error": "not_in_room"}, None

    if not result.get("success"):
        return result, None
    seat = WS.bind(ws, code, result["player_id"], result["seat"] == "spectator")
    return result, seat


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    """
    Boucle d'écoute des clients de salon.
    - Messages non JSON ignorés (erreur renvoyée).
    - Une socket n'occupe qu'un salon à la fois ; après "leave" ou "play_again"
      elle peut rejoindre un autre salon.
    """
    await WS.connect(ws)
    seat: Optional[Seat] = None
    try:
        while True:
            raw = await ws.receive_text()
            try:
                msg = orjson.loads(raw)
            except orjson.JSONDecodeError:
                await WS.send_json(ws, {"type": "error", "error": "invalid_json"})
                continue
            if not isinstance(msg, dict):
                await WS.send_json(ws, {"type": "error", "error": "invalid_message"})
                continue

            mtype = str(msg.get("type") or "")
            request_id = msg.get("request_id")
            if mtype == "ping":
                await WS.send_json(ws, {"type": "pong"})
                continue

            try:
                if mtype in LOBBY_INTENTS:
                    result = await _lobby(ws, mtype, msg)
                elif seat is None:
                    result, seat = await _enter(ws, mtype, msg)
                else:
                    result = await _dispatch(seat, mtype, msg)
            except LogicFault:
                # déjà journalisé par le service
                result = {"success": False, "error": "internal_error"}

            await WS.send_json(ws, {"type": "result", "request_id": request_id, "intent": mtype, **result})

            if seat is not None and result.get("success"):
                if mtype in ("join", "reconnect"):
                    view = await ROOMS.view(seat.room_code, seat.observer_id, seat.is_spectator)
                    if view is not None:
                        await WS.send_json(ws, {"type": "gameState", "payload": view.model_dump(mode="json")})
                elif mtype in ("switch_to_player", "switch_to_spectator"):
                    seat = WS.bind(ws, seat.room_code, seat.observer_id, mtype == "switch_to_spectator")
                    await ROOMS.publish(seat.room_code)
                elif mtype in ("leave", "play_again"):
                    WS.unbind(ws)
                    seat = None
                # le drapeau in_game des utilisateurs en ligne suit les sièges
                await LOBBY.refresh()
    except WebSocketDisconnect:
        pass
    finally:
        await WS.disconnect(ws)
        if seat is not None:
            try:
                await ROOMS.disconnect(seat.room_code, seat.observer_id)
            except LogicFault:
                logger.warning("disconnect left room in a faulty state", extra={"room": seat.room_code})
        await LOBBY.refresh()
