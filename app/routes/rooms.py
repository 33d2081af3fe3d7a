"""
Module routes/rooms.py
Rôle:
- Création d'un salon, liste publique des salons, vue publique d'un salon.

Intégrations:
- `ROOMS` (room_service) : toute la logique vit côté service / moteur.
- La vue publique est celle d'un observateur anonyme : aucune carte cachée.

Notes:
- Rejoindre, jouer, quitter : uniquement via le WebSocket (`/ws`).
"""
from typing import Literal, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from app.engine.room import RoomOptions
from app.services.room_service import ROOMS

router = APIRouter(prefix="/rooms", tags=["rooms"])


class CreateRoomPayload(BaseModel):
    host_name: Optional[str] = None
    name: Optional[str] = None
    use_inquisitor: bool = False
    allow_spectators: bool = True
    chat_mode: Literal["separate", "unified", "none"] = "separate"
    password: Optional[str] = None
    ranked: bool = True
    anonymous: bool = False


@router.get("")
async def list_rooms():
    """Salons occupés (au moins un participant), avec leurs options publiques."""
    return {"rooms": [summary.model_dump() for summary in ROOMS.list_rooms()]}


@router.post("")
async def create_room(payload: CreateRoomPayload):
    """Crée un salon vide -> retourne son code ; l'hôte le rejoint ensuite via WS."""
    options = RoomOptions(
        name=(payload.name or "").strip(),
        use_inquisitor=payload.use_inquisitor,
        allow_spectators=payload.allow_spectators,
        chat_mode=payload.chat_mode,
        password=payload.password or None,
        ranked=payload.ranked,
        anonymous=payload.anonymous,
    )
    room = ROOMS.create_room(options, host_name=payload.host_name)
    return {"ok": True, "code": room.code, "name": room.name}


@router.get("/{code}")
async def room_view(code: str):
    view = await ROOMS.view(code, observer_id=None, is_spectator=False)
    if view is None:
        raise HTTPException(status_code=404, detail="room_not_found")
    return view.model_dump(mode="json")
