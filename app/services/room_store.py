"""
Room store registry
===================

Registre en mémoire des salons actifs. Chaque entrée (`RoomSlot`) regroupe le
salon, son moteur, son verrou asyncio (sérialisation des intents et des
minuteurs) et son ordonnanceur.

Le registre lui-même est protégé par un `RLock` : création, lecture et
suppression peuvent venir de n'importe quel salon.
"""
from __future__ import annotations

import asyncio
import random
import string
from dataclasses import dataclass, field
from threading import RLock
from typing import Dict, List, Optional

from app.engine.projection import summarize
from app.engine.resolution import GameEngine
from app.engine.room import Room
from app.engine.timers import TimerHandle
from app.models.view import RoomSummary
from app.services.scheduler import AsyncioScheduler

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6


@dataclass
class RoomSlot:
    room: Room
    engine: GameEngine
    lock: asyncio.Lock
    scheduler: AsyncioScheduler
    # player_id -> minuteur de reconnexion
    grace_timers: Dict[str, TimerHandle] = field(default_factory=dict)
    end_announced: bool = False

    @property
    def code(self) -> str:
        return self.room.code


@dataclass
class RoomRegistry:
    _lock: RLock = field(default_factory=RLock, init=False, repr=False)
    _rooms: Dict[str, RoomSlot] = field(default_factory=dict)
    rng: random.Random = field(default_factory=random.SystemRandom, repr=False)

    def generate_code(self) -> str:
        """Code à 6 caractères [A-Z0-9] non utilisé par un salon actif."""
        with self._lock:
            while True:
                code = "".join(self.rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
                if code not in self._rooms:
                    return code

    def add(self, slot: RoomSlot) -> RoomSlot:
        with self._lock:
            if slot.code in self._rooms:
                raise KeyError(f"room {slot.code} already registered")
            self._rooms[slot.code] = slot
            return slot

    def get(self, code: str) -> Optional[RoomSlot]:
        normalized = (code or "").strip().upper()
        with self._lock:
            return self._rooms.get(normalized)

    def drop(self, code: str) -> Optional[RoomSlot]:
        """Retire un salon et annule ses minuteurs."""
        with self._lock:
            slot = self._rooms.pop(code, None)
        if slot is not None:
            slot.scheduler.cancel_all()
            slot.grace_timers.clear()
        return slot

    def list(self) -> List[RoomSlot]:
        with self._lock:
            return list(self._rooms.values())

    def summaries(self) -> List[RoomSummary]:
        """Salons occupés, tels que listés publiquement."""
        return [summarize(slot.room) for slot in self.list() if slot.room.occupied()]

    def codes(self) -> List[str]:
        with self._lock:
            return list(self._rooms.keys())

    def clear(self) -> None:
        for code in self.codes():
            self.drop(code)


REGISTRY = RoomRegistry()
