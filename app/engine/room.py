"""
Engine: room.py
Rôle:
- Agrégat « salon » : options, paquet, sièges, spectateurs, action en cours,
  journal, phase (lobby / playing / ended), ordre d'élimination.
- `ActionInProgress` : l'unique action en cours de résolution (au plus une
  par salon).

Notes:
- Le salon ne connaît ni les sockets ni l'ordonnanceur : le minuteur d'une
  action est un `TimerHandle` opaque, retiré de toute projection.
- Le journal est borné en mémoire (`LOG_RETENTION`), la projection n'en montre
  que la fin (`LOG_WINDOW`).
"""
from __future__ import annotations

import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Literal, Optional, Set, Tuple

from pydantic import BaseModel

from app.config.settings import settings
from app.engine.catalog import ActionKind, Role
from app.engine.deck import Deck
from app.engine.errors import ActionRejected, Rejection
from app.engine.player import Player
from app.engine.timers import TimerHandle
from app.models.event import LogEntry, LogKind

ChatMode = Literal["separate", "unified", "none"]


class RoomPhase(str, Enum):
    LOBBY = "lobby"
    PLAYING = "playing"
    ENDED = "ended"


class ActionPhase(str, Enum):
    AWAITING_RESPONSE = "awaiting_response"
    AWAITING_BLOCK_CHALLENGE = "awaiting_block_challenge"


class RoomOptions(BaseModel):
    name: str = ""
    use_inquisitor: bool = False
    allow_spectators: bool = True
    chat_mode: ChatMode = "separate"
    password: Optional[str] = None
    ranked: bool = True
    anonymous: bool = False


@dataclass
class Spectator:
    id: str
    display_name: str


@dataclass
class ActionInProgress:
    id: int
    actor_id: str
    kind: ActionKind
    target_id: Optional[str]
    claim: Optional[Role]
    challengeable: bool
    blockable: bool
    block_by_target_only: bool
    blocker_roles: Tuple[Role, ...]
    phase: ActionPhase = ActionPhase.AWAITING_RESPONSE
    pending: Set[str] = field(default_factory=set)
    responses: Dict[str, str] = field(default_factory=dict)
    blocker_id: Optional[str] = None
    block_role: Optional[Role] = None
    paused: bool = False
    timer: Optional[TimerHandle] = field(default=None, repr=False)

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


@dataclass
class EliminationRecord:
    player_id: str
    display_name: str
    user_id: Optional[str]
    placement: int
    eliminated_by: Optional[str] = None
    coins_earned: int = 0
    eliminations: int = 0


@dataclass
class Room:
    code: str
    options: RoomOptions
    host_id: Optional[str] = None
    deck: Deck = field(default_factory=Deck)
    players: List[Player] = field(default_factory=list)
    spectators: Dict[str, Spectator] = field(default_factory=dict)
    current_index: int = 0
    action: Optional[ActionInProgress] = None
    log: List[LogEntry] = field(default_factory=list)
    phase: RoomPhase = RoomPhase.LOBBY
    eliminations: List[EliminationRecord] = field(default_factory=list)
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    winner_id: Optional[str] = None
    awaiting_turn_advance: bool = False
    results_recorded: bool = False
    rematch_code: Optional[str] = None
    rng: random.Random = field(default_factory=random.Random, repr=False)
    clock: Callable[[], float] = field(default_factory=lambda: time.time, repr=False)
    _log_seq: int = field(default=0, repr=False)
    _action_seq: int = field(default=0, repr=False)

    # ---------- lookups ----------
    @property
    def name(self) -> str:
        return self.options.name or self.code

    def find_player(self, player_id: str) -> Optional[Player]:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def player(self, player_id: str) -> Player:
        """Comme `find_player` mais rejette l'intent si le joueur est inconnu."""
        p = self.find_player(player_id)
        if p is None:
            raise ActionRejected(Rejection.PLAYER_NOT_FOUND, player_id)
        return p

    def current_player(self) -> Optional[Player]:
        if not self.players:
            return None
        return self.players[self.current_index % len(self.players)]

    def living(self) -> List[Player]:
        return [p for p in self.players if p.alive]

    def contenders(self) -> List[Player]:
        """Joueurs vivants et non forfaits (connectés ou non)."""
        return [p for p in self.players if p.alive and not p.forfeited]

    def occupied(self) -> bool:
        """Au moins un participant n'a pas quitté le salon (déconnexion temporaire comprise)."""
        return bool(self.spectators) or any(not p.forfeited for p in self.players)

    def has_pending_obligations(self) -> bool:
        return any(p.has_obligation() for p in self.players)

    def next_action_id(self) -> int:
        self._action_seq += 1
        return self._action_seq

    # ---------- journal ----------
    def add_log(self, kind: LogKind, text: str, **fields: Any) -> LogEntry:
        self._log_seq += 1
        entry = LogEntry(id=self._log_seq, kind=kind, payload={"text": text, **fields}, ts=self.clock())
        self.log.append(entry)
        overflow = len(self.log) - settings.LOG_RETENTION
        if overflow > 0:
            del self.log[:overflow]
        return entry

    def card_count(self) -> int:
        """Cartes en jeu : paquet + influences + cartes proposées dans un échange."""
        held = sum(len(p.influences) + len(p.exchange_cards) for p in self.players)
        return len(self.deck) + held
