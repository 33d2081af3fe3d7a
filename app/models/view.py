"""
Models / view.py
Rôle:
- Modèles pydantic de la vue envoyée à UN observateur (joueur ou spectateur).

Notes:
- `CardView.role` vaut None pour une carte cachée que l'observateur n'a pas
  le droit de voir.
- Aucune référence au minuteur n'apparaît ici.
"""
from pydantic import BaseModel, Field
from typing import Dict, List, Optional

from app.models.event import LogEntry


class CardView(BaseModel):
    role: Optional[str] = None
    revealed: bool = False


class ExaminedCardView(BaseModel):
    target_id: str
    index: int
    role: str


class PlayerView(BaseModel):
    id: str
    display_name: str
    coins: int
    alive: bool
    status: str
    is_current: bool = False
    influences: List[CardView] = Field(default_factory=list)
    influences_to_lose: int = 0
    must_choose_exchange: bool = False
    must_choose_examine: bool = False
    must_show_card_to: Optional[str] = None
    examine_target_id: Optional[str] = None
    # visibles uniquement par le propriétaire
    exchange_cards: Optional[List[str]] = None
    exchange_options: Optional[List[str]] = None
    examined_card: Optional[ExaminedCardView] = None


class SpectatorView(BaseModel):
    id: str
    display_name: str


class ActionView(BaseModel):
    id: int
    actor_id: str
    kind: str
    target_id: Optional[str] = None
    claim: Optional[str] = None
    challengeable: bool
    blockable: bool
    block_by_target_only: bool
    blocker_roles: List[str] = Field(default_factory=list)
    phase: str
    pending: List[str] = Field(default_factory=list)
    responses: Dict[str, str] = Field(default_factory=dict)
    blocker_id: Optional[str] = None
    block_role: Optional[str] = None
    paused: bool = False


class OptionsView(BaseModel):
    name: str
    use_inquisitor: bool
    allow_spectators: bool
    chat_mode: str
    has_password: bool
    ranked: bool
    anonymous: bool = False


class EliminationView(BaseModel):
    player_id: str
    display_name: str
    placement: int
    eliminated_by: Optional[str] = None


class ClientView(BaseModel):
    code: str
    phase: str
    options: OptionsView
    host_id: Optional[str] = None
    observer_id: Optional[str] = None
    is_spectator: bool = False
    players: List[PlayerView] = Field(default_factory=list)
    spectators: List[SpectatorView] = Field(default_factory=list)
    current_player_id: Optional[str] = None
    action: Optional[ActionView] = None
    deck_count: int = 0
    log: List[LogEntry] = Field(default_factory=list)
    eliminations: List[EliminationView] = Field(default_factory=list)
    winner_id: Optional[str] = None
    rematch_code: Optional[str] = None
    started_at: Optional[float] = None
    ended_at: Optional[float] = None


class RoomSummary(BaseModel):
    """Ligne de la liste publique des salons."""
    code: str
    name: str
    phase: str
    player_count: int
    spectator_count: int
    max_players: int
    options: OptionsView
