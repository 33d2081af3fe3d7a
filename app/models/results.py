"""
Models / results.py
Rôle:
- Forme des données remises au puits de persistance en fin de partie.

Notes:
- Les statistiques par joueur reprennent les compteurs `GameStats` du moteur.
- `placements` est trié par place (1 = vainqueur).
"""
from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Any


class PlayerResult(BaseModel):
    player_id: str
    display_name: str
    user_id: Optional[str] = None
    is_guest: bool = True
    placement: int
    forfeited: bool = False
    stats: Dict[str, int] = Field(default_factory=dict)


class PlacementEntry(BaseModel):
    player_id: str
    display_name: str
    placement: int
    eliminated_by: Optional[str] = None


class GameResult(BaseModel):
    room_code: str
    settings: Dict[str, Any] = Field(default_factory=dict)
    players: List[PlayerResult] = Field(default_factory=list)
    placements: List[PlacementEntry] = Field(default_factory=list)
    winner_id: Optional[str] = None
    started_at: float
    ended_at: float

    @property
    def duration_seconds(self) -> float:
        return max(0.0, self.ended_at - self.started_at)
