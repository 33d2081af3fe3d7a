"""
Engine: player.py
Rôle:
- Siège d'un joueur dans un salon : pièces, influences, cycle de vie
  (active / disconnected / forfeited), obligations en attente.
- Compteurs de partie (`GameStats`) transmis à la persistance en fin de partie.

Notes:
- Un joueur ayant quitté en cours de partie reste dans la liste (statut
  `forfeited`) : l'ordre des sièges et l'historique restent cohérents.
- `alive` vaut toujours `any(not c.revealed)` une fois la partie lancée.
- `label` est le nom montré aux autres : le pseudonyme tant qu'une partie
  anonyme est en cours, le nom d'affichage sinon.
- `secret` authentifie la reprise du siège ; il ne sort que dans la réponse
  au joueur qui obtient le siège.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from app.engine.catalog import Role


class PlayerStatus(str, Enum):
    ACTIVE = "active"
    DISCONNECTED = "disconnected"
    FORFEITED = "forfeited"


@dataclass
class Card:
    role: Role
    revealed: bool = False


@dataclass
class Identity:
    """Identité opaque fournie par le fournisseur d'identité."""
    id: str
    display_name: str
    user_id: Optional[str] = None
    is_guest: bool = True
    stats: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GameStats:
    coins_earned: int = 0
    coins_spent: int = 0
    coins_lost: int = 0
    coins_stolen: int = 0
    influences_lost: int = 0
    actions_performed: int = 0
    income_taken: int = 0
    coups_enacted: int = 0
    players_eliminated: int = 0
    successful_challenges: int = 0
    failed_challenges: int = 0
    claims_defended: int = 0
    bluffs_caught: int = 0
    bluffs_succeeded: int = 0
    tax_succeeded: int = 0
    tax_failed: int = 0
    foreign_aid_accepted: int = 0
    foreign_aid_denied: int = 0
    foreign_aid_block_succeeded: int = 0
    foreign_aid_block_failed: int = 0
    steals_blocked: int = 0
    assassinations_succeeded: int = 0
    assassinations_failed: int = 0
    contessa_succeeded: int = 0
    contessa_failed: int = 0
    influence_exchanged: int = 0
    influence_examined: int = 0
    influence_forced: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class Player:
    id: str
    display_name: str
    identity: Identity
    coins: int = 0
    influences: List[Card] = field(default_factory=list)
    alive: bool = True
    status: PlayerStatus = PlayerStatus.ACTIVE
    # jeton de reprise du siège : remis au seul joueur, jamais projeté
    secret: str = field(default_factory=lambda: uuid4().hex, repr=False)
    # pseudonyme de partie (salon anonyme), effacé en fin de partie
    alias: Optional[str] = None

    # obligations
    influences_to_lose: int = 0
    must_choose_exchange: bool = False
    must_choose_examine: bool = False
    must_show_card_to: Optional[str] = None

    # transitoires du tour
    exchange_cards: List[Role] = field(default_factory=list)
    examine_target_id: Optional[str] = None
    examined_card_index: Optional[int] = None
    influence_loss_caused_by: Optional[str] = None

    stats: GameStats = field(default_factory=GameStats)

    @property
    def connected(self) -> bool:
        return self.status == PlayerStatus.ACTIVE

    @property
    def forfeited(self) -> bool:
        return self.status == PlayerStatus.FORFEITED

    @property
    def label(self) -> str:
        return self.alias or self.display_name

    def unrevealed(self) -> List[int]:
        """Indices des cartes encore cachées."""
        return [i for i, card in enumerate(self.influences) if not card.revealed]

    def holds(self, role: Role) -> Optional[int]:
        """Index d'une carte cachée du rôle demandé, sinon None."""
        for i, card in enumerate(self.influences):
            if not card.revealed and card.role == role:
                return i
        return None

    def has_obligation(self) -> bool:
        return bool(
            self.influences_to_lose > 0
            or self.must_choose_exchange
            or self.must_choose_examine
            or self.must_show_card_to
        )

    def clear_obligations(self) -> None:
        self.influences_to_lose = 0
        self.must_choose_exchange = False
        self.must_choose_examine = False
        self.must_show_card_to = None
        self.examine_target_id = None
        self.examined_card_index = None
        self.influence_loss_caused_by = None

    def reset_for_game(self, coins: int) -> None:
        self.coins = coins
        self.influences = []
        self.alive = True
        self.alias = None
        self.exchange_cards = []
        self.clear_obligations()
        self.stats = GameStats(coins_earned=coins)
