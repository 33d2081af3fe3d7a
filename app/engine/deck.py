"""
Engine: deck.py
Rôle:
- Paquet de cartes d'un salon (multiset de rôles, ordre significatif).
- Mélange Fisher–Yates explicite, à la création et à chaque retour de carte.

Notes:
- Le générateur aléatoire est injecté (`random.Random`) : les tests passent
  une graine pour obtenir des tirages reproductibles.
- `draw()` prend le sommet du paquet (fin de liste).
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from app.engine.catalog import COPIES_PER_ROLE, Role, roles_in_play
from app.engine.errors import LogicFault


@dataclass
class Deck:
    cards: List[Role] = field(default_factory=list)
    rng: random.Random = field(default_factory=random.Random, repr=False)

    @classmethod
    def build(cls, use_inquisitor: bool, rng: Optional[random.Random] = None) -> "Deck":
        """Crée un paquet complet (3 exemplaires par rôle) déjà mélangé."""
        cards = [role for role in roles_in_play(use_inquisitor) for _ in range(COPIES_PER_ROLE)]
        deck = cls(cards=cards, rng=rng or random.Random())
        deck.shuffle()
        return deck

    def __len__(self) -> int:
        return len(self.cards)

    def shuffle(self) -> None:
        cards = self.cards
        for i in range(len(cards) - 1, 0, -1):
            j = self.rng.randint(0, i)
            cards[i], cards[j] = cards[j], cards[i]

    def draw(self) -> Role:
        if not self.cards:
            raise LogicFault("deck is empty")
        return self.cards.pop()

    def draw_many(self, count: int) -> List[Role]:
        return [self.draw() for _ in range(count)]

    def put_back(self, role: Role) -> None:
        """Remet une carte dans le paquet puis remélange."""
        self.cards.append(role)
        self.shuffle()

    def put_back_many(self, roles: Iterable[Role]) -> None:
        self.cards.extend(roles)
        self.shuffle()
