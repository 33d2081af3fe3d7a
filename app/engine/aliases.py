"""
Engine: aliases.py
Rôle:
- Pseudonymes des salons anonymes : un titre de rôle accolé à un prénom
  (ex. `DukeMarlowe`), tirés au lancement de la partie.

Notes:
- Tirage sans remise sur le produit titres × prénoms : deux joueurs d'une
  même partie n'ont jamais le même pseudonyme.
- Le générateur est celui du salon, les tests à graine restent reproductibles.
"""
from __future__ import annotations

import random
from typing import List

from app.engine.catalog import Role

TITLES = tuple(role.value for role in Role)

NAMES = (
    "Ash", "Bellamy", "Corvin", "Dahlia", "Ember", "Fenwick", "Greer", "Hollis",
    "Isolde", "Jasper", "Kestrel", "Lark", "Marlowe", "Nyx", "Oberon", "Perrin",
    "Quill", "Rook", "Sable", "Thorne", "Umber", "Vesper", "Wren", "Yarrow",
)


def draw_aliases(count: int, rng: random.Random) -> List[str]:
    pool = [f"{title}{name}" for title in TITLES for name in NAMES]
    return rng.sample(pool, count)
