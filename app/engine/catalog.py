"""
Engine: catalog.py
Rôle:
- Données de règles statiques : les rôles (cinq, l'Inquisiteur remplaçant
  l'Ambassadeur en variante), les huit actions et la table de ce que chaque
  action coûte, rapporte, revendique, et qui peut la contrer.

Notes:
- Tout est immuable ; le reste du moteur ne fait que lire ce module.
- `parse_action` / `parse_role` renvoient None pour toute entrée client
  inattendue (type compris) : l'appelant en fait un rejet typé.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

COPIES_PER_ROLE = 3


class Role(str, Enum):
    DUKE = "Duke"
    ASSASSIN = "Assassin"
    CAPTAIN = "Captain"
    AMBASSADOR = "Ambassador"
    CONTESSA = "Contessa"
    INQUISITOR = "Inquisitor"


class ActionKind(str, Enum):
    INCOME = "income"
    FOREIGN_AID = "foreign_aid"
    TAX = "tax"
    ASSASSINATE = "assassinate"
    STEAL = "steal"
    EXCHANGE = "exchange"
    EXAMINE = "examine"
    COUP = "coup"


@dataclass(frozen=True)
class ActionSpec:
    kind: ActionKind
    gain: int = 0
    cost: int = 0
    # rôle revendiqué par l'acteur (None : pas de revendication, pas de défi)
    claim: Optional[Role] = None
    blockable: bool = False
    # seule la cible peut contrer (assassinat, vol)
    block_by_target_only: bool = False
    needs_target: bool = False
    inquisitor_only: bool = False

    @property
    def challengeable(self) -> bool:
        return self.claim is not None


_BASE_ACTIONS = {
    ActionKind.INCOME: ActionSpec(ActionKind.INCOME, gain=1),
    ActionKind.FOREIGN_AID: ActionSpec(ActionKind.FOREIGN_AID, gain=2, blockable=True),
    ActionKind.TAX: ActionSpec(ActionKind.TAX, gain=3, claim=Role.DUKE),
    ActionKind.ASSASSINATE: ActionSpec(
        ActionKind.ASSASSINATE, cost=3, claim=Role.ASSASSIN,
        blockable=True, block_by_target_only=True, needs_target=True,
    ),
    ActionKind.STEAL: ActionSpec(
        ActionKind.STEAL, gain=2, claim=Role.CAPTAIN,
        blockable=True, block_by_target_only=True, needs_target=True,
    ),
    ActionKind.EXCHANGE: ActionSpec(ActionKind.EXCHANGE, claim=Role.AMBASSADOR),
    ActionKind.EXAMINE: ActionSpec(
        ActionKind.EXAMINE, claim=Role.INQUISITOR, needs_target=True, inquisitor_only=True,
    ),
    ActionKind.COUP: ActionSpec(ActionKind.COUP, cost=7, needs_target=True),
}


def roles_in_play(use_inquisitor: bool) -> Tuple[Role, ...]:
    """Les cinq rôles distribués dans le paquet pour la variante choisie."""
    fifth = Role.INQUISITOR if use_inquisitor else Role.AMBASSADOR
    return (Role.DUKE, Role.ASSASSIN, Role.CAPTAIN, fifth, Role.CONTESSA)


def deck_size() -> int:
    return len(roles_in_play(False)) * COPIES_PER_ROLE


def action_spec(kind: ActionKind, use_inquisitor: bool) -> Optional[ActionSpec]:
    """
    Ligne de la table pour la variante, ou None si l'action n'y existe pas
    (examen hors paquet Inquisiteur).
    """
    spec = _BASE_ACTIONS.get(kind)
    if spec is None:
        return None
    if spec.inquisitor_only and not use_inquisitor:
        return None
    if kind == ActionKind.EXCHANGE and use_inquisitor:
        return ActionSpec(ActionKind.EXCHANGE, claim=Role.INQUISITOR)
    return spec


def blocker_roles(kind: ActionKind, use_inquisitor: bool) -> Tuple[Role, ...]:
    if kind == ActionKind.FOREIGN_AID:
        return (Role.DUKE,)
    if kind == ActionKind.ASSASSINATE:
        return (Role.CONTESSA,)
    if kind == ActionKind.STEAL:
        return (Role.CAPTAIN, Role.INQUISITOR if use_inquisitor else Role.AMBASSADOR)
    return ()


def exchange_draw_count(use_inquisitor: bool) -> int:
    return 1 if use_inquisitor else 2


def parse_action(raw: Any) -> Optional[ActionKind]:
    """Accepte `foreign_aid`, `foreignAid` ou `foreign-aid`."""
    if not isinstance(raw, str):
        return None
    key = raw.strip().replace("-", "_")
    if key == "foreignAid":
        key = "foreign_aid"
    try:
        return ActionKind(key.lower())
    except ValueError:
        return None


def parse_role(raw: Any) -> Optional[Role]:
    if not isinstance(raw, str):
        return None
    try:
        return Role(raw.strip().capitalize())
    except ValueError:
        return None
