"""
Models / event.py
Rôle:
- Définir l'entrée standard du journal de salle (actions, défis, contres,
  révélations, éliminations, chat...).

Notes:
- `kind` restreint à un jeu de valeurs (Literal) pour éviter les fautes de frappe.
- `payload` est libre (clé/valeur) : texte lisible + champs structurés
  (`actor`, `target`, `role`...).
- `ts` est un horodatage epoch (secondes) posé par le moteur.
"""
from pydantic import BaseModel, Field
from typing import Literal, Dict, Any

# Typage strict des catégories d'entrées de journal
LogKind = Literal[
    "system",
    "action",
    "challenge",
    "block",
    "reveal",
    "exchange",
    "examine",
    "elimination",
    "turn",
    "game",
    "chat",
]


class LogEntry(BaseModel):
    """Représente une ligne du journal d'un salon (diffusée via la projection)."""
    id: int  # numéro séquentiel dans le salon
    kind: LogKind
    payload: Dict[str, Any] = Field(default_factory=dict)
    ts: float = 0.0

    @property
    def text(self) -> str:
        return str(self.payload.get("text", ""))
