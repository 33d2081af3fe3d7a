"""
Service: identity.py
Rôle:
- Résoudre l'identité d'un participant au moment où il rejoint un salon.

Intégrations:
- Les comptes (inscription, connexion, statistiques) vivent hors de ce service :
  un fournisseur externe peut enregistrer des jetons via `register_token`.
- Sans jeton connu, une identité invitée est émise ; l'identifiant public
  envoyé par le client est repris tel quel. Il ne suffit PAS pour reprendre
  un siège : la reconnexion exige le secret remis au joueur (`Player.secret`).
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from threading import RLock
from typing import Any, Dict, Optional, Protocol
from uuid import uuid4

from app.engine.player import Identity

_NAME_MAX = 24
_ID_RE = re.compile(r"^[A-Za-z0-9_\-]{4,64}$")


class IdentityProvider(Protocol):
    def resolve(self, token: Optional[str], display_name: Optional[str],
                player_id: Optional[str] = None) -> Identity:
        ...


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def clean_display_name(raw: Any, fallback: str) -> str:
    name = " ".join(_text(raw).split())[:_NAME_MAX]
    return name or fallback


@dataclass
class GuestIdentityProvider:
    _lock: RLock = field(default_factory=RLock, init=False, repr=False)
    tokens: Dict[str, Identity] = field(default_factory=dict)

    def register_token(self, token: str, identity: Identity) -> None:
        with self._lock:
            self.tokens[token] = identity

    def resolve(self, token: Any, display_name: Any, player_id: Any = None) -> Identity:
        token = _text(token)
        if token:
            with self._lock:
                known = self.tokens.get(token)
            if known is not None:
                name = clean_display_name(display_name, known.display_name)
                return replace(known, display_name=name, stats=dict(known.stats))

        pid = _text(player_id).strip()
        if not _ID_RE.match(pid):
            pid = uuid4().hex
        name = clean_display_name(display_name, f"Guest-{pid[:4]}")
        return Identity(id=pid, display_name=name, user_id=None, is_guest=True)


IDENTITY = GuestIdentityProvider()
