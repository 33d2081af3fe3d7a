"""
Engine: errors.py
Rôle:
- `ActionRejected` : intent illégal dans l'état courant. L'appelant reçoit
  `{"success": False, "error": <code>}` ; rien n'est muté ni diffusé.
- `LogicFault` : état censé être impossible (plus aucun joueur vivant pour
  prendre le tour, joueur inconnu sur l'action en cours...). Journalisé puis
  propagé.

Notes:
- Les valeurs de `Rejection` sont les codes d'erreur envoyés tels quels aux
  clients : les renommer casse le protocole.
"""
from __future__ import annotations

from enum import Enum


class Rejection(str, Enum):
    ROOM_NOT_FOUND = "room_not_found"
    PLAYER_NOT_FOUND = "player_not_found"
    GAME_NOT_STARTED = "game_not_started"
    GAME_IN_PROGRESS = "game_in_progress"
    NOT_YOUR_TURN = "not_your_turn"
    ACTION_IN_PROGRESS = "action_in_progress"
    OBLIGATION_PENDING = "obligation_pending"
    UNKNOWN_ACTION = "unknown_action"
    NOT_ENOUGH_COINS = "not_enough_coins"
    MUST_COUP = "must_coup"
    TARGET_REQUIRED = "target_required"
    INVALID_TARGET = "invalid_target"
    NO_ACTION_PENDING = "no_action_pending"
    NOT_ELIGIBLE = "not_eligible"
    ALREADY_RESPONDED = "already_responded"
    CANNOT_CHALLENGE = "cannot_challenge"
    CANNOT_BLOCK = "cannot_block"
    INVALID_BLOCK_ROLE = "invalid_block_role"
    NO_BLOCK_TO_CHALLENGE = "no_block_to_challenge"
    INVALID_RESPONSE = "invalid_response"
    NOT_REQUIRED = "not_required"
    INVALID_CARD_INDEX = "invalid_card_index"
    CARD_ALREADY_REVEALED = "card_already_revealed"
    WRONG_KEEP_COUNT = "wrong_keep_count"
    CARD_NOT_SHOWN = "card_not_shown"
    ROOM_FULL = "room_full"
    NOT_ENOUGH_PLAYERS = "not_enough_players"
    SPECTATORS_NOT_ALLOWED = "spectators_not_allowed"
    WRONG_PASSWORD = "wrong_password"
    ALREADY_CONNECTED = "already_connected"
    HAS_LEFT = "has_left"
    NOT_DISCONNECTED = "not_disconnected"
    CHAT_DISABLED = "chat_disabled"
    EMPTY_MESSAGE = "empty_message"
    GAME_NOT_ENDED = "game_not_ended"
    INVALID_SECRET = "invalid_secret"
    INVALID_OPTIONS = "invalid_options"
    NOT_IN_LOBBY = "not_in_lobby"
    MESSAGE_TOO_LONG = "message_too_long"


class ActionRejected(ValueError):
    """Intent refusé ; `reason` est le code renvoyé au client."""

    def __init__(self, reason: Rejection, detail: str = ""):
        self.reason = reason
        self.detail = detail
        super().__init__(f"{reason.value}: {detail}" if detail else reason.value)

    @property
    def code(self) -> str:
        return self.reason.value


class LogicFault(RuntimeError):
    """Invariant interne violé ; jamais renvoyé tel quel au client."""
