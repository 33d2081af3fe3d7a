"""
Configuration de l'application (Settings)
=========================================

Rôle
----
- Centraliser les paramètres du serveur de salons (nom, host/port, chemins,
  délais de jeu, bornes de joueurs).
- Les valeurs par défaut conviennent pour un environnement de dev local.
- Les variables peuvent être surchargées via un fichier `.env` ou l'environnement.

Intégrations
------------
- `pydantic-settings` charge automatiquement les variables d'env et `.env`.
- Les services/routers/moteur importent `from app.config.settings import settings`.

Notes
-----
- `RESPONSE_TIMEOUT_SECONDS` : fenêtre de réponse (défi / contre) d'une action.
- `DISCONNECT_GRACE_SECONDS` : délai avant abandon d'un joueur déconnecté.
- `LOBBY_CHAT_MAX_LENGTH` : au-delà, un message du chat de lobby est refusé
  (le chat de salon, lui, tronque à `CHAT_MAX_LENGTH`).
- `DATA_DIR` calcule un chemin relatif au repo : `<repo>/app/data`.

Exemples de `.env`
------------------
APP_NAME="Coup Rooms (Staging)"
PORT=8080
RESPONSE_TIMEOUT_SECONDS=20
LOG_LEVEL="DEBUG"
DATA_DIR="/var/opt/coup/data"
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
import os


class Settings(BaseSettings):
    # Nom du service (apparaît dans /health)
    APP_NAME: str = "Coup Rooms Backend"
    # Bind réseau (FastAPI / Uvicorn)
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    # Niveau du logging standard (configuré dans app.main)
    LOG_LEVEL: str = "INFO"

    # Origines autorisées (CORS) pour le front
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # Délais (secondes)
    RESPONSE_TIMEOUT_SECONDS: float = 12.0
    DISCONNECT_GRACE_SECONDS: float = 30.0

    # Règles de table
    MIN_PLAYERS: int = 2
    MAX_PLAYERS: int = 6
    STARTING_COINS: int = 2
    MANDATORY_COUP_COINS: int = 10

    # Journal de salle : taille visible côté client / rétention mémoire
    LOG_WINDOW: int = 50
    LOG_RETENTION: int = 500
    CHAT_MAX_LENGTH: int = 500
    LOBBY_CHAT_MAX_LENGTH: int = 200

    # Répertoire des fichiers persistés (résultats de parties)
    # Par défaut: <repo>/app/data
    DATA_DIR: str = os.path.join(os.path.dirname(os.path.dirname(__file__)), "data")

    # Paramétrage pydantic-settings :
    # - lit le fichier .env (UTF-8) si présent
    # - ignore les clés supplémentaires pour éviter les erreurs
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


# Instance unique importable partout : `settings`
settings = Settings()
