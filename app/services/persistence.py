"""
Service: persistence.py
Rôle:
- Puits des résultats de partie : un fichier JSON par partie classée, sous
  `<DATA_DIR>/results/`.

Notes:
- Le moteur n'appelle `record_game` qu'une fois par partie et jamais pour un
  salon non classé.
- Le calcul d'Elo / classements reste à la charge du consommateur de ces fichiers.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from threading import RLock
from typing import List

from app.config.settings import settings
from app.models.results import GameResult
from app.services.io_utils import read_json, write_json

logger = logging.getLogger(__name__)


@dataclass
class JsonResultSink:
    root: Path = field(default_factory=lambda: Path(settings.DATA_DIR) / "results")
    _lock: RLock = field(default_factory=RLock, init=False, repr=False)

    def _path_for(self, result: GameResult) -> Path:
        return self.root / f"{result.room_code}-{int(result.ended_at * 1000)}.json"

    def record_game(self, result: GameResult) -> None:
        data = result.model_dump(mode="json")
        data["duration_seconds"] = result.duration_seconds
        path = self._path_for(result)
        with self._lock:
            write_json(path, data)
        logger.info("game results recorded", extra={"room": result.room_code, "path": str(path)})

    def load_all(self) -> List[dict]:
        """Relit les résultats enregistrés (ordre chronologique du nom de fichier)."""
        if not self.root.exists():
            return []
        with self._lock:
            return [read_json(p) for p in sorted(self.root.glob("*.json"))]
