"""
Module routes/health.py
Rôle:
- Endpoints de santé (service OK + compteurs temps réel).

Intégrations:
- settings: nom d’app.
- REGISTRY / WS: nombre de salons actifs et de sockets connectées.
"""
from fastapi import APIRouter

from app.config.settings import settings
from app.services.room_store import REGISTRY
from app.services.ws_manager import WS

router = APIRouter(prefix="/health", tags=["health"])

@router.get("")
async def health():
    """Renvoie un OK minimal avec le nom de service configuré."""
    return {"ok": True, "service": settings.APP_NAME}

@router.get("/stats")
async def health_stats():
    """Salons en mémoire et répartition des sockets par salon."""
    return {"ok": True, "rooms": len(REGISTRY.codes()), "sockets": WS.stats()}
