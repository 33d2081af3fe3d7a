"""
Point d'entrée FastAPI
======================

Rôle
----
- Crée l'application, configure le logging et le CORS, monte les routeurs.

Notes
-----
- Imports directs des routeurs (évite les surprises d’auto-discovery).
- Garder `settings.ALLOWED_ORIGINS` en phase avec les URLs du front.
- ⚠️ Le middleware CORS doit être ajouté AVANT les include_router.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config.settings import settings
from app.routes.health import router as health_router
from app.routes.rooms import router as rooms_router
from app.routes.websocket import router as ws_router
from app.services.ws_manager import WS

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# --- App FastAPI principale  ---
app = FastAPI(title=settings.APP_NAME)

# ===========================
# CORS
# ===========================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,   # ← whitelist des frontends autorisés
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ===========================
# Montage des routers
# ===========================
app.include_router(health_router)
app.include_router(rooms_router)
app.include_router(ws_router)                  # WebSocket endpoint (/ws)

# --- Racine utile pour "ping" simple (sans /health) ---
@app.get("/")
async def root():
    """Ping basique : permet de vérifier que l'app tourne."""
    return {"ok": True, "service": "coup-rooms-backend"}

# --- Hooks de cycle de vie ---
@app.on_event("startup")
async def list_routes():
    """Au démarrage : journalise la configuration de jeu et les routes montées (diagnostic)."""
    logger.info(
        "timers: response=%ss grace=%ss, players %s-%s",
        settings.RESPONSE_TIMEOUT_SECONDS, settings.DISCONNECT_GRACE_SECONDS,
        settings.MIN_PLAYERS, settings.MAX_PLAYERS,
    )
    for r in app.routes:
        methods = getattr(r, "methods", None)
        logger.debug("route %s %s", getattr(r, "path", "?"), sorted(methods) if methods else "WS")

@app.on_event("shutdown")
async def close_sockets():
    await WS.close_all()


if __name__ == "__main__":
    # python -m app.main (dev) ; en prod : uvicorn app.main:app
    import uvicorn

    uvicorn.run("app.main:app", host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())
