from fastapi import APIRouter

from timedchess.api.routes.games import router as games_router
from timedchess.api.routes.health import router as health_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(games_router, prefix="/games", tags=["games"])
