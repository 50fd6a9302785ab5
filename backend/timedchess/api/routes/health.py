from fastapi import APIRouter

from timedchess.services.game_service import game_service

router = APIRouter()


@router.get("/health")
def health() -> dict:
    return {"status": "ok", "games": len(game_service.registry)}
