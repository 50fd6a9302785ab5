from fastapi import APIRouter, HTTPException, status

from timedchess.schemas.game import GameMessageRead
from timedchess.services.game_service import game_service

router = APIRouter()


@router.get("/{game_id}", response_model=GameMessageRead, response_model_by_alias=True)
def get_game(game_id: str) -> GameMessageRead:
    session = game_service.registry.get(game_id)
    if not session:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Game not found")
    return GameMessageRead.model_validate(session.game_message())
