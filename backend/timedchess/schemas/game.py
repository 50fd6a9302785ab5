from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class GameIdRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    game_id: str = Field(alias="gameId", min_length=1, max_length=128)


class StartGameRequest(GameIdRequest):
    player_white: str = Field(alias="playerWhite", min_length=1, max_length=128)
    player_black: str = Field(alias="playerBlack", min_length=1, max_length=128)
    game_title: str = Field(alias="gameTitle", max_length=200)
    time_rule: str = Field(alias="timeRule", max_length=32)
    secret_name: str = Field(alias="secretName")


class RestoreGameRequest(GameIdRequest):
    check_string: str = Field(alias="checkString", min_length=1)
    enc_check_string: str = Field(alias="encCheckString")
    time_rule: str = Field(alias="timeRule", max_length=32)
    history: str
    time_left_white: int = Field(alias="timeLeftWhite", ge=0)
    time_left_black: int = Field(alias="timeLeftBlack", ge=0)


class AuthorizedGameRequest(GameIdRequest):
    secret_name: str = Field(alias="secretName")


class MoveRequest(AuthorizedGameRequest):
    move_index: int = Field(validation_alias=AliasChoices("move", "moveIndex"))


class GameMessageRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    game_id: str = Field(alias="gameId")
    game_title: str = Field(alias="gameTitle")
    last_move_from: str = Field(alias="lastMoveFrom")
    last_move_to: str = Field(alias="lastMoveTo")
    game_status: str = Field(alias="gameStatus")
    position_status: str = Field(alias="positionStatus")
    legal_moves: list[str] = Field(alias="legalMoves")
    turn: str
    move_count: int = Field(alias="moveCount")
    position: str
    remaining_white_time: int = Field(alias="remainingWhiteTime")
    remaining_black_time: int = Field(alias="remainingBlackTime")
    history: str
    white: str | None = None
    black: str | None = None
