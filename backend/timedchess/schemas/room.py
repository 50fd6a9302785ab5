from pydantic import BaseModel, ConfigDict, Field


class UniqueNameRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    unique_name: str = Field(alias="uniqueName", min_length=1, max_length=128)


class RoomIdRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(alias="roomId", min_length=1, max_length=128)


class RoomMessageRequest(RoomIdRequest):
    unique_name: str = Field(alias="uniqueName", min_length=1, max_length=128)
    # Display name; an empty ready status cancels readiness.
    name: str = Field(default="", max_length=128)


class RoomGameStartRequest(RoomIdRequest):
    game_id: str = Field(alias="gameId", min_length=1, max_length=128)
