class GameError(Exception):
    """Domain failure answered to the originating caller only."""

    code = "error"
    default_message = "request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"code": self.code, "message": self.message}


class SchemaError(GameError):
    code = "schema_error"
    default_message = "invalid payload"


class DuplicateSession(GameError):
    code = "duplicate_session"
    default_message = "game already exists"


class Unauthorized(GameError):
    code = "unauthorized"
    default_message = "unauthorized"


class NotFound(GameError):
    code = "not_found"
    default_message = "game not found"


class IllegalMoveIndex(GameError):
    code = "illegal_move_index"
    default_message = "illegal move index"


class CorruptHistory(GameError):
    code = "corrupt_history"
    default_message = "can't parse history"


class TerminalGame(GameError):
    code = "terminal_game"
    default_message = "game ended"


class IllegalPosition(GameError):
    code = "illegal_position"
    default_message = "illegal position"


class PlayersNotFound(GameError):
    code = "players_not_found"
    default_message = "players not found"


class RoomNotFound(GameError):
    code = "room_not_found"
    default_message = "room not found"


class RateLimited(GameError):
    code = "rate_limited"
    default_message = "too many requests"

    def __init__(self, retry_after_seconds: float = 0.0, message: str | None = None) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["retryAfter"] = round(self.retry_after_seconds, 1)
        return payload
