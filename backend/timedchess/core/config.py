from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Timed Chess Server"
    debug: bool = True
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    log_level: str = "INFO"

    identity_secret_key: str = "change-this-identity-key"
    site_name: str = "localhost"

    finished_game_grace_seconds: int = 60 * 30
    empty_room_grace_seconds: int = 60 * 5
    session_sweep_interval_seconds: float = 60.0

    throttle_enabled: bool = True
    socket_connect_limit: int = 20
    socket_connect_window_seconds: float = 60.0
    opponent_request_limit: int = 3
    opponent_request_window_seconds: float = 60.0
    invite_limit: int = 5
    invite_window_seconds: float = 60.0
    socket_event_limit: int = 60
    socket_event_window_seconds: float = 10.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
