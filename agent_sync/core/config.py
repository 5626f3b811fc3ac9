"""Application settings management."""

from datetime import timedelta
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from ``AGENT_SYNC_*`` environment variables and ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix="AGENT_SYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "Agent Sync API"
    app_version: str = "1.0.0"
    server_url: str = "ws://localhost:3000/ws"
    fetch_timeout_seconds: float = Field(default=10.0, gt=0)
    echo_window_seconds: float = Field(default=5.0, ge=0)
    tag_outbound_messages: bool = False
    log_level: str = "INFO"
    events_queue_size: int = Field(default=100, gt=0)
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def echo_window(self) -> timedelta:
        return timedelta(seconds=self.echo_window_seconds)


@lru_cache
def get_settings() -> Settings:
    return Settings()
