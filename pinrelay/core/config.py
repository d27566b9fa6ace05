"""Application configuration for the signaling broker."""
from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_env: str = Field(default="development")
    cors_allow_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])
    log_level: str = Field(default="INFO")

    room_store: Literal["memory", "database"] = Field(default="memory")
    database_url: str = Field(default="sqlite+aiosqlite:///./pinrelay.db")

    room_idle_seconds: float = Field(default=900, gt=0)
    stale_peer_seconds: float = Field(default=90, gt=0)
    max_queue_size: int = Field(default=400, ge=1)
    create_attempts: int = Field(default=1000, ge=1)
    # 0 disables the background sweep; rooms are then only reaped by incoming traffic.
    sweep_interval_seconds: float = Field(default=60, ge=0)

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: object) -> object:
        """Allow comma-separated env values for CORS origins."""

        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


settings = get_settings()
