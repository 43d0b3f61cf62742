"""Application configuration."""

from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./data/campus_chat.db"
    database_echo: bool = False

    # Server
    host: str = "127.0.0.1"
    port: int = 3000
    cors_origins: str = "*"
    api_prefix: str = "/api/v1"

    # Logging
    log_level: str = "INFO"
    log_file: str | None = None

    # Messaging
    delivery_timeout_seconds: float = 5.0
    event_history_size: int = 1000

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins as list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]
