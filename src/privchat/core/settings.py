"""Application settings and configuration.

This module defines all configuration options for the privchat service.
Settings are loaded from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    This class defines all configuration options for the private chat backend.
    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="privchat", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
    )

    # Database configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./privchat.db",
        alias="DATABASE_URL",
    )
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Real-time fan-out
    fanout_backend: Literal["memory", "redis"] = Field(default="memory", alias="FANOUT_BACKEND")
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")
    fanout_channel_prefix: str = Field(default="privchat:user:", alias="FANOUT_CHANNEL_PREFIX")

    # Message encryption
    legacy_cipher_enabled: bool = Field(default=True, alias="LEGACY_CIPHER_ENABLED")
    text_preview_length: int = Field(default=100, ge=1, alias="TEXT_PREVIEW_LENGTH")

    # Paging limits (default, hard cap)
    get_default_limit: int = Field(default=30, alias="GET_DEFAULT_LIMIT")
    get_max_limit: int = Field(default=100, alias="GET_MAX_LIMIT")
    loadmore_default_limit: int = Field(default=15, alias="LOADMORE_DEFAULT_LIMIT")
    loadmore_max_limit: int = Field(default=50, alias="LOADMORE_MAX_LIMIT")
    search_default_limit: int = Field(default=50, alias="SEARCH_DEFAULT_LIMIT")
    search_max_limit: int = Field(default=100, alias="SEARCH_MAX_LIMIT")
    search_min_query_length: int = Field(default=2, alias="SEARCH_MIN_QUERY_LENGTH")
    chats_default_limit: int = Field(default=30, alias="CHATS_DEFAULT_LIMIT")
    chats_max_limit: int = Field(default=100, alias="CHATS_MAX_LIMIT")
    favorites_default_limit: int = Field(default=50, alias="FAVORITES_DEFAULT_LIMIT")
    favorites_max_limit: int = Field(default=100, alias="FAVORITES_MAX_LIMIT")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts async driver URLs to their synchronous counterparts for
        Alembic migrations and the table bootstrap script.

        Returns:
            Database URL compatible with synchronous database drivers
        """
        url = self.database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        if url.startswith("sqlite+aiosqlite"):
            return url.replace("sqlite+aiosqlite", "sqlite", 1)
        return url


settings = Settings()  # type: ignore[call-arg]
