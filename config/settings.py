"""
Configuration settings for the Roadmap Canvas service.
All sensitive values are loaded from environment variables.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Roadmap Canvas"
    debug: bool = Field(default=False, env="DEBUG")
    environment: str = Field(default="production", env="ENVIRONMENT")

    # Server
    host: str = Field(default="0.0.0.0", env="HOST")
    port: int = Field(default=8000, env="PORT")

    # Database (PostgreSQL in production, sqlite+aiosqlite for local runs)
    database_url: str = Field(default="", env="DATABASE_URL")
    database_echo: bool = Field(default=False, env="DATABASE_ECHO")
    db_pool_size: int = Field(default=10, env="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=20, env="DB_MAX_OVERFLOW")
    db_pool_timeout: int = Field(default=30, env="DB_POOL_TIMEOUT")
    db_pool_recycle: int = Field(default=3600, env="DB_POOL_RECYCLE")

    # Redis (tree cache). Empty disables caching.
    redis_url: str = Field(default="", env="REDIS_URL")
    tree_cache_ttl_seconds: int = Field(default=300, env="TREE_CACHE_TTL_SECONDS")

    # Timestamps are stored naive in this timezone
    timezone: str = Field(default="UTC", env="TIMEZONE")

    # Guest identities
    guest_session_prefix: str = Field(default="guest_", env="GUEST_SESSION_PREFIX")
    guest_session_ttl_days: int = Field(default=30, env="GUEST_SESSION_TTL_DAYS")

    # Sharing
    share_base_url: str = Field(default="http://localhost:3000", env="SHARE_BASE_URL")

    # Rate limiting
    rate_limiting_enabled: bool = Field(default=True, env="RATE_LIMITING_ENABLED")
    rate_limit_storage_url: str = Field(default="", env="RATE_LIMIT_STORAGE_URL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the application settings."""
    return settings
