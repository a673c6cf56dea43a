"""
Configuration settings for the Team Tasks service.
All sensitive values are loaded from environment variables.
"""

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "Team Tasks"
    debug: bool = Field(default=False, env="DEBUG")
    environment: str = Field(default="production", env="ENVIRONMENT")

    # Server
    host: str = Field(default="0.0.0.0", env="HOST")
    port: int = Field(default=8000, env="PORT")
    cors_origins: str = Field(default="*", env="CORS_ORIGINS")

    # Database (PostgreSQL in production, SQLite for local runs and tests)
    database_url: str = Field(default="", env="DATABASE_URL")
    database_echo: bool = Field(default=False, env="DATABASE_ECHO")
    db_pool_size: int = Field(default=10, env="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=20, env="DB_MAX_OVERFLOW")
    db_pool_timeout: int = Field(default=30, env="DB_POOL_TIMEOUT")
    db_pool_recycle: int = Field(default=3600, env="DB_POOL_RECYCLE")

    # Business day
    timezone: str = Field(default="UTC", env="TIMEZONE")

    # Authentication boundary (tokens are issued elsewhere)
    jwt_secret: str = Field(default="change-me", env="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", env="JWT_ALGORITHM")

    # Operator trigger for the daily materialization pass
    cron_secret: Optional[str] = Field(default=None, env="CRON_SECRET")

    # Real-time fan-out
    event_broker: str = Field(default="memory", env="EVENT_BROKER")  # memory | redis
    redis_url: str = Field(default="redis://localhost:6379", env="REDIS_URL")
    event_queue_size: int = Field(default=100, env="EVENT_QUEUE_SIZE")

    # Materialization policy
    materialize_on_read: bool = Field(default=True, env="MATERIALIZE_ON_READ")
    materialize_past_days_on_read: bool = Field(default=False, env="MATERIALIZE_PAST_DAYS_ON_READ")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the application settings."""
    return settings
