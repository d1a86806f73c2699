"""Base configuration with pydantic-settings.

The panel and the node agent each define their own Settings on top of
this class and add the fields they require.

Usage in a service:
    from shared.config import BaseSettings, redis_url_field

    class Settings(BaseSettings):
        redis_url: str = redis_url_field()
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings as PydanticBaseSettings, SettingsConfigDict

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class BaseSettings(PydanticBaseSettings):
    """Settings shared by every gameplane process."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    service_name: str = Field(
        default="unknown",
        description="Service name bound into every log line",
    )
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format",
    )
    log_level: str = Field(default="INFO", description="stdlib level name")

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level {v!r}, expected one of {', '.join(LOG_LEVELS)}")
        return level


# === Field definitions for reuse in service configs ===


def database_url_field(required: bool = True):
    """Database URL field definition."""
    if required:
        return Field(
            ...,
            description="Async SQLAlchemy connection URL",
            examples=["postgresql+asyncpg://gameplane:secret@db:5432/gameplane"],
        )
    return Field(
        default=None,
        description="Async SQLAlchemy connection URL (optional)",
    )


def redis_url_field(required: bool = True):
    """Redis URL field definition."""
    if required:
        return Field(
            ...,
            description="Redis connection URL used for console pub/sub",
            examples=["redis://redis:6379/0"],
        )
    return Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL used for console pub/sub",
    )


def panel_url_field(required: bool = True):
    """Panel base URL field definition."""
    if required:
        return Field(
            ...,
            description="Base URL of the control plane, used for node callbacks",
            examples=["https://panel.example.com"],
        )
    return Field(
        default="http://localhost:8080",
        description="Base URL of the control plane, used for node callbacks",
    )
