"""
Configuration for the Social Graph Service.

All settings are environment driven (prefix ``SOCIAL_GRAPH_``) and grouped
by concern. A module-level ``settings`` instance is created at import time;
components receive the sections they need explicitly.
"""

import logging
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class StorageSettings(BaseSettings):
    """User store (Qdrant) settings."""

    model_config = SettingsConfigDict(env_prefix="SOCIAL_GRAPH_STORAGE_", extra="ignore")

    url: str | None = Field(default=None, description="Qdrant server URL, or ':memory:' for an in-process store")
    path: str | None = Field(default=None, description="Directory for embedded (file-based) Qdrant storage")
    collection_name: str = Field(default="users", min_length=1)
    scroll_batch_size: int = Field(default=256, ge=1, le=10_000)

    @model_validator(mode="after")
    def default_to_memory(self) -> "StorageSettings":
        if self.url and self.path:
            raise ValueError("Set either SOCIAL_GRAPH_STORAGE_URL or SOCIAL_GRAPH_STORAGE_PATH, not both")
        if not self.url and not self.path:
            self.url = ":memory:"
        return self


class RedisSettings(BaseSettings):
    """Optional Redis cache and pub/sub settings."""

    model_config = SettingsConfigDict(env_prefix="SOCIAL_GRAPH_REDIS_", extra="ignore")

    enabled: bool = False
    url: str = "redis://localhost:6379"
    ttl_seconds: int = Field(default=300, ge=1)
    key_prefix: str = "social:cache:"
    channel_prefix: str = "social:"
    max_connections: int = Field(default=10, ge=1, le=512)
    listener_poll_interval: float = Field(default=1.0, gt=0.0)


class GraphSettings(BaseSettings):
    """Graph assembly and pagination settings."""

    model_config = SettingsConfigDict(env_prefix="SOCIAL_GRAPH_GRAPH_", extra="ignore")

    high_score_threshold: float = 5.0
    position_extent: float = Field(default=400.0, gt=0.0)
    position_strategy: Literal["random", "grid"] = "random"
    grid_columns: int = Field(default=10, ge=1)
    grid_spacing: float = Field(default=250.0, gt=0.0)
    grid_jitter: float = Field(default=50.0, ge=0.0)
    default_page_limit: int = Field(default=100, ge=1)
    max_page_limit: int = Field(default=1000, ge=1)
    default_user_page_limit: int = Field(default=50, ge=1)
    max_user_page_limit: int = Field(default=500, ge=1)
    top_hobbies: int = Field(default=10, ge=1)


class HTTPSettings(BaseSettings):
    """HTTP server settings."""

    model_config = SettingsConfigDict(env_prefix="SOCIAL_GRAPH_HTTP_", extra="ignore")

    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)
    workers: int = Field(default=1, ge=1)
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    log_level: str = "INFO"


class Settings(BaseSettings):
    """Top-level settings container."""

    model_config = SettingsConfigDict(extra="ignore")

    storage: StorageSettings = Field(default_factory=StorageSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    graph: GraphSettings = Field(default_factory=GraphSettings)
    http: HTTPSettings = Field(default_factory=HTTPSettings)


settings = Settings()
