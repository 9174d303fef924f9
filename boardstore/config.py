"""Boardstore configuration management.

Configuration sources (in priority order):
1. Environment variables (BOARDSTORE_ prefix)
2. Config file (config.yaml)
3. Defaults
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8000


class RemoteConfig(BaseModel):
    """Hosted store configuration.

    Both ``url`` and ``api_key`` must be set for sessions to run in remote
    mode. Without them every session is isolated.
    """

    # rest: PostgREST-style endpoint (e.g. https://<project>.supabase.co)
    # sql:  SQLAlchemy async URL (e.g. postgresql+asyncpg://user@host/db)
    backend: Literal["rest", "sql"] = "rest"
    url: str | None = None
    api_key: str | None = None

    # Single attempt, no retry. A slower call counts as a failure.
    timeout_seconds: float = 10.0

    @property
    def is_configured(self) -> bool:
        return bool(self.url) and bool(self.api_key)


class MirrorConfig(BaseModel):
    """Local mirror used when the remote store is unreachable."""

    directory: str = "./.boardstore/mirror"

    # Seed the remote-mode mirror with starter data when no snapshot exists.
    seed_starter_data: bool = False

    # Pull each kind's full collection on the first successful remote call.
    prefetch: bool = True


class IsolatedConfig(BaseModel):
    """Guest/demo sessions."""

    seed_starter_data: bool = True


class OrderingConfig(BaseModel):
    """Sibling ordering parameters."""

    gap: int = Field(default=1000, ge=2)
    min_headroom: float = Field(default=2.0, gt=0)


class Settings(BaseSettings):
    """Boardstore application settings."""

    model_config = SettingsConfigDict(
        env_prefix="BOARDSTORE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    mirror: MirrorConfig = Field(default_factory=MirrorConfig)
    isolated: IsolatedConfig = Field(default_factory=IsolatedConfig)
    ordering: OrderingConfig = Field(default_factory=OrderingConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment wins over values passed in from the YAML file.
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def _load_config_file() -> dict:
    """Load configuration from YAML file if exists.

    Looks for config file in order:
    1. BOARDSTORE_CONFIG_FILE environment variable
    2. ./config.yaml
    3. /etc/boardstore/config.yaml
    """
    config_paths = [
        os.environ.get("BOARDSTORE_CONFIG_FILE"),
        Path("config.yaml"),
        Path("/etc/boardstore/config.yaml"),
    ]

    for path in config_paths:
        if path is None:
            continue
        path = Path(path)
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    File values are passed as initial values; environment variables
    override them via pydantic-settings.
    """
    file_config = _load_config_file()
    return Settings(**file_config)
