"""Centralized configuration — Pydantic BaseSettings with TOML + dotenv sources.

Settings live in config.toml. Environment variables override it using ``__``
as the nested delimiter (e.g. ``SERVER__PORT=9000``, ``RUNTIME__CLI=podman``).

Priority (highest wins): init args > env vars > .env > config.toml

Usage::

    from dockside.config import get_settings

    s = get_settings()
    print(s.server.port)
    print(s.runtime.cli)
"""

from __future__ import annotations

from functools import cached_property
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

# ---------------------------------------------------------------------------
# Sub-models (each maps to a [section] in config.toml)
# ---------------------------------------------------------------------------


class _StrictModel(BaseModel):
    """Base for all config sub-models: reject unknown keys so typos fail loudly."""

    model_config = {"extra": "forbid"}


class ServerConfig(_StrictModel):
    host: str = "0.0.0.0"
    port: int = 8484


class RuntimeConfig(_StrictModel):
    cli: str = "docker"
    log_tail_lines: int = 400  # backlog replayed before live follow
    shell_command: list[str] = ["sh", "-i"]
    local_domain_suffix: str = "orb.local"
    chunk_size: int = 8192  # max bytes per shell output frame
    max_line_bytes: int = 1048576  # longest log line a session will forward
    kill_timeout: float = 5.0  # seconds to wait for a killed process to be reaped

    @field_validator("log_tail_lines", "chunk_size", "max_line_bytes")
    @classmethod
    def require_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("shell_command")
    @classmethod
    def require_command(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("shell_command cannot be empty")
        return v


class LoggingConfig(_StrictModel):
    level: str = "INFO"
    format: Literal["console", "json"] = "console"

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()


class StoreConfig(_StrictModel):
    path: str = "data/dockside.db"


# ---------------------------------------------------------------------------
# Root Settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        toml_file="config.toml",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    server: ServerConfig = ServerConfig()
    runtime: RuntimeConfig = RuntimeConfig()
    logging: LoggingConfig = LoggingConfig()
    store: StoreConfig = StoreConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Priority: init > env vars > .env > config.toml > file secrets."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    # --- Computed properties ---

    @cached_property
    def store_path(self) -> Path:
        p = Path(self.store.path)
        if not p.is_absolute():
            p = Path.cwd() / p
        return p.resolve()


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_settings: Settings | None = None


def get_settings() -> Settings:
    """Lazy cached singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Clear the cached singleton (for tests)."""
    global _settings
    _settings = None
