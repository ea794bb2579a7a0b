# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Murmur Contributors

"""HTTP settings for the Murmur API, layered over the core privacy settings."""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from ..core.config import CoreSettings

DISTRIBUTION_NAME = "murmur-privacy-gate"


def _installed_version() -> str:
    # Source checkouts without an install have no metadata
    try:
        return version(DISTRIBUTION_NAME)
    except PackageNotFoundError:
        return "0.0.0-dev"


class ServerSettings(CoreSettings):
    """Bind address, CORS and identity of the API process.

    Read from MURMUR_* environment variables (or ``.env``) like the core
    settings it extends.
    """

    model_config = SettingsConfigDict(
        env_prefix="MURMUR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = Field(default="127.0.0.1", description="Bind address; loopback unless exposed deliberately")
    port: int = Field(default=8430, description="Bind port")

    allowed_origins: list[str] = Field(
        default_factory=list,
        description="Origins admitted by CORS. Empty admits none beyond same-origin.",
    )

    server_name: str = Field(default="murmur", description="Name reported by /health")
    server_version: str = Field(default_factory=_installed_version, description="Version reported by /health")


_settings: ServerSettings | None = None


def get_settings() -> ServerSettings:
    """Return the process-wide settings, reading the environment on first use."""
    global _settings
    if _settings is None:
        _settings = ServerSettings()
    return _settings


def clear_settings_cache() -> None:
    """Forget the cached settings so the next call rereads the environment."""
    global _settings
    _settings = None
