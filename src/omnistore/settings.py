"""
Centralized settings for omnistore.

Manifesto:
    Backends are chosen by URL at runtime, but everything around them
    (which backend to open by default, log level, debug SQL output, S3
    region, Scylla replication) comes from one validated, cached settings
    object read from ``OMNISTORE_*`` environment variables or a ``.env``
    file.

Examples:
    >>> import os
    >>> os.environ["OMNISTORE_URL"] = "sqlite:///data/app.db"
    >>> get_settings(_force_reload=True).url
    'sqlite:///data/app.db'

Tags:
    configuration, settings, pydantic, environment

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreSettings(BaseSettings):
    """omnistore configuration.

    Fields
    ──────
    backend                    : Adapter name used when ``url`` has no scheme
    url                        : Connection string handed to ``Storage.connect``
    debug                      : Log generated statements and parameters
    log_level                  : Structlog log level
    log_format                 : ``json`` or ``console``
    s3_region                  : Region used when an ``s3://`` URL omits one
    scylla_replication_factor  : Replication factor for created keyspaces
    default_timeout_seconds    : Deadline applied by ``context_from_settings``
    """

    model_config = SettingsConfigDict(
        env_prefix="OMNISTORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Backend ──────────────────────────────────────────────────
    backend: str = Field(default="sqlite")
    url: str = Field(default="sqlite:///:memory:")

    # ── Observability ────────────────────────────────────────────
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    # ── Backend tuning ───────────────────────────────────────────
    s3_region: str = Field(default="us-east-1")
    scylla_replication_factor: int = Field(default=1, ge=1)
    default_timeout_seconds: float | None = Field(
        default=None,
        description="Per-operation deadline; None disables it",
    )

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value

    @field_validator("backend")
    @classmethod
    def _normalize_backend(cls, value: str) -> str:
        return value.strip().lower()


_settings_cache: dict[str, StoreSettings] = {}


def get_settings(*, _force_reload: bool = False) -> StoreSettings:
    """Load, validate, and cache a :class:`StoreSettings` instance."""
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = StoreSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = ["StoreSettings", "get_settings", "clear_settings_cache"]
