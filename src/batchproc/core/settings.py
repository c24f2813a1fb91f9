"""Environment-driven defaults for batch runs.

``BatchProcessor`` takes its options as constructor arguments. ``BatchSettings``
supplies the defaults those arguments fall back to when a processor is built
with :meth:`BatchProcessor.from_settings` or from the command line.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Negative concurrency or poll intervals fail at startup
    - **Environment-driven:** ``BATCHPROC_*`` env vars and ``.env`` files
    - **Sensible defaults:** 4 slots, 100 ms poll interval, 60 s job timeout

Examples:
    >>> from batchproc.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.poll_interval
    0.1

Tags:
    settings, configuration, pydantic, environment, batchproc

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BatchSettings(BaseSettings):
    """Default options for a batch run.

    Fields
    ──────
    max_concurrent   : Concurrency ceiling (0 admits nothing)
    poll_interval    : Seconds slept before every completion scan
    default_timeout  : Per-job timeout used by the default process factory
    log_level        : Structlog log level
    log_format       : ``console`` or ``json``
    """

    model_config = SettingsConfigDict(
        env_prefix="BATCHPROC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Admission ────────────────────────────────────────────────
    max_concurrent: int = Field(default=4, ge=0)
    poll_interval: float = Field(default=0.1, ge=0.0, description="Seconds between completion scans")

    # ── Processes ────────────────────────────────────────────────
    default_timeout: float | None = Field(default=60.0, gt=0.0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: Literal["console", "json"] = Field(default="console")


_settings_cache: dict[str, BatchSettings] = {}


def get_settings() -> BatchSettings:
    """Return the cached settings instance, loading it on first use."""
    settings = _settings_cache.get("default")
    if settings is None:
        settings = BatchSettings()
        _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = ["BatchSettings", "get_settings", "clear_settings_cache"]
