"""
Centralized settings for monorun.

:class:`MonorunSettings` is resolved from, lowest precedence first:

1. field defaults
2. ``<project root>/.monorun.toml``
3. ``MONORUN_*`` environment variables

CLI flags are applied on top by the command layer with
:meth:`MonorunSettings.model_copy`.

Example ``.monorun.toml``::

    max_concurrency = 4
    output_folder = "dist"
    exclude = ["*.log", "coverage"]
    continue_on_failure = false

Tags:
    monorun, configuration, settings, pydantic

Doc-Types:
    api-reference
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from monorun.core.errors import ConfigError

SETTINGS_FILE = ".monorun.toml"


class MonorunSettings(BaseSettings):
    """Monorun configuration.

    All fields can be set through ``MONORUN_*`` environment variables
    (e.g. ``MONORUN_MAX_CONCURRENCY=2``) or the project's
    ``.monorun.toml``.
    """

    model_config = SettingsConfigDict(
        env_prefix="MONORUN_",
        extra="ignore",
    )

    # ── Scheduling ───────────────────────────────────────────────
    max_concurrency: int = Field(
        default_factory=lambda: os.cpu_count() or 1,
        ge=1,
        description="Targets allowed to run at once in parallel mode",
    )
    continue_on_failure: bool = Field(
        default=False,
        description="Keep running independent subgraphs after a failure",
    )

    # ── Run cache ────────────────────────────────────────────────
    cache_file: str = Field(default=".monorun/run-cache.json")
    input_folder: str = Field(default=".", description="Per-package folder hashed for change detection")
    output_folder: str = Field(default="build", description="Per-package folder excluded from hashing")
    exclude: list[str] = Field(default_factory=list)

    # ── Targeting ────────────────────────────────────────────────
    targeted_builds: bool = Field(default=True, description="Honor the positional sub-path argument")

    # ── Output ───────────────────────────────────────────────────
    line_buffer: int = Field(default=256, ge=1, description="Bound of the output line channel")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="WARNING")
    log_format: str = Field(default="console")

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        upper = value.upper()
        if upper not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return upper

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Init kwargs carry the TOML file, which environment variables override.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @property
    def json_logs(self) -> bool:
        return self.log_format == "json"

    def cache_path(self, project_root: Path) -> Path:
        """Absolute location of the persisted run cache."""
        path = Path(self.cache_file)
        return path if path.is_absolute() else project_root / path


def read_settings_file(project_root: Path) -> dict[str, Any]:
    """Read ``.monorun.toml`` from *project_root*; missing file → ``{}``."""
    path = project_root / SETTINGS_FILE
    if not path.is_file():
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Cannot read {path}: {exc}", context={"path": str(path)}, cause=exc) from exc


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, MonorunSettings] = {}


def get_settings(
    project_root: Path | None = None,
    *,
    _force_reload: bool = False,
) -> MonorunSettings:
    """Load, validate, and cache the settings for *project_root*.

    Raises:
        ConfigError: The settings file is unreadable or a value is invalid.
    """
    root = (project_root or Path.cwd()).resolve()
    cache_key = str(root)

    if not _force_reload and cache_key in _settings_cache:
        return _settings_cache[cache_key]

    file_values = read_settings_file(root)
    try:
        settings = MonorunSettings(**file_values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid monorun settings: {exc}", context={"project_root": str(root)}, cause=exc) from exc

    _settings_cache[cache_key] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()


__all__ = [
    "SETTINGS_FILE",
    "MonorunSettings",
    "clear_settings_cache",
    "get_settings",
    "read_settings_file",
]
