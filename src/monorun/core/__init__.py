"""
Monorun core primitives: errors, logging, hashing and settings.

These modules have no dependency on the scheduler and are safe to import
from any layer.
"""

from monorun.core.errors import (
    CacheError,
    ConfigError,
    CycleDetectedError,
    ErrorCategory,
    GraphError,
    InvocationError,
    MonorunError,
    ReporterError,
    WorkspaceError,
)
from monorun.core.hashing import compute_hash, hash_tree
from monorun.core.logging import LogContext, configure_logging, get_logger
from monorun.core.settings import MonorunSettings, clear_settings_cache, get_settings

__all__ = [
    "CacheError",
    "ConfigError",
    "CycleDetectedError",
    "ErrorCategory",
    "GraphError",
    "InvocationError",
    "MonorunError",
    "ReporterError",
    "WorkspaceError",
    "compute_hash",
    "hash_tree",
    "LogContext",
    "configure_logging",
    "get_logger",
    "MonorunSettings",
    "clear_settings_cache",
    "get_settings",
]
