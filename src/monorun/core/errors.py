"""
Structured error types for monorun.

Every error raised by monorun carries a category, a context dict and an
optional chained cause, so that the CLI can turn it into a single report
record instead of a traceback.

Manifesto:
    - **Typed hierarchy:** Graph, configuration, invocation and cache
      problems are distinct types
    - **Contained failures:** Per-target invocation errors never escape
      the target boundary; only graph and reporter errors abort a run
    - **Error chaining:** The original exception is kept as ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────┐
        │                       MonorunError                        │
        │              (category, context, cause)                   │
        ├──────────────────────────────────────────────────────────┤
        │  ConfigError        GraphError           InvocationError  │
        │  (CONFIG)           (GRAPH)              (INVOCATION)     │
        │     │                  │                                  │
        │  WorkspaceError     CycleDetectedError   CacheError       │
        │                                          ReporterError    │
        └──────────────────────────────────────────────────────────┘

Examples:
    >>> error = GraphError("No package found at packages/nope")
    >>> error.category
    <ErrorCategory.GRAPH: 'GRAPH'>
    >>> error.with_context(path="packages/nope").to_dict()["context"]
    {'path': 'packages/nope'}

Tags:
    error-handling, exception-hierarchy, monorun

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for reporting and log routing."""

    CONFIG = "CONFIG"
    GRAPH = "GRAPH"
    INVOCATION = "INVOCATION"
    CACHE = "CACHE"
    REPORTER = "REPORTER"
    INTERNAL = "INTERNAL"


class MonorunError(Exception):
    """
    Base exception for all monorun errors.

    Subclasses set ``default_category``; callers may override it per
    instance. ``context`` holds structured metadata (package, path,
    command) that is rendered by :meth:`to_dict` for logs and NDJSON
    reports.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context: dict[str, Any] = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> MonorunError:
        """
        Add context to this error (fluent API).

        Usage:
            raise GraphError("Root not found").with_context(path=target)
        """
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION
# =============================================================================


class ConfigError(MonorunError):
    """Invalid settings file or settings values."""

    default_category = ErrorCategory.CONFIG


class WorkspaceError(ConfigError):
    """A package manifest is missing, unreadable or malformed."""

    def __init__(self, message: str, *, manifest: str | None = None, cause: Exception | None = None):
        super().__init__(message, context={"manifest": manifest} if manifest else None, cause=cause)
        self.manifest = manifest


# =============================================================================
# GRAPH
# =============================================================================


class GraphError(MonorunError):
    """The target graph cannot be built; fatal, raised before scheduling."""

    default_category = ErrorCategory.GRAPH


class CycleDetectedError(GraphError):
    """Raised when the package dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(
            f"Cycle detected in dependency graph: {' -> '.join(cycle)}",
            context={"cycle": cycle},
        )


# =============================================================================
# EXECUTION
# =============================================================================


class InvocationError(MonorunError):
    """A package script could not be spawned or run.

    Caught at the target boundary by the supervisor and downgraded to a
    failed target with exit code 2.
    """

    default_category = ErrorCategory.INVOCATION


class CacheError(MonorunError):
    """The run cache could not be persisted."""

    default_category = ErrorCategory.CACHE


class ReporterError(MonorunError):
    """The report sink failed; fatal to the whole run."""

    default_category = ErrorCategory.REPORTER


__all__ = [
    "ErrorCategory",
    "MonorunError",
    "ConfigError",
    "WorkspaceError",
    "GraphError",
    "CycleDetectedError",
    "InvocationError",
    "CacheError",
    "ReporterError",
]
