"""Tests for monorun.core.errors module."""

import pytest

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


class TestMonorunError:
    """Test the base error."""

    def test_defaults(self):
        err = MonorunError("boom")
        assert err.message == "boom"
        assert str(err) == "boom"
        assert err.category == ErrorCategory.INTERNAL
        assert err.context == {}
        assert err.cause is None

    def test_category_override(self):
        err = MonorunError("boom", category=ErrorCategory.CACHE)
        assert err.category == ErrorCategory.CACHE

    def test_cause_is_chained(self):
        cause = OSError("disk full")
        err = MonorunError("write failed", cause=cause)
        assert err.cause is cause
        assert err.__cause__ is cause

    def test_with_context_is_fluent(self):
        err = GraphError("missing").with_context(target="packages/x", project_root="/repo")
        assert isinstance(err, GraphError)
        assert err.context == {"target": "packages/x", "project_root": "/repo"}

    def test_to_dict(self):
        err = CacheError("cannot write", context={"path": "/tmp/c.json"}, cause=OSError("nope"))
        d = err.to_dict()
        assert d["error_type"] == "CacheError"
        assert d["message"] == "cannot write"
        assert d["category"] == "CACHE"
        assert d["context"] == {"path": "/tmp/c.json"}
        assert d["cause"] == "nope"

    def test_to_dict_omits_empty_fields(self):
        d = MonorunError("plain").to_dict()
        assert "context" not in d
        assert "cause" not in d

    def test_repr(self):
        assert repr(ReporterError("sink")) == "ReporterError('sink', category=REPORTER)"


class TestHierarchy:
    """Subclasses carry their category and catchability."""

    @pytest.mark.parametrize(
        "cls, category",
        [
            (ConfigError, ErrorCategory.CONFIG),
            (WorkspaceError, ErrorCategory.CONFIG),
            (GraphError, ErrorCategory.GRAPH),
            (InvocationError, ErrorCategory.INVOCATION),
            (CacheError, ErrorCategory.CACHE),
            (ReporterError, ErrorCategory.REPORTER),
        ],
    )
    def test_default_categories(self, cls, category):
        assert cls("x").category == category

    def test_workspace_error_is_config_error(self):
        err = WorkspaceError("bad manifest", manifest="/repo/package.json")
        assert isinstance(err, ConfigError)
        assert err.manifest == "/repo/package.json"
        assert err.context == {"manifest": "/repo/package.json"}

    def test_cycle_error(self):
        err = CycleDetectedError(["a", "b", "a"])
        assert isinstance(err, GraphError)
        assert err.cycle == ["a", "b", "a"]
        assert "a -> b -> a" in err.message
        assert err.context["cycle"] == ["a", "b", "a"]

    def test_all_catchable_as_base(self):
        for cls in (ConfigError, GraphError, InvocationError, CacheError, ReporterError):
            with pytest.raises(MonorunError):
                raise cls("x")
