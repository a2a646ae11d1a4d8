"""
Shared pytest fixtures and configuration for monorun tests.

This module provides:
- Settings/logging isolation between tests
- ``workspace``: a factory writing real package.json trees under tmp_path
- ``FakeRunner``: a process runner that records invocation order and
  concurrency instead of spawning processes

Usage:
    def test_something(workspace, fake_runner):
        root = workspace({"app": ["lib"], "lib": []})
        ...
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any

import pytest
import structlog

from monorun.core.logging import configure_logging
from monorun.core.settings import clear_settings_cache


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark all tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Drop MONORUN_* variables, settings cache and logging configuration."""
    for key in list(os.environ):
        if key.startswith("MONORUN_"):
            monkeypatch.delenv(key, raising=False)
    clear_settings_cache()
    configure_logging(level="WARNING", json_format=False)
    yield
    clear_settings_cache()
    structlog.reset_defaults()


# =============================================================================
# Workspace Fixtures
# =============================================================================


def write_manifest(directory: Path, **manifest: Any) -> Path:
    """Write ``package.json`` into *directory* (created if needed)."""
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "package.json").write_text(json.dumps(manifest, indent=2), encoding="utf-8")
    return directory


@pytest.fixture
def workspace(tmp_path):
    """Factory for a ``packages/*`` workspace.

    ``graph`` maps package name → names it depends on. Every package gets
    a script for *command* (unless listed in *without_command*) and one
    source file.
    """

    def _make(
        graph: dict[str, list[str]],
        *,
        command: str = "build",
        without_command: tuple[str, ...] = (),
        root_scripts: dict[str, str] | None = None,
    ) -> Path:
        write_manifest(
            tmp_path,
            name="root",
            private=True,
            workspaces=["packages/*"],
            scripts=root_scripts or {},
        )
        for name, deps in graph.items():
            package_dir = tmp_path / "packages" / name
            write_manifest(
                package_dir,
                name=name,
                version="1.0.0",
                dependencies={dep: "workspace:*" for dep in deps},
                scripts={} if name in without_command else {command: f"echo {name}"},
            )
            (package_dir / "index.js").write_text(f"module.exports = '{name}';\n", encoding="utf-8")
        return tmp_path

    return _make


# =============================================================================
# Process Runner Fixtures
# =============================================================================


class FakeRunner:
    """Process runner double keyed by package directory name.

    Args:
        exit_codes: Name → exit code (default 0).
        output: Name → stdout lines written before exiting.
        errors: Name → exception raised instead of returning.
        delays: Name → seconds to stay "running" (default ``delay``).
    """

    def __init__(
        self,
        *,
        exit_codes: dict[str, int] | None = None,
        output: dict[str, list[str]] | None = None,
        errors: dict[str, Exception] | None = None,
        delays: dict[str, float] | None = None,
        delay: float = 0.01,
    ) -> None:
        self.exit_codes = exit_codes or {}
        self.output = output or {}
        self.errors = errors or {}
        self.delays = delays or {}
        self.delay = delay
        self.started: list[str] = []
        self.finished: list[str] = []
        self.commands: list[str] = []
        self.active = 0
        self.max_active = 0

    async def invoke(self, command, cwd, stdout, stderr) -> int:
        name = Path(cwd).name
        self.started.append(name)
        self.commands.append(command)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            for line in self.output.get(name, []):
                await stdout.write(f"{line}\n".encode())
                await asyncio.sleep(0)
            await asyncio.sleep(self.delays.get(name, self.delay))
            if name in self.errors:
                raise self.errors[name]
            return self.exit_codes.get(name, 0)
        finally:
            self.active -= 1
            self.finished.append(name)
            await stdout.close()
            await stderr.close()


@pytest.fixture
def fake_runner():
    return FakeRunner()
