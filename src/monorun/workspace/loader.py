"""
Workspace loader — reads a ``package.json`` based multi-package repository.

The project root is the nearest directory (walking upward) whose manifest
declares ``workspaces``. Workspace globs are expanded relative to that
root; each matched directory holding a ``package.json`` becomes a
:class:`~monorun.workspace.models.Package`.

Only dependencies that name another package of the project are kept;
external registry dependencies play no part in scheduling.

Example::

    project = load_project(Path.cwd())
    ui = project.get("@acme/ui")
    print(ui.dependencies)  # ('@acme/core',)
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from monorun.core.errors import WorkspaceError
from monorun.core.logging import get_logger
from monorun.workspace.models import Package, PackageFolders, Project

logger = get_logger(__name__)

MANIFEST = "package.json"
DEPENDENCY_FIELDS = ("dependencies", "devDependencies", "optionalDependencies")
CONFIG_KEY = "monorun"


def read_manifest(path: Path) -> dict[str, Any]:
    """Parse a ``package.json`` file.

    Raises:
        WorkspaceError: The file is unreadable, not JSON, or not an object.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise WorkspaceError(f"Cannot read manifest {path}: {exc}", manifest=str(path), cause=exc) from exc
    if not isinstance(data, dict):
        raise WorkspaceError(f"Manifest {path} must contain a JSON object", manifest=str(path))
    return data


def workspace_patterns(manifest: dict[str, Any]) -> list[str] | None:
    """Return the manifest's workspace globs, or ``None`` when absent."""
    workspaces = manifest.get("workspaces")
    if workspaces is None:
        return None
    if isinstance(workspaces, dict):
        workspaces = workspaces.get("packages", [])
    if not isinstance(workspaces, list) or not all(isinstance(p, str) for p in workspaces):
        raise WorkspaceError("'workspaces' must be a list of glob strings")
    return list(workspaces)


def find_project_root(start: Path) -> Path:
    """Walk upward from *start* to the directory that owns the workspaces.

    Falls back to the nearest directory with a manifest when no ancestor
    declares workspaces.

    Raises:
        WorkspaceError: No ``package.json`` exists at or above *start*.
    """
    current = start.resolve()
    nearest: Path | None = None
    for directory in (current, *current.parents):
        manifest_path = directory / MANIFEST
        if not manifest_path.is_file():
            continue
        if nearest is None:
            nearest = directory
        if workspace_patterns(read_manifest(manifest_path)) is not None:
            return directory
    if nearest is None:
        raise WorkspaceError(f"No {MANIFEST} found at or above {current}")
    return nearest


def _folders(manifest: dict[str, Any], manifest_path: Path) -> PackageFolders:
    config = manifest.get(CONFIG_KEY)
    if config is None:
        return PackageFolders()
    if not isinstance(config, dict):
        raise WorkspaceError(f"'{CONFIG_KEY}' in {manifest_path} must be an object", manifest=str(manifest_path))
    exclude = config.get("exclude", [])
    if not isinstance(exclude, list):
        raise WorkspaceError(f"'{CONFIG_KEY}.exclude' in {manifest_path} must be a list", manifest=str(manifest_path))
    return PackageFolders(
        input=config.get("input"),
        output=config.get("output"),
        exclude=tuple(str(p) for p in exclude),
    )


def _declared_dependencies(manifest: dict[str, Any]) -> list[str]:
    names: list[str] = []
    for field_name in DEPENDENCY_FIELDS:
        section = manifest.get(field_name) or {}
        if isinstance(section, dict):
            for name in section:
                if name not in names:
                    names.append(name)
    return names


def _scripts(manifest: dict[str, Any]) -> dict[str, str]:
    scripts = manifest.get("scripts") or {}
    if not isinstance(scripts, dict):
        return {}
    return {str(k): str(v) for k, v in scripts.items() if isinstance(v, str)}


def _expand(root: Path, patterns: list[str]) -> list[Path]:
    found: list[Path] = []
    excluded: set[Path] = set()
    for pattern in patterns:
        if not pattern.strip("!/"):
            continue
        negate = pattern.startswith("!")
        matches = root.glob(pattern[1:] if negate else pattern.rstrip("/"))
        for match in matches:
            if "node_modules" in match.parts or not (match / MANIFEST).is_file():
                continue
            resolved = match.resolve()
            if negate:
                excluded.add(resolved)
            elif resolved not in found and resolved != root:
                found.append(resolved)
    return sorted((p for p in found if p not in excluded), key=lambda p: p.as_posix())


def _package(root: Path, directory: Path, manifest: dict[str, Any], names: dict[str, Path]) -> Package:
    location = directory.relative_to(root).as_posix() if directory != root else "."
    name = manifest.get("name") or location
    return Package(
        name=name,
        location=location,
        cwd=directory,
        dependencies=tuple(d for d in _declared_dependencies(manifest) if d in names and d != name),
        scripts=_scripts(manifest),
        folders=_folders(manifest, directory / MANIFEST),
    )


def load_project(start: Path) -> Project:
    """Discover the project containing *start* and read all its packages.

    Raises:
        WorkspaceError: Missing or malformed manifests, or two packages
            sharing one name.
    """
    root = find_project_root(start)
    root_manifest = read_manifest(root / MANIFEST)
    patterns = workspace_patterns(root_manifest) or []

    raw: list[tuple[Path, dict[str, Any]]] = [(root, root_manifest)]
    for directory in _expand(root, patterns):
        raw.append((directory, read_manifest(directory / MANIFEST)))

    names: dict[str, Path] = {}
    for directory, manifest in raw:
        location = directory.relative_to(root).as_posix() if directory != root else "."
        name = manifest.get("name") or location
        if name in names:
            raise WorkspaceError(
                f"Duplicate package name {name!r} in {names[name]} and {directory}",
                manifest=str(directory / MANIFEST),
            )
        names[name] = directory

    top_level = _package(root, root, root_manifest, names)
    packages = {top_level.name: top_level}
    for directory, manifest in raw[1:]:
        package = _package(root, directory, manifest, names)
        packages[package.name] = package

    logger.debug("workspace.loaded", root=str(root), packages=len(packages))
    return Project(root=root, top_level=top_level, packages=packages)


__all__ = ["find_project_root", "load_project", "read_manifest", "workspace_patterns"]
