"""Workspace data model — packages and the project that holds them."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class PackageFolders:
    """Per-package overrides of the folders used for change detection."""

    input: str | None = None
    output: str | None = None
    exclude: tuple[str, ...] = ()


@dataclass(frozen=True)
class Package:
    """One unit of the multi-package repository.

    Attributes:
        name: Unique identity within the project (manifest ``name``).
        location: Directory relative to the project root, POSIX style
            (``"."`` for the top-level package).
        cwd: Absolute directory the package's scripts run in.
        dependencies: Names of other project packages this one depends on.
        scripts: Command name → command line.
        folders: Optional input/output overrides from the manifest.
    """

    name: str
    location: str
    cwd: Path
    dependencies: tuple[str, ...] = ()
    scripts: dict[str, str] = field(default_factory=dict, compare=False, hash=False)
    folders: PackageFolders = field(default_factory=PackageFolders)

    def has_command(self, command: str) -> bool:
        return command in self.scripts

    def script(self, command: str) -> str | None:
        return self.scripts.get(command)


@dataclass
class Project:
    """All packages of a repository, keyed by identity."""

    root: Path
    top_level: Package
    packages: dict[str, Package] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.packages.setdefault(self.top_level.name, self.top_level)

    @property
    def workspaces(self) -> list[Package]:
        """Every package except the top-level one, sorted by location."""
        return sorted(
            (p for p in self.packages.values() if p is not self.top_level),
            key=lambda p: p.location,
        )

    def get(self, name: str) -> Package | None:
        return self.packages.get(name)

    def find_package(self, path: Path) -> Package | None:
        """Return the deepest package whose directory contains *path*."""
        target = path.resolve()
        best: Package | None = None
        for package in self.packages.values():
            cwd = package.cwd.resolve()
            if target == cwd or cwd in target.parents:
                if best is None or len(cwd.parts) > len(best.cwd.resolve().parts):
                    best = package
        return best

    def dependencies_of(self, name: str) -> list[Package]:
        package = self.packages[name]
        return [self.packages[dep] for dep in package.dependencies if dep in self.packages]
