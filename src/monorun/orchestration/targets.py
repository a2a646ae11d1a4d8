"""
Target Graph Builder — from a root package to the set of targets to run.

A *target* is one package's invocation of the requested command. Starting
at the root package, the builder follows dependency edges outward and
creates one :class:`Target` per reachable package. Packages that do not
declare the command still get a target: they take part in ordering and
hashing, but their execution is a no-op that succeeds immediately.

Edges point from dependent to dependency. The graph keeps both
directions so the supervisor can release dependents when a dependency
finishes.

Example::

    graph = build_target_graph(project, project.get("@acme/app"), "build")
    for target in graph.topological_order():
        print(target.id, [d.id for d in graph.dependencies_of(target.id)])
"""

from __future__ import annotations

import time
from collections import defaultdict, deque
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from monorun.core.errors import CycleDetectedError, GraphError
from monorun.core.logging import get_logger
from monorun.workspace.models import Package, Project

logger = get_logger(__name__)


class TargetState(str, Enum):
    """Lifecycle of a target within one run.

    ``PENDING`` before scheduling starts, ``BLOCKED`` while a dependency
    is unfinished, ``READY`` once every dependency is ``DONE`` or
    ``SKIPPED``. ``DONE``, ``FAILED`` and ``SKIPPED`` are terminal.
    """

    PENDING = "pending"
    BLOCKED = "blocked"
    READY = "ready"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (TargetState.DONE, TargetState.FAILED, TargetState.SKIPPED)

    @property
    def is_success(self) -> bool:
        return self in (TargetState.DONE, TargetState.SKIPPED)


@dataclass
class Target:
    """Per-run state record for one package's command invocation.

    Mutated only by the supervisor (state, exit code, timings) and the run
    cache (hashes). ``output`` accumulates lines in buffered mode only.
    """

    id: str
    package: Package
    command: str
    dependencies: tuple[str, ...] = ()
    state: TargetState = TargetState.PENDING
    exit_code: int | None = None
    hash: str | None = None
    prior_hash: str | None = None
    reason: str | None = None
    output: list = field(default_factory=list)
    started_at: float | None = None
    finished_at: float | None = None

    @property
    def has_command(self) -> bool:
        return self.package.has_command(self.command)

    @property
    def script(self) -> str | None:
        return self.package.script(self.command)

    @property
    def cwd(self) -> Path:
        return self.package.cwd

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is not None and self.finished_at is not None:
            return self.finished_at - self.started_at
        return None

    def mark_started(self) -> None:
        self.started_at = time.monotonic()

    def mark_finished(self) -> None:
        if self.started_at is None:
            self.started_at = time.monotonic()
        self.finished_at = time.monotonic()


class TargetGraph:
    """Targets plus dependency edges (dependent → dependency), acyclic."""

    def __init__(self, command: str, root: str, targets: list[Target]) -> None:
        self.command = command
        self.root = root
        self._targets: dict[str, Target] = {t.id: t for t in targets}
        self._dependents: dict[str, list[str]] = defaultdict(list)
        for target in targets:
            for dep in target.dependencies:
                self._dependents[dep].append(target.id)

    def __getitem__(self, target_id: str) -> Target:
        return self._targets[target_id]

    def __contains__(self, target_id: object) -> bool:
        return target_id in self._targets

    def __iter__(self) -> Iterator[Target]:
        return iter(self._targets.values())

    def __len__(self) -> int:
        return len(self._targets)

    @property
    def ids(self) -> list[str]:
        return list(self._targets)

    def dependencies_of(self, target_id: str) -> list[Target]:
        return [self._targets[d] for d in self._targets[target_id].dependencies]

    def dependents_of(self, target_id: str) -> list[Target]:
        return [self._targets[d] for d in self._dependents.get(target_id, [])]

    def transitive_dependents(self, target_id: str) -> list[Target]:
        """Every target that depends on *target_id*, directly or not."""
        seen: list[str] = []
        queue = deque(self._dependents.get(target_id, []))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.append(current)
            queue.extend(self._dependents.get(current, []))
        return [self._targets[t] for t in seen]

    def topological_order(self) -> list[Target]:
        """Targets with dependencies first (Kahn's algorithm, stable)."""
        in_degree = {tid: len(t.dependencies) for tid, t in self._targets.items()}
        queue = deque(tid for tid, degree in in_degree.items() if degree == 0)
        result: list[Target] = []

        while queue:
            node = queue.popleft()
            result.append(self._targets[node])
            for dependent in self._dependents.get(node, []):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(result) != len(self._targets):
            remaining = [tid for tid in self._targets if tid not in {t.id for t in result}]
            raise GraphError(f"Topological sort incomplete. Remaining: {remaining}")
        return result


def resolve_root(project: Project, cwd: Path, target_path: str | None = None) -> Package:
    """Pick the root package for a run.

    With *target_path* (a package name, or a directory relative to the
    project root) that package is used; otherwise the package containing
    *cwd*, falling back to the top-level package.

    Raises:
        GraphError: *target_path* names no package of the project.
    """
    if target_path:
        by_name = project.get(target_path)
        if by_name is not None:
            return by_name
        directory = (project.root / target_path).resolve()
        package = project.find_package(directory) if directory.exists() else None
        if package is None or (package is project.top_level and directory != project.root):
            raise GraphError(f"No package found for target {target_path!r}").with_context(
                target=target_path, project_root=str(project.root)
            )
        return package
    return project.find_package(cwd) or project.top_level


def _check_acyclic(project: Project, names: list[str]) -> None:
    """Three-colour DFS; raises on the first back edge."""
    WHITE, GRAY, BLACK = 0, 1, 2
    color = {name: WHITE for name in names}
    path: list[str] = []

    def dfs(node: str) -> list[str] | None:
        color[node] = GRAY
        path.append(node)
        for neighbor in project.packages[node].dependencies:
            if neighbor not in color:
                continue
            if color[neighbor] == GRAY:
                return path[path.index(neighbor):] + [neighbor]
            if color[neighbor] == WHITE:
                cycle = dfs(neighbor)
                if cycle:
                    return cycle
        color[node] = BLACK
        path.pop()
        return None

    for name in names:
        if color[name] == WHITE:
            cycle = dfs(name)
            if cycle:
                raise CycleDetectedError(cycle)


def build_target_graph(project: Project, root: Package | None, command: str) -> TargetGraph:
    """Compute the dependency closure of *root* as a :class:`TargetGraph`.

    When *root* is the top-level package of a multi-package project the
    closure is every workspace; the top-level package is left out unless
    some workspace depends on it.

    Raises:
        GraphError: *root* is ``None`` or not part of *project*.
        CycleDetectedError: The reachable dependency graph has a cycle.
    """
    if root is None or project.get(root.name) is not root:
        name = root.name if root is not None else None
        raise GraphError(f"Root package {name!r} not found in project").with_context(
            project_root=str(project.root)
        )

    if root is project.top_level and project.workspaces:
        start = [p.name for p in project.workspaces]
    else:
        start = [root.name]

    closure: list[str] = []
    queue = deque(start)
    while queue:
        name = queue.popleft()
        if name in closure:
            continue
        closure.append(name)
        for dep in project.packages[name].dependencies:
            if dep in project.packages and dep not in closure:
                queue.append(dep)

    _check_acyclic(project, closure)

    targets = [
        Target(
            id=name,
            package=project.packages[name],
            command=command,
            dependencies=tuple(d for d in project.packages[name].dependencies if d in closure),
        )
        for name in closure
    ]
    graph = TargetGraph(command=command, root=root.name, targets=targets)

    logger.debug(
        "targets.built",
        root=root.name,
        command=command,
        targets=len(graph),
        with_command=sum(1 for t in graph if t.has_command),
    )
    return graph


__all__ = [
    "Target",
    "TargetGraph",
    "TargetState",
    "build_target_graph",
    "resolve_root",
]
