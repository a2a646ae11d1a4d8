"""Tests for the target graph builder.

Covers:
- root resolution (cwd, sub-path, package name, unknown target)
- dependency closure from a workspace root vs. the project root
- top-level package excluded from multi-package runs
- cycle detection
- topological order and dependents queries
"""

import pytest

from conftest import write_manifest
from monorun.core.errors import CycleDetectedError, GraphError
from monorun.orchestration.targets import TargetState, build_target_graph, resolve_root
from monorun.workspace import load_project


# ---------------------------------------------------------------------------
# Root resolution
# ---------------------------------------------------------------------------


class TestResolveRoot:
    def test_cwd_inside_package(self, workspace):
        root = workspace({"a": [], "b": []})
        project = load_project(root)
        assert resolve_root(project, root / "packages" / "b").name == "b"

    def test_cwd_at_project_root(self, workspace):
        root = workspace({"a": []})
        project = load_project(root)
        assert resolve_root(project, root) is project.top_level

    def test_sub_path(self, workspace):
        root = workspace({"a": [], "b": []})
        project = load_project(root)
        assert resolve_root(project, root, "packages/a").name == "a"

    def test_package_name(self, workspace):
        root = workspace({"a": [], "b": []})
        project = load_project(root)
        assert resolve_root(project, root, "b").name == "b"

    def test_unknown_target(self, workspace):
        root = workspace({"a": []})
        project = load_project(root)
        with pytest.raises(GraphError, match="No package found"):
            resolve_root(project, root, "packages/missing")

    def test_directory_without_package(self, workspace):
        root = workspace({"a": []})
        (root / "docs").mkdir()
        project = load_project(root)
        with pytest.raises(GraphError):
            resolve_root(project, root, "docs")


# ---------------------------------------------------------------------------
# Graph construction
# ---------------------------------------------------------------------------


class TestBuildTargetGraph:
    def test_closure_from_workspace_root(self, workspace):
        root = workspace({"app": ["lib"], "lib": ["util"], "util": [], "other": []})
        project = load_project(root)
        graph = build_target_graph(project, project.get("app"), "build")

        assert set(graph.ids) == {"app", "lib", "util"}
        assert graph["app"].dependencies == ("lib",)
        assert graph.command == "build"
        assert graph.root == "app"
        assert all(t.state is TargetState.PENDING for t in graph)

    def test_project_root_covers_all_workspaces(self, workspace):
        root = workspace({"a": [], "b": ["a"]}, root_scripts={"build": "monorun build"})
        project = load_project(root)
        graph = build_target_graph(project, project.top_level, "build")
        assert set(graph.ids) == {"a", "b"}
        assert "root" not in graph

    def test_single_package_project(self, tmp_path):
        write_manifest(tmp_path, name="solo", scripts={"build": "tsc"})
        project = load_project(tmp_path)
        graph = build_target_graph(project, project.top_level, "build")
        assert graph.ids == ["solo"]
        assert graph["solo"].script == "tsc"

    def test_packages_without_command_are_kept(self, workspace):
        root = workspace({"app": ["types"], "types": []}, without_command=("types",))
        project = load_project(root)
        graph = build_target_graph(project, project.get("app"), "build")
        assert graph["types"].has_command is False
        assert graph["app"].has_command is True

    def test_missing_root(self, workspace):
        project = load_project(workspace({"a": []}))
        with pytest.raises(GraphError):
            build_target_graph(project, None, "build")

    def test_cycle_detected(self, workspace):
        root = workspace({"a": ["b"], "b": ["c"], "c": ["a"]})
        project = load_project(root)
        with pytest.raises(CycleDetectedError) as exc_info:
            build_target_graph(project, project.get("a"), "build")
        cycle = exc_info.value.cycle
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"a", "b", "c"}


# ---------------------------------------------------------------------------
# Graph queries
# ---------------------------------------------------------------------------


class TestTargetGraph:
    @pytest.fixture
    def diamond(self, workspace):
        root = workspace({"app": ["left", "right"], "left": ["base"], "right": ["base"], "base": []})
        project = load_project(root)
        return build_target_graph(project, project.get("app"), "build")

    def test_topological_order(self, diamond):
        order = [t.id for t in diamond.topological_order()]
        assert order[0] == "base"
        assert order[-1] == "app"
        assert set(order[1:3]) == {"left", "right"}

    def test_dependents(self, diamond):
        assert {t.id for t in diamond.dependents_of("base")} == {"left", "right"}
        assert {t.id for t in diamond.transitive_dependents("base")} == {"left", "right", "app"}
        assert diamond.transitive_dependents("app") == []

    def test_dependencies_of(self, diamond):
        assert {t.id for t in diamond.dependencies_of("app")} == {"left", "right"}

    def test_container_protocol(self, diamond):
        assert len(diamond) == 4
        assert "base" in diamond
        assert "nope" not in diamond
        assert diamond["base"].id == "base"

    def test_target_durations(self, diamond):
        target = diamond["base"]
        assert target.duration_seconds is None
        target.mark_started()
        target.mark_finished()
        assert target.duration_seconds >= 0
