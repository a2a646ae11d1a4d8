"""
Workspace graph provider.

Reads the project's packages, their declared inter-package dependencies,
working directories and scripts. The scheduler only ever consumes the
:class:`Project` model, so other providers can be swapped in by building
a :class:`Project` directly.
"""

from monorun.workspace.loader import find_project_root, load_project, read_manifest
from monorun.workspace.models import Package, PackageFolders, Project

__all__ = [
    "Package",
    "PackageFolders",
    "Project",
    "find_project_root",
    "load_project",
    "read_manifest",
]
