"""
Deterministic hashing utilities for run-cache invalidation.

Two primitives:

- :func:`compute_hash` chains arbitrary values into a stable SHA-256 hex
  digest. The run cache uses it to fold a package's source hash together
  with the hashes of its dependencies, so a change anywhere upstream
  changes every downstream hash.
- :func:`hash_tree` summarises a package's source folder (relative paths
  and file bytes) while skipping its build output and vendored folders.

Examples:
    >>> compute_hash("build", "tsc -b", "abc") == compute_hash("build", "tsc -b", "abc")
    True
    >>> compute_hash("a", "b") != compute_hash("b", "a")
    True

Tags:
    hashing, cache, change-detection, monorun
"""

from __future__ import annotations

import fnmatch
import hashlib
import os
from collections.abc import Iterable
from pathlib import Path
from typing import Any

# Directory names never considered part of a package's sources.
ALWAYS_EXCLUDED = frozenset({".git", "node_modules", ".monorun", ".yarn"})

_CHUNK_SIZE = 1 << 16


def compute_hash(*values: Any, length: int = 64) -> str:
    """
    Compute deterministic hash from values.

    Values are converted to strings and joined with ``|`` before hashing,
    so the result depends on both the values and their order.

    Args:
        *values: Values to hash (converted to strings)
        length: Hex digest length (default 64 = full SHA-256)

    Returns:
        Hex string of specified length
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode()).hexdigest()[:length]


def _is_excluded(relative: str, name: str, patterns: Iterable[str]) -> bool:
    for pattern in patterns:
        if fnmatch.fnmatch(relative, pattern) or fnmatch.fnmatch(name, pattern):
            return True
    return False


def iter_source_files(
    root: Path,
    *,
    exclude_dirs: Iterable[Path] = (),
    exclude_patterns: Iterable[str] = (),
) -> list[Path]:
    """List files under *root* in a stable order, applying exclusions.

    Args:
        root: Directory to walk.
        exclude_dirs: Absolute directories to prune (e.g. the output folder).
        exclude_patterns: Glob patterns matched against the path relative to
            *root* (POSIX separators) and against the bare name.
    """
    root = root.resolve()
    pruned = {Path(d).resolve() for d in exclude_dirs}
    patterns = list(exclude_patterns)
    files: list[Path] = []

    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        kept = []
        for dirname in sorted(dirnames):
            candidate = current / dirname
            relative = candidate.relative_to(root).as_posix()
            if dirname in ALWAYS_EXCLUDED or candidate in pruned:
                continue
            if _is_excluded(relative, dirname, patterns):
                continue
            kept.append(dirname)
        dirnames[:] = kept

        for filename in sorted(filenames):
            candidate = current / filename
            relative = candidate.relative_to(root).as_posix()
            if _is_excluded(relative, filename, patterns) or not candidate.is_file():
                continue
            files.append(candidate)

    return sorted(files, key=lambda p: p.relative_to(root).as_posix())


def hash_tree(
    root: Path,
    *,
    exclude_dirs: Iterable[Path] = (),
    exclude_patterns: Iterable[str] = (),
) -> str:
    """Hash the relative paths and contents of every source file under *root*.

    A missing *root* hashes like an empty tree.
    """
    digest = hashlib.sha256()
    if not root.is_dir():
        return digest.hexdigest()

    resolved = root.resolve()
    for path in iter_source_files(root, exclude_dirs=exclude_dirs, exclude_patterns=exclude_patterns):
        digest.update(path.relative_to(resolved).as_posix().encode())
        digest.update(b"\0")
        with path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
        digest.update(b"\0")
    return digest.hexdigest()


__all__ = ["ALWAYS_EXCLUDED", "compute_hash", "hash_tree", "iter_source_files"]
