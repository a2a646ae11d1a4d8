"""
Run Cache — content-hash table that decides which targets may be skipped.

WHY
───
Rebuilding every package on every invocation wastes minutes in a large
repository. The run cache remembers, per ``command:target``, the content
hash of the last *successful* run. A target whose fresh hash matches is
reported as "up to date" and no process is spawned.

ARCHITECTURE
────────────
::

    target hash = compute_hash(command, script, source_hash,
                               *[dep.hash for dep in sorted(deps)])

    source_hash = hash_tree(<package>/<input folder>,
                            minus <output folder>, node_modules, .git,
                            exclude globs)

    RunCache
      ├── .compute_hash(target)   ─ needs every dependency hash first
      ├── .should_run(target)     ─ ignore_cache / no entry / mismatch
      ├── .commit(target)         ─ only after exit code 0
      └── .save()                 ─ atomic JSON write

Because a target's hash folds in its dependencies' hashes, a change in
any transitive dependency changes every downstream hash.

A failed run never commits, so the target is retried next time even if
its inputs are unchanged.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path

from monorun.core.errors import CacheError
from monorun.core.hashing import compute_hash, hash_tree
from monorun.core.logging import get_logger
from monorun.core.settings import MonorunSettings
from monorun.orchestration.targets import Target, TargetGraph

logger = get_logger(__name__)

CACHE_VERSION = 1


class RunCacheStore:
    """JSON file holding ``{"version": 1, "entries": {key: hash}}``."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> dict[str, str]:
        """Read the entries; a missing or corrupt file yields ``{}``."""
        if not self.path.is_file():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("cache.unreadable", path=str(self.path), error=str(exc))
            return {}
        if not isinstance(data, dict) or data.get("version") != CACHE_VERSION:
            logger.warning("cache.version_mismatch", path=str(self.path))
            return {}
        entries = data.get("entries")
        if not isinstance(entries, dict):
            return {}
        return {str(k): str(v) for k, v in entries.items()}

    def save(self, entries: dict[str, str]) -> None:
        """Write atomically (temp file + replace).

        Raises:
            CacheError: The file cannot be written.
        """
        payload = json.dumps({"version": CACHE_VERSION, "entries": dict(sorted(entries.items()))}, indent=2)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".run-cache.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp, self.path)
        except OSError as exc:
            raise CacheError(f"Cannot write run cache {self.path}: {exc}", cause=exc).with_context(
                path=str(self.path)
            ) from exc


class RunCache:
    """Content-hash cache over the targets of one :class:`TargetGraph`.

    The graph is the supervisor's state arena; the cache reads dependency
    hashes from it and writes ``hash``/``prior_hash`` onto targets.

    Args:
        graph: Targets for this run.
        store: Persistence backend.
        settings: Supplies the default input/output folders and excludes.
        ignore_cache: When ``True`` every target must run.
    """

    def __init__(
        self,
        graph: TargetGraph,
        store: RunCacheStore,
        settings: MonorunSettings,
        *,
        ignore_cache: bool = False,
    ) -> None:
        self._graph = graph
        self._store = store
        self._settings = settings
        self.ignore_cache = ignore_cache
        self._entries: dict[str, str] = store.load()
        self._dirty = False

    @property
    def entries(self) -> dict[str, str]:
        return dict(self._entries)

    def key(self, target: Target) -> str:
        return f"{target.command}:{target.id}"

    def source_hash(self, target: Target) -> str:
        """Hash the target package's own input folder."""
        folders = target.package.folders
        input_dir = target.cwd / (folders.input or self._settings.input_folder)
        output_dir = target.cwd / (folders.output or self._settings.output_folder)
        cache_dir = self._store.path.parent
        return hash_tree(
            input_dir,
            exclude_dirs=(output_dir, cache_dir),
            exclude_patterns=(*self._settings.exclude, *folders.exclude),
        )

    def compute_hash(self, target: Target) -> str:
        """Compute and record *target*'s content hash.

        Raises:
            CacheError: A dependency's hash has not been computed yet.
        """
        dependencies = sorted(self._graph.dependencies_of(target.id), key=lambda t: t.id)
        missing = [d.id for d in dependencies if d.hash is None]
        if missing:
            raise CacheError(f"Dependency hashes of {target.id} are not final: {missing}")

        target.hash = compute_hash(
            target.command,
            target.script or "",
            self.source_hash(target),
            *(f"{d.id}={d.hash}" for d in dependencies),
        )
        target.prior_hash = self._entries.get(self.key(target))
        return target.hash

    async def compute_hash_async(self, target: Target) -> str:
        """:meth:`compute_hash` off the event loop."""
        return await asyncio.to_thread(self.compute_hash, target)

    def should_run(self, target: Target) -> bool:
        if self.ignore_cache:
            return True
        if target.hash is None:
            self.compute_hash(target)
        prior = self._entries.get(self.key(target))
        return prior is None or prior != target.hash

    def commit(self, target: Target, hash: str | None = None) -> bool:
        """Record a successful run; refuses non-zero exit codes.

        Returns:
            ``True`` when the entry was recorded.
        """
        value = hash or target.hash
        if target.exit_code != 0 or value is None:
            logger.debug("cache.commit_refused", target=target.id, exit_code=target.exit_code)
            return False
        self._entries[self.key(target)] = value
        self._dirty = True
        return True

    def save(self) -> None:
        """Persist committed entries, if anything changed."""
        if not self._dirty:
            return
        self._store.save(self._entries)
        self._dirty = False
        logger.debug("cache.saved", path=str(self._store.path), entries=len(self._entries))


__all__ = ["CACHE_VERSION", "RunCache", "RunCacheStore"]
