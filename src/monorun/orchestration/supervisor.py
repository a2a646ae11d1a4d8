"""
Run Supervisor — turns a target graph into a concurrent execution schedule.

The supervisor is the single control path of a run. It owns the state of
every :class:`~monorun.orchestration.targets.Target`, releases a target
once all of its dependencies succeeded, asks the run cache whether the
target may be skipped, and keeps up to ``concurrency`` processes running.

State machine::

    PENDING ─▶ BLOCKED ─▶ READY ─┬─▶ RUNNING ─┬─▶ DONE
                  │              │            └─▶ FAILED
                  │              ├─▶ SKIPPED      (cache hit)
                  │              └─▶ DONE         (no script / dry run)
                  └─▶ FAILED  (a dependency failed; never executed)

Scheduling loop::

    seed: targets without dependencies → READY → hash task
    loop:
        start runnable targets while running < concurrency
        wait for the first hash or invocation task to finish
        hash finished     → SKIPPED | DONE (no script) | runnable
        process finished  → DONE (commit cache, release dependents)
                          | FAILED (propagate to transitive dependents)

Invocation and hashing happen in tasks; only this loop mutates target
state and the cache, so no locking is needed around either.

Failure policy:

- ``FailurePolicy.STOP`` (default): after the first failure no new target
  starts; in-flight targets finish. Dependents of the failed target are
  marked FAILED, everything else untouched is reported as not attempted.
- ``FailurePolicy.CONTINUE``: independent subgraphs keep running.

Example::

    supervisor = RunSupervisor(graph, cache, ShellRunner(), reporter, concurrency=4)
    ok = await supervisor.run()
"""

from __future__ import annotations

import asyncio
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from monorun.core.errors import MonorunError, ReporterError
from monorun.core.logging import LogContext, get_logger
from monorun.execution.output import OutputMultiplexer, Stream
from monorun.execution.process import ProcessRunner
from monorun.orchestration.cache import RunCache
from monorun.orchestration.reporter import RunReporter
from monorun.orchestration.targets import Target, TargetGraph, TargetState

logger = get_logger(__name__)

# Exit code recorded when the process runner raises instead of returning.
INVOCATION_ERROR_EXIT_CODE = 2


class FailurePolicy(str, Enum):
    """What happens to independent targets after a failure."""

    STOP = "stop"
    CONTINUE = "continue"


@dataclass(frozen=True)
class RunRecord:
    """Final outcome of one target."""

    target: str
    state: TargetState
    exit_code: int | None
    duration_seconds: float | None
    executed: bool
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "state": self.state.value,
            "exit_code": self.exit_code,
            "duration_seconds": self.duration_seconds,
            "executed": self.executed,
            "reason": self.reason,
        }


@dataclass
class RunSummary:
    """Per-invocation summary of every target's outcome."""

    run_id: str
    records: list[RunRecord] = field(default_factory=list)

    @property
    def ran(self) -> int:
        return sum(1 for r in self.records if r.executed)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.records if r.state is TargetState.SKIPPED)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.records if r.state is TargetState.FAILED)

    @property
    def not_attempted(self) -> int:
        return sum(1 for r in self.records if not r.state.is_terminal)

    @property
    def failed_targets(self) -> list[str]:
        return [r.target for r in self.records if r.state is TargetState.FAILED]

    @property
    def succeeded(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "succeeded": self.succeeded,
            "ran": self.ran,
            "skipped": self.skipped,
            "failed": self.failed,
            "not_attempted": self.not_attempted,
            "records": [r.to_dict() for r in self.records],
        }


class RunSupervisor:
    """Drives one run of a command across a :class:`TargetGraph`.

    Args:
        graph: The targets and their dependency edges (the state arena).
        cache: Run cache bound to the same graph.
        runner: Process runner used to invoke scripts.
        reporter: Receives lifecycle events and multiplexed output.
        concurrency: Maximum simultaneously RUNNING targets; ``None`` means
            unbounded, ``1`` is strictly serial.
        interlaced: Forward output lines as they arrive instead of
            buffering them per target.
        dry_run: Simulate execution: no processes, synthetic exit code 0.
        failure_policy: See :class:`FailurePolicy`.
        line_buffer: Bound of the output line channel.
    """

    def __init__(
        self,
        graph: TargetGraph,
        cache: RunCache,
        runner: ProcessRunner,
        reporter: RunReporter,
        *,
        concurrency: int | None = 1,
        interlaced: bool = False,
        dry_run: bool = False,
        failure_policy: FailurePolicy = FailurePolicy.STOP,
        line_buffer: int = 256,
    ) -> None:
        if concurrency is not None and concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.graph = graph
        self.cache = cache
        self.runner = runner
        self.reporter = reporter
        self.concurrency = concurrency
        self.interlaced = interlaced
        self.dry_run = dry_run
        self.failure_policy = failure_policy
        self.run_id = uuid.uuid4().hex[:12]

        self._mux = OutputMultiplexer(reporter, interlaced=interlaced, maxsize=line_buffer)
        self._hashing: dict[asyncio.Task, str] = {}
        self._running: dict[asyncio.Task, str] = {}
        self._runnable: deque[str] = deque()
        self._executed: set[str] = set()
        self._invocation_errors: dict[str, str] = {}
        self._stopping = False

    # ── Public API ───────────────────────────────────────────────────

    async def run(self) -> bool:
        """Run every target; ``True`` iff no target ended FAILED."""
        async with LogContext(command=self.graph.command, run_id=self.run_id):
            logger.info(
                "supervisor.start",
                targets=len(self.graph),
                concurrency=self.concurrency,
                interlaced=self.interlaced,
                dry_run=self.dry_run,
            )
            async with self._mux:
                try:
                    await self._schedule()
                except BaseException:
                    await self._abort()
                    raise
            self._mux.raise_if_failed()

            if not self.dry_run:
                self.cache.save()

            summary = self.summary()
            self._notify(self.reporter.summary, summary)
            logger.info(
                "supervisor.complete",
                succeeded=summary.succeeded,
                ran=summary.ran,
                skipped=summary.skipped,
                failed=summary.failed,
                not_attempted=summary.not_attempted,
            )
            return summary.succeeded

    def summary(self) -> RunSummary:
        records = [
            RunRecord(
                target=t.id,
                state=t.state,
                exit_code=t.exit_code,
                duration_seconds=t.duration_seconds,
                executed=t.id in self._executed,
                reason=t.reason,
            )
            for t in self.graph.topological_order()
        ]
        return RunSummary(run_id=self.run_id, records=records)

    # ── Scheduling loop ──────────────────────────────────────────────

    async def _schedule(self) -> None:
        order = self.graph.topological_order()
        for target in order:
            target.state = TargetState.BLOCKED if target.dependencies else TargetState.PENDING
        for target in order:
            if not target.dependencies:
                self._make_ready(target)

        while self._hashing or self._running or self._runnable:
            self._mux.raise_if_failed()
            self._start_runnable()
            pending = set(self._hashing) | set(self._running)
            if not pending:
                break

            done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                if task in self._hashing:
                    self._on_hashed(self._hashing.pop(task), task)
                else:
                    self._on_exited(self._running.pop(task), task)

    def _make_ready(self, target: Target) -> None:
        target.state = TargetState.READY
        if self._stopping:
            return
        logger.debug("supervisor.target_ready", target=target.id)
        task = asyncio.create_task(self.cache.compute_hash_async(target), name=f"hash:{target.id}")
        self._hashing[task] = target.id

    def _on_hashed(self, target_id: str, task: asyncio.Task) -> None:
        target = self.graph[target_id]
        error = task.exception()
        if error is not None:
            logger.info("supervisor.hash_failed", target=target_id, error=str(error))
            target.reason = f"hash failed: {error}"
            target.mark_finished()
            self._notify(self.reporter.target_failed, target)
            self._fail(target)
            return

        if not target.has_command:
            target.mark_started()
            target.mark_finished()
            target.exit_code = 0
            target.state = TargetState.DONE
            target.reason = "no_command"
            self._notify(self.reporter.target_no_command, target)
            self._release_dependents(target)
            return

        if not self.cache.should_run(target):
            target.state = TargetState.SKIPPED
            target.reason = "up_to_date"
            self._notify(self.reporter.target_skipped, target)
            logger.debug("supervisor.target_skipped", target=target_id, hash=target.hash)
            self._release_dependents(target)
            return

        self._runnable.append(target_id)

    def _has_slot(self) -> bool:
        return self.concurrency is None or len(self._running) < self.concurrency

    def _start_runnable(self) -> None:
        while self._runnable and not self._stopping and self._has_slot():
            target = self.graph[self._runnable.popleft()]
            self._executed.add(target.id)
            target.mark_started()

            if self.dry_run:
                target.exit_code = 0
                target.state = TargetState.DONE
                target.reason = "dry_run"
                target.mark_finished()
                self._notify(self.reporter.target_dry_run, target)
                self.cache.commit(target)
                self._release_dependents(target)
                continue

            target.state = TargetState.RUNNING
            self._notify(self.reporter.target_started, target)
            task = asyncio.create_task(self._invoke(target), name=f"run:{target.id}")
            self._running[task] = target.id
            logger.debug("supervisor.target_started", target=target.id, running=len(self._running))

    def _on_exited(self, target_id: str, task: asyncio.Task) -> None:
        target = self.graph[target_id]
        target.mark_finished()
        error = task.exception()
        target.exit_code = task.result() if error is None else INVOCATION_ERROR_EXIT_CODE

        if target.exit_code == 0:
            target.state = TargetState.DONE
            self.cache.commit(target)
            self._notify(self.reporter.target_finished, target)
            logger.debug("supervisor.target_done", target=target_id, duration=target.duration_seconds)
            self._release_dependents(target)
            return

        if target_id in self._invocation_errors:
            target.reason = f"invocation error: {self._invocation_errors[target_id]}"
        target.state = TargetState.FAILED
        self._notify(self.reporter.target_failed, target)
        logger.info("supervisor.target_failed", target=target_id, exit_code=target.exit_code)
        self._fail(target)

    async def _invoke(self, target: Target) -> int:
        output = self._mux.open(target)
        try:
            return await self.runner.invoke(target.script or "", target.cwd, output.stdout, output.stderr)
        except Exception as exc:
            self._invocation_errors[target.id] = str(exc)
            logger.info("supervisor.invocation_error", target=target.id, error=str(exc))
            await output.emit(Stream.STDERR, str(exc).encode())
            return INVOCATION_ERROR_EXIT_CODE
        finally:
            await output.close()

    # ── Completion bookkeeping ───────────────────────────────────────

    def _release_dependents(self, target: Target) -> None:
        for dependent in self.graph.dependents_of(target.id):
            if dependent.state is not TargetState.BLOCKED:
                continue
            if all(dep.state.is_success for dep in self.graph.dependencies_of(dependent.id)):
                self._make_ready(dependent)

    def _notify(self, callback: Callable[..., None], *args: Any) -> None:
        try:
            callback(*args)
        except MonorunError:
            raise
        except Exception as exc:
            raise ReporterError(f"Report sink failed: {exc}", cause=exc) from exc

    def _fail(self, target: Target) -> None:
        target.state = TargetState.FAILED
        for dependent in self.graph.transitive_dependents(target.id):
            if dependent.state.is_terminal or dependent.state is TargetState.RUNNING:
                continue
            dependent.state = TargetState.FAILED
            dependent.reason = f"dependency {target.id} failed"
            self._notify(self.reporter.dependency_failed, dependent, target.id)

        if self.failure_policy is FailurePolicy.STOP and not self._stopping:
            self._stopping = True
            logger.info("supervisor.stopping_on_failure", target=target.id)

    async def _abort(self) -> None:
        """Cancel every in-flight task; running targets end FAILED."""
        tasks = list(self._hashing) + list(self._running)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        for target_id in self._running.values():
            target = self.graph[target_id]
            target.state = TargetState.FAILED
            target.reason = "aborted"
            target.mark_finished()
        logger.error("supervisor.aborted", in_flight=len(self._running))
        self._hashing.clear()
        self._running.clear()


__all__ = [
    "INVOCATION_ERROR_EXIT_CODE",
    "FailurePolicy",
    "RunRecord",
    "RunSummary",
    "RunSupervisor",
]
