"""
Run session — the single parameterized entry point behind ``build`` and ``test``.

Both verbs do the same thing: find the project, pick the root package,
build the target graph, and let a :class:`RunSupervisor` drive it. They
differ only in the :class:`RunProfile`: default command name, whether
dry runs are allowed, and the failure message.

Example::

    options = RunOptions(cwd=Path.cwd(), parallel=True)
    exit_code = run_profile(BUILD, options, sys.stdout)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import TextIO

from monorun.core.errors import MonorunError, ReporterError
from monorun.core.logging import configure_logging, get_logger
from monorun.core.settings import MonorunSettings, get_settings
from monorun.execution.process import ProcessRunner, ShellRunner
from monorun.orchestration.cache import RunCache, RunCacheStore
from monorun.orchestration.reporter import RunReporter, StreamReport
from monorun.orchestration.supervisor import FailurePolicy, RunSupervisor
from monorun.orchestration.targets import build_target_graph, resolve_root
from monorun.workspace.loader import load_project

logger = get_logger(__name__)


@dataclass(frozen=True)
class RunProfile:
    """What distinguishes one verb from another."""

    name: str
    default_command: str
    allow_dry_run: bool
    failure_message: str


BUILD = RunProfile(name="build", default_command="build", allow_dry_run=True, failure_message="Build failed")
TEST = RunProfile(name="test", default_command="test", allow_dry_run=False, failure_message="Test failed")


@dataclass
class RunOptions:
    """Per-invocation options, mostly straight from CLI flags.

    ``None`` for ``max_concurrency``, ``continue_on_failure`` and
    ``log_level`` means "use the settings value".
    """

    cwd: Path
    command: str | None = None
    target: str | None = None
    json: bool = False
    parallel: bool = True
    interlaced: bool = False
    verbose: bool = False
    dry_run: bool = False
    ignore_cache: bool = False
    max_concurrency: int | None = None
    continue_on_failure: bool | None = None
    log_level: str | None = None


def _apply_overrides(settings: MonorunSettings, options: RunOptions) -> MonorunSettings:
    update: dict = {}
    if options.max_concurrency is not None:
        update["max_concurrency"] = options.max_concurrency
    if options.continue_on_failure is not None:
        update["continue_on_failure"] = options.continue_on_failure
    if options.log_level is not None:
        update["log_level"] = options.log_level.upper()
    return settings.model_copy(update=update) if update else settings


async def execute(
    profile: RunProfile,
    options: RunOptions,
    stdout: TextIO,
    *,
    runner: ProcessRunner | None = None,
    settings: MonorunSettings | None = None,
) -> int:
    """Run *profile* with *options*, reporting to *stdout*.

    Returns:
        The report's exit code: 0 on full success, 1 otherwise.
    """
    configure_logging(level=options.log_level or "WARNING")
    dry_run = options.dry_run and profile.allow_dry_run
    command = options.command or profile.default_command

    report = StreamReport(stdout, json=options.json)
    reporter = RunReporter(report, verbose=options.verbose, dry_run=dry_run)

    try:
        project = load_project(options.cwd)
        settings = _apply_overrides(settings or get_settings(project.root), options)
        configure_logging(level=settings.log_level, json_format=settings.json_logs)

        target_path = options.target
        if target_path and not settings.targeted_builds:
            report.report_warning(f"targeted builds are disabled, ignoring {target_path!r}")
            target_path = None

        root = resolve_root(project, options.cwd, target_path)
        graph = build_target_graph(project, root, command)
        cache = RunCache(
            graph,
            RunCacheStore(settings.cache_path(project.root)),
            settings,
            ignore_cache=options.ignore_cache,
        )
        supervisor = RunSupervisor(
            graph,
            cache,
            runner or ShellRunner(project_root=project.root),
            reporter,
            concurrency=settings.max_concurrency if options.parallel else 1,
            interlaced=options.interlaced,
            dry_run=dry_run,
            failure_policy=FailurePolicy.CONTINUE if settings.continue_on_failure else FailurePolicy.STOP,
            line_buffer=settings.line_buffer,
        )
        logger.info("session.start", verb=profile.name, command=command, root=root.name, targets=len(graph))
        if not await supervisor.run():
            reporter.run_failed(profile.failure_message)
    except MonorunError as exc:
        logger.info("session.fatal", error=exc.to_dict())
        try:
            report.report_fatal(exc.message)
        except ReporterError as sink_error:
            logger.error("session.report_unavailable", error=sink_error.message)
    return report.exit_code()


def run_profile(
    profile: RunProfile,
    options: RunOptions,
    stdout: TextIO,
    *,
    runner: ProcessRunner | None = None,
) -> int:
    """Synchronous wrapper around :func:`execute` for the CLI."""
    return asyncio.run(execute(profile, options, stdout, runner=runner))


__all__ = ["BUILD", "TEST", "RunOptions", "RunProfile", "execute", "run_profile"]
