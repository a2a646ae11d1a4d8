"""
Root Typer application for the monorun CLI.

``build`` and ``test`` are thin wrappers: each turns its flags into
:class:`~monorun.orchestration.session.RunOptions` and hands them, with
its :class:`~monorun.orchestration.session.RunProfile`, to the shared
run session.
"""

from __future__ import annotations

import sys
from pathlib import Path

import typer
from typer import Typer

from monorun import __version__
from monorun.orchestration.session import BUILD, TEST, RunOptions, RunProfile, run_profile

app = Typer(
    name="monorun",
    help="monorun — run package scripts across a multi-package repository in dependency order.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"monorun {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """monorun CLI — cached, concurrent build and test runs."""


# ── Shared runner ────────────────────────────────────────────────────────


def _run(profile: RunProfile, options: RunOptions) -> None:
    code = run_profile(profile, options, sys.stdout)
    if code:
        raise typer.Exit(code=code)


# ── Commands ─────────────────────────────────────────────────────────────


@app.command("build")
def build(
    target: str | None = typer.Argument(None, help="Package directory (or name) to build, with its dependencies."),
    json_out: bool = typer.Option(False, "--json", help="Stream NDJSON records instead of text."),
    build_command: str = typer.Option("build", "--build-command", "-c", help="Script to run in each package."),
    parallel: bool = typer.Option(True, "--parallel/--no-parallel", "-p", help="Run independent packages concurrently."),
    interlaced: bool = typer.Option(False, "--interlaced", "-i", help="Print output lines as they arrive."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Report starts, finishes and no-op packages."),
    dry_run: bool = typer.Option(False, "--dry-run", "-d", help="Show what would run without running it."),
    ignore_cache: bool = typer.Option(False, "--ignore-cache", help="Run every package even if up to date."),
    max_concurrency: int | None = typer.Option(None, "--max-concurrency", "-j", min=1, help="Parallel slot count."),
    continue_on_failure: bool | None = typer.Option(
        None, "--continue-on-failure/--stop-on-failure", help="Keep running independent packages after a failure."
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Diagnostic log level (stderr)."),
) -> None:
    """Run the build script of every package in dependency order."""
    _run(
        BUILD,
        RunOptions(
            cwd=Path.cwd(),
            command=build_command,
            target=target,
            json=json_out,
            parallel=parallel,
            interlaced=interlaced,
            verbose=verbose,
            dry_run=dry_run,
            ignore_cache=ignore_cache,
            max_concurrency=max_concurrency,
            continue_on_failure=continue_on_failure,
            log_level=log_level,
        ),
    )


@app.command("test")
def test(
    target: str | None = typer.Argument(None, help="Package directory (or name) to test, with its dependencies."),
    json_out: bool = typer.Option(False, "--json", help="Stream NDJSON records instead of text."),
    parallel: bool = typer.Option(True, "--parallel/--no-parallel", "-p", help="Run independent packages concurrently."),
    interlaced: bool = typer.Option(False, "--interlaced", "-i", help="Print output lines as they arrive."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Report starts, finishes and no-op packages."),
    ignore_cache: bool = typer.Option(False, "--ignore-cache", help="Run every package even if up to date."),
    max_concurrency: int | None = typer.Option(None, "--max-concurrency", "-j", min=1, help="Parallel slot count."),
    continue_on_failure: bool | None = typer.Option(
        None, "--continue-on-failure/--stop-on-failure", help="Keep running independent packages after a failure."
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Diagnostic log level (stderr)."),
) -> None:
    """Run the test script of every package in dependency order."""
    _run(
        TEST,
        RunOptions(
            cwd=Path.cwd(),
            target=target,
            json=json_out,
            parallel=parallel,
            interlaced=interlaced,
            verbose=verbose,
            ignore_cache=ignore_cache,
            max_concurrency=max_concurrency,
            continue_on_failure=continue_on_failure,
            log_level=log_level,
        ),
    )


__all__ = ["app"]
