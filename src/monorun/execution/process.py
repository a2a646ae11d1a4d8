"""Process runner — spawns one package script and streams its output.

The supervisor depends only on the :class:`ProcessRunner` protocol::

    exit_code = await runner.invoke(command, cwd, stdout_sink, stderr_sink)

Contract:

- returns the process exit code;
- may raise instead of returning (the supervisor treats that as exit
  code 2);
- always closes both sinks before returning or raising.

:class:`ShellRunner` is the default implementation. It runs the package's
script line through the platform shell, the way package managers run
``scripts`` entries, with ``node_modules/.bin`` of the package and of the
project root prepended to ``PATH``.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Protocol

from monorun.core.errors import InvocationError
from monorun.core.logging import get_logger
from monorun.execution.output import LineSink

logger = get_logger(__name__)

_READ_SIZE = 1 << 16


class ProcessRunner(Protocol):
    """Runs one command in a directory, feeding its output to two sinks."""

    async def invoke(self, command: str, cwd: Path, stdout: LineSink, stderr: LineSink) -> int: ...


class ShellRunner:
    """Runs script command lines as local shell subprocesses.

    Args:
        project_root: Its ``node_modules/.bin`` is added to ``PATH``.
        env: Extra environment variables for every process.
        inherit_env: If True, child processes inherit the current
            environment (with *env* overlaid).
        kill_timeout_seconds: Seconds to wait after SIGTERM before
            sending SIGKILL when an invocation is cancelled.
    """

    def __init__(
        self,
        *,
        project_root: Path | None = None,
        env: dict[str, str] | None = None,
        inherit_env: bool = True,
        kill_timeout_seconds: float = 5.0,
    ) -> None:
        self._project_root = project_root
        self._env = dict(env or {})
        self._inherit_env = inherit_env
        self._kill_timeout = kill_timeout_seconds

    def _build_env(self, cwd: Path) -> dict[str, str]:
        """Build environment dict for the subprocess."""
        env = dict(os.environ) if self._inherit_env else {}
        env.update(self._env)

        bin_dirs = [cwd / "node_modules" / ".bin"]
        if self._project_root is not None and self._project_root != cwd:
            bin_dirs.append(self._project_root / "node_modules" / ".bin")
        path = os.pathsep.join(str(d) for d in bin_dirs)
        env["PATH"] = f"{path}{os.pathsep}{env['PATH']}" if env.get("PATH") else path
        env["MONORUN_PACKAGE_DIR"] = str(cwd)
        return env

    async def invoke(self, command: str, cwd: Path, stdout: LineSink, stderr: LineSink) -> int:
        """Run *command* in *cwd* until it exits; returns its exit code.

        Raises:
            InvocationError: The process could not be started.
        """
        try:
            try:
                process = await asyncio.create_subprocess_shell(
                    command,
                    cwd=str(cwd),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    env=self._build_env(cwd),
                )
            except OSError as exc:
                raise InvocationError(f"Failed to start {command!r}: {exc}", cause=exc).with_context(
                    command=command, cwd=str(cwd)
                ) from exc

            logger.debug("process.started", pid=process.pid, command=command, cwd=str(cwd))
            try:
                await asyncio.gather(
                    self._forward(process.stdout, stdout),
                    self._forward(process.stderr, stderr),
                )
                exit_code = await process.wait()
            except BaseException:
                await self._terminate(process)
                raise

            logger.debug("process.exited", pid=process.pid, exit_code=exit_code)
            return exit_code
        finally:
            await stdout.close()
            await stderr.close()

    async def _forward(self, reader: asyncio.StreamReader | None, sink: LineSink) -> None:
        if reader is None:
            return
        while True:
            chunk = await reader.read(_READ_SIZE)
            if not chunk:
                break
            await sink.write(chunk)

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """SIGTERM, then SIGKILL after the kill timeout."""
        if process.returncode is not None:
            return
        try:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=self._kill_timeout)
            except TimeoutError:
                process.kill()
                await process.wait()
        except ProcessLookupError:
            pass  # Process already gone
        logger.warning("process.terminated", pid=process.pid, exit_code=process.returncode)


__all__ = ["ProcessRunner", "ShellRunner"]
