"""
Output Multiplexer — routes each target's stdout/stderr lines to the reporter.

WHY
───
Several package scripts run at once. Their output must reach a single
report without corrupting it: either line by line as it arrives
(*interlaced*) or as one contiguous block per target once its process
has exited (*buffered*).

ARCHITECTURE
────────────
::

    invocation task                          pump task
    ───────────────                          ─────────
    LineSink.write(bytes)
      └─ split into lines
           ├─ interlaced: queue.put(OutputLine) ──┐
           └─ buffered:   target.output.append    │    bounded
    TargetOutput.close()                          ├──▶ asyncio.Queue ──▶ handler.on_line()
      └─ buffered: queue.put(OutputBlock) ────────┘                    handler.on_block()

The queue is bounded, so a slow reporter applies backpressure to the
invocation tasks instead of growing memory. A single pump consumes the
queue, which is what keeps a buffered block contiguous.

A handler exception does not wedge producers: the pump records it in
:attr:`OutputMultiplexer.error` and keeps draining, and the supervisor
treats the recorded error as fatal.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from monorun.core.errors import ReporterError
from monorun.core.logging import get_logger

if TYPE_CHECKING:
    from monorun.orchestration.targets import Target

logger = get_logger(__name__)


class Stream(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True)
class OutputLine:
    """One decoded line of a target's process output."""

    target: str
    stream: Stream
    text: str


@dataclass(frozen=True)
class OutputBlock:
    """All buffered lines of one target, flushed after its process exits."""

    target: str
    lines: tuple[OutputLine, ...]


class OutputHandler(Protocol):
    """Consumer of multiplexed output (the reporter adapter)."""

    def on_line(self, line: OutputLine) -> None: ...

    def on_block(self, block: OutputBlock) -> None: ...


_STOP = object()


class LineSink:
    """Byte sink for one stream of one target; emits completed lines."""

    def __init__(self, output: TargetOutput, stream: Stream) -> None:
        self._output = output
        self.stream = stream
        # fragments of the current unterminated line
        self._pending: list[bytes] = []
        self.closed = False

    async def write(self, data: bytes) -> None:
        if self.closed:
            raise ValueError(f"{self.stream.value} sink of {self._output.target.id} is closed")
        *complete, tail = data.split(b"\n")
        for raw in complete:
            if self._pending:
                self._pending.append(raw)
                raw = b"".join(self._pending)
                self._pending = []
            await self._output.emit(self.stream, raw)
        if tail:
            self._pending.append(tail)

    async def close(self) -> None:
        """Flush an unterminated final line; idempotent."""
        if self.closed:
            return
        self.closed = True
        if self._pending:
            pending, self._pending = b"".join(self._pending), []
            await self._output.emit(self.stream, pending)


class TargetOutput:
    """The pair of sinks handed to the process runner for one target."""

    def __init__(self, multiplexer: OutputMultiplexer, target: Target) -> None:
        self._multiplexer = multiplexer
        self.target = target
        self.stdout = LineSink(self, Stream.STDOUT)
        self.stderr = LineSink(self, Stream.STDERR)
        self._flushed = False

    async def emit(self, stream: Stream, raw: bytes) -> None:
        text = raw.decode("utf-8", errors="replace").rstrip("\r")
        line = OutputLine(target=self.target.id, stream=stream, text=text)
        if self._multiplexer.interlaced:
            await self._multiplexer.publish(line)
        else:
            self.target.output.append(line)

    @property
    def closed(self) -> bool:
        return self.stdout.closed and self.stderr.closed

    async def close(self) -> None:
        """Close both sinks and, in buffered mode, flush the block once."""
        await self.stdout.close()
        await self.stderr.close()
        if not self._multiplexer.interlaced and not self._flushed:
            self._flushed = True
            if self.target.output:
                await self._multiplexer.publish(
                    OutputBlock(target=self.target.id, lines=tuple(self.target.output))
                )


class OutputMultiplexer:
    """Owns the bounded line channel and the pump that drains it.

    Use as an async context manager::

        async with OutputMultiplexer(handler, interlaced=False) as mux:
            output = mux.open(target)
            await runner.invoke(script, cwd, output.stdout, output.stderr)
            await output.close()
    """

    def __init__(self, handler: OutputHandler, *, interlaced: bool = False, maxsize: int = 256) -> None:
        self.handler = handler
        self.interlaced = interlaced
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._pump: asyncio.Task | None = None
        self.error: BaseException | None = None

    def open(self, target: Target) -> TargetOutput:
        return TargetOutput(self, target)

    async def publish(self, item: OutputLine | OutputBlock) -> None:
        await self._queue.put(item)

    async def start(self) -> None:
        if self._pump is None:
            self._pump = asyncio.create_task(self._run(), name="monorun-output-pump")

    async def stop(self) -> None:
        """Drain everything published so far, then stop the pump."""
        if self._pump is None:
            return
        if not self._pump.done():
            await self._queue.put(_STOP)
            await self._pump
        self._pump = None

    def raise_if_failed(self) -> None:
        if isinstance(self.error, ReporterError):
            raise self.error
        if self.error is not None:
            raise ReporterError(f"Report sink failed: {self.error}", cause=self.error) from self.error

    async def _run(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item is _STOP:
                    return
                if self.error is not None:
                    continue
                try:
                    if isinstance(item, OutputBlock):
                        self.handler.on_block(item)
                    else:
                        self.handler.on_line(item)
                except Exception as exc:
                    self.error = exc
                    logger.error("output.handler_failed", error=str(exc))
            finally:
                self._queue.task_done()

    async def __aenter__(self) -> OutputMultiplexer:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None and self._pump is not None:
            self._pump.cancel()
            try:
                await self._pump
            except asyncio.CancelledError:
                pass
            self._pump = None
            return
        await self.stop()


__all__ = [
    "LineSink",
    "OutputBlock",
    "OutputHandler",
    "OutputLine",
    "OutputMultiplexer",
    "Stream",
    "TargetOutput",
]
