"""
Monorun execution — spawning package scripts and multiplexing their output.

    ProcessRunner / ShellRunner  ─ invoke(command, cwd, stdout, stderr) -> exit code
    OutputMultiplexer            ─ bounded line channel, interlaced or buffered
"""

from monorun.execution.output import (
    LineSink,
    OutputBlock,
    OutputHandler,
    OutputLine,
    OutputMultiplexer,
    Stream,
    TargetOutput,
)
from monorun.execution.process import ProcessRunner, ShellRunner

__all__ = [
    "LineSink",
    "OutputBlock",
    "OutputHandler",
    "OutputLine",
    "OutputMultiplexer",
    "ProcessRunner",
    "ShellRunner",
    "Stream",
    "TargetOutput",
]
