"""
Reporter — turns supervisor and output events into report records.

Two layers:

:class:`StreamReport`
    The sink. Accepts discrete :class:`ReportRecord` values and renders
    them either as human-readable text through ``rich`` or as NDJSON, one
    object per line. Its :meth:`~StreamReport.exit_code` is non-zero once
    a fatal record has been reported.

:class:`RunReporter`
    The adapter. Implements the output-multiplexer handler interface
    (``on_line`` / ``on_block``) and the supervisor's lifecycle callbacks,
    translating each into records.

NDJSON record shape::

    {"type": "info", "target": "@acme/ui", "data": "compiled 12 files"}
    {"type": "skip", "target": "@acme/core", "data": "skipped, up to date"}
    {"type": "fatal", "target": null, "data": "Build failed"}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, TextIO

from rich.console import Console
from rich.text import Text

from monorun.core.errors import ReporterError
from monorun.execution.output import OutputBlock, OutputLine, Stream

if TYPE_CHECKING:
    from monorun.orchestration.supervisor import RunSummary
    from monorun.orchestration.targets import Target


class RecordType(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SKIP = "skip"
    FATAL = "fatal"


_STYLES: dict[RecordType, str] = {
    RecordType.INFO: "",
    RecordType.WARNING: "yellow",
    RecordType.ERROR: "red",
    RecordType.SKIP: "dim",
    RecordType.FATAL: "bold red",
}


@dataclass(frozen=True)
class ReportRecord:
    """One report event.

    ``grouped`` marks lines rendered under a buffered-output header, which
    the human renderer prints without the per-line target prefix.
    """

    type: RecordType
    data: str
    target: str | None = None
    grouped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "target": self.target, "data": self.data}


class StreamReport:
    """Report sink writing human text or NDJSON to a text stream.

    Args:
        stdout: Destination stream.
        json: Emit NDJSON records instead of formatted text.
        console: Optional preconfigured ``rich`` console for human output.
    """

    def __init__(self, stdout: TextIO, *, json: bool = False, console: Console | None = None) -> None:
        self._stdout = stdout
        self.json = json
        self._console = console or Console(file=stdout, highlight=False, soft_wrap=True)
        self.records: list[ReportRecord] = []
        self._fatal = False

    def report(self, record: ReportRecord) -> None:
        self.records.append(record)
        if record.type is RecordType.FATAL:
            self._fatal = True
        try:
            self._render(record)
        except (OSError, ValueError) as exc:
            raise ReporterError(f"Report sink failed: {exc}", cause=exc) from exc

    def _render(self, record: ReportRecord) -> None:
        if self.json:
            self._stdout.write(json.dumps(record.to_dict()) + "\n")
            self._stdout.flush()
            return
        text = Text()
        if record.target and not record.grouped:
            text.append(f"[{record.target}] ", style="cyan")
        text.append(record.data, style=_STYLES[record.type])
        self._console.print(text)

    def report_info(self, data: str, target: str | None = None, *, grouped: bool = False) -> None:
        self.report(ReportRecord(RecordType.INFO, data, target, grouped))

    def report_warning(self, data: str, target: str | None = None) -> None:
        self.report(ReportRecord(RecordType.WARNING, data, target))

    def report_error(self, data: str, target: str | None = None, *, grouped: bool = False) -> None:
        self.report(ReportRecord(RecordType.ERROR, data, target, grouped))

    def report_skip(self, data: str, target: str | None = None) -> None:
        self.report(ReportRecord(RecordType.SKIP, data, target))

    def report_fatal(self, data: str, target: str | None = None) -> None:
        self.report(ReportRecord(RecordType.FATAL, data, target))

    @property
    def has_fatal(self) -> bool:
        return self._fatal

    def exit_code(self) -> int:
        return 1 if self._fatal else 0


class RunReporter:
    """Adapter from supervisor/output events to :class:`StreamReport` records."""

    def __init__(self, report: StreamReport, *, verbose: bool = False, dry_run: bool = False) -> None:
        self.report = report
        self.verbose = verbose
        self.dry_run = dry_run

    # ── Output multiplexer handler ───────────────────────────────────

    def on_line(self, line: OutputLine, *, grouped: bool = False) -> None:
        if line.stream is Stream.STDERR:
            self.report.report_error(line.text, line.target, grouped=grouped)
        else:
            self.report.report_info(line.text, line.target, grouped=grouped)

    def on_block(self, block: OutputBlock) -> None:
        if not self.report.json:
            self.report.report_info(f"── {block.target} ──", block.target, grouped=True)
        for line in block.lines:
            self.on_line(line, grouped=True)

    # ── Supervisor lifecycle ─────────────────────────────────────────

    def target_started(self, target: Target) -> None:
        if self.verbose:
            self.report.report_info(f"running {target.command}: {target.script}", target.id)

    def target_dry_run(self, target: Target) -> None:
        self.report.report_info(f"would run {target.command}: {target.script}", target.id)

    def target_no_command(self, target: Target) -> None:
        if self.verbose:
            self.report.report_info(f"no {target.command} script, nothing to do", target.id)

    def target_skipped(self, target: Target) -> None:
        self.report.report_skip("skipped, up to date", target.id)

    def target_finished(self, target: Target) -> None:
        if self.verbose:
            duration = target.duration_seconds or 0.0
            self.report.report_info(f"finished in {duration:.2f}s", target.id)

    def target_failed(self, target: Target) -> None:
        if target.exit_code is None:
            self.report.report_fatal(f"failed: {target.reason}", target.id)
            return
        self.report.report_fatal(f"failed with exit code {target.exit_code}", target.id)

    def dependency_failed(self, target: Target, dependency: str) -> None:
        self.report.report_error(f"not run, dependency {dependency} failed", target.id)

    def summary(self, summary: RunSummary) -> None:
        prefix = "dry run: " if self.dry_run else ""
        self.report.report_info(
            f"{prefix}{summary.ran} ran, {summary.skipped} skipped, "
            f"{summary.failed} failed, {summary.not_attempted} not attempted"
        )

    def run_failed(self, message: str) -> None:
        self.report.report_fatal(message)


__all__ = ["RecordType", "ReportRecord", "RunReporter", "StreamReport"]
