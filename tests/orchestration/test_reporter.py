"""Tests for StreamReport and RunReporter."""

import io
import json
from pathlib import Path

import pytest

from monorun.core.errors import ReporterError
from monorun.execution.output import OutputBlock, OutputLine, Stream
from monorun.orchestration.reporter import RecordType, ReportRecord, RunReporter, StreamReport
from monorun.orchestration.supervisor import RunRecord, RunSummary
from monorun.orchestration.targets import Target, TargetState
from monorun.workspace.models import Package


def _target(name="ui", exit_code=None):
    package = Package(name=name, location=f"packages/{name}", cwd=Path("/repo") / name, scripts={"build": "tsc -b"})
    return Target(id=name, package=package, command="build", exit_code=exit_code)


class TestStreamReport:
    def test_json_records(self):
        out = io.StringIO()
        report = StreamReport(out, json=True)
        report.report_info("compiled", "ui")
        report.report_skip("skipped, up to date", "core")
        report.report_fatal("Build failed")

        lines = [json.loads(line) for line in out.getvalue().splitlines()]
        assert lines == [
            {"type": "info", "target": "ui", "data": "compiled"},
            {"type": "skip", "target": "core", "data": "skipped, up to date"},
            {"type": "fatal", "target": None, "data": "Build failed"},
        ]

    def test_text_records_are_prefixed(self):
        out = io.StringIO()
        report = StreamReport(out)
        report.report_info("compiled", "ui")
        report.report_info("header", "ui", grouped=True)
        report.report_warning("careful")
        text = out.getvalue().splitlines()
        assert text == ["[ui] compiled", "header", "careful"]

    def test_exit_code_follows_fatal(self):
        report = StreamReport(io.StringIO())
        report.report_error("stderr noise", "ui")
        assert report.exit_code() == 0
        assert not report.has_fatal
        report.report_fatal("failed with exit code 1", "ui")
        assert report.exit_code() == 1
        assert report.has_fatal

    def test_broken_stream_raises_reporter_error(self):
        class ClosedPipe(io.StringIO):
            def write(self, data):
                raise BrokenPipeError("stdout closed")

        report = StreamReport(ClosedPipe(), json=True)
        with pytest.raises(ReporterError, match="stdout closed"):
            report.report_fatal("Build failed")
        assert report.exit_code() == 1

    def test_records_are_kept(self):
        report = StreamReport(io.StringIO(), json=True)
        report.report(ReportRecord(RecordType.WARNING, "w"))
        assert report.records == [ReportRecord(RecordType.WARNING, "w")]


class TestRunReporter:
    def test_stderr_lines_are_errors(self):
        report = StreamReport(io.StringIO(), json=True)
        reporter = RunReporter(report)
        reporter.on_line(OutputLine("ui", Stream.STDOUT, "ok"))
        reporter.on_line(OutputLine("ui", Stream.STDERR, "warn"))
        assert [r.type for r in report.records] == [RecordType.INFO, RecordType.ERROR]
        assert report.exit_code() == 0

    def test_block_has_header_and_grouped_lines(self):
        report = StreamReport(io.StringIO())
        reporter = RunReporter(report)
        reporter.on_block(
            OutputBlock("ui", (OutputLine("ui", Stream.STDOUT, "a"), OutputLine("ui", Stream.STDOUT, "b")))
        )
        assert [r.data for r in report.records] == ["── ui ──", "a", "b"]
        assert all(r.grouped and r.target == "ui" for r in report.records)

    def test_json_block_has_no_header(self):
        out = io.StringIO()
        reporter = RunReporter(StreamReport(out, json=True))
        reporter.on_block(OutputBlock("ui", (OutputLine("ui", Stream.STDOUT, "a"),)))
        assert [json.loads(line) for line in out.getvalue().splitlines()] == [
            {"type": "info", "target": "ui", "data": "a"}
        ]

    def test_verbose_only_events(self):
        quiet = StreamReport(io.StringIO(), json=True)
        RunReporter(quiet).target_started(_target())
        RunReporter(quiet).target_no_command(_target())
        assert quiet.records == []

        loud = StreamReport(io.StringIO(), json=True)
        target = _target()
        target.mark_started()
        target.mark_finished()
        reporter = RunReporter(loud, verbose=True)
        reporter.target_started(target)
        reporter.target_finished(target)
        assert loud.records[0].data == "running build: tsc -b"
        assert loud.records[1].data.startswith("finished in ")

    def test_failure_events(self):
        report = StreamReport(io.StringIO(), json=True)
        reporter = RunReporter(report)
        reporter.target_failed(_target("ui", exit_code=2))
        reporter.dependency_failed(_target("app"), "ui")
        assert report.records[0] == ReportRecord(RecordType.FATAL, "failed with exit code 2", "ui")
        assert report.records[1] == ReportRecord(RecordType.ERROR, "not run, dependency ui failed", "app")

    def test_summary_line(self):
        summary = RunSummary(
            run_id="r1",
            records=[
                RunRecord("a", TargetState.DONE, 0, 0.1, True),
                RunRecord("b", TargetState.SKIPPED, None, None, False, "up_to_date"),
                RunRecord("c", TargetState.FAILED, 1, 0.1, True),
                RunRecord("d", TargetState.READY, None, None, False),
            ],
        )
        report = StreamReport(io.StringIO(), json=True)
        RunReporter(report, dry_run=True).summary(summary)
        assert report.records[-1].data == "dry run: 2 ran, 1 skipped, 1 failed, 1 not attempted"
        assert summary.succeeded is False
        assert summary.failed_targets == ["c"]
