"""Tests for monorun.core.logging — structlog configuration and context."""

import json

import pytest
import structlog

from monorun.core.logging import LogContext, configure_logging, get_logger


def test_json_logs_go_to_stderr(capsys):
    configure_logging(level="INFO", json_format=True, add_timestamp=False)
    get_logger("monorun.test").info("supervisor.start", targets=3)

    captured = capsys.readouterr()
    assert captured.out == ""
    record = json.loads(captured.err.strip().splitlines()[-1])
    assert record["event"] == "supervisor.start"
    assert record["targets"] == 3
    assert record["level"] == "info"
    assert record["service"] == "monorun"
    assert record["logger"] == "monorun.test"


def test_level_filtering(capsys):
    configure_logging(level="WARNING", json_format=True)
    get_logger("monorun.test").info("hidden")
    assert "hidden" not in capsys.readouterr().err


def test_log_context_binds_and_unbinds(capsys):
    configure_logging(level="INFO", json_format=True, add_timestamp=False)
    log = get_logger("monorun.test")
    with LogContext(command="build", run_id="abc123"):
        log.info("inside")
    log.info("outside")

    lines = [json.loads(line) for line in capsys.readouterr().err.strip().splitlines()]
    inside, outside = lines[-2], lines[-1]
    assert inside["command"] == "build"
    assert inside["run_id"] == "abc123"
    assert "command" not in outside
    assert structlog.contextvars.get_contextvars() == {}


@pytest.mark.asyncio
async def test_log_context_async(capsys):
    configure_logging(level="INFO", json_format=True, add_timestamp=False)
    async with LogContext(run_id="r1"):
        get_logger("monorun.test").info("async_inside")
    record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert record["run_id"] == "r1"


def test_module_level_logger_follows_later_configuration(capsys):
    from monorun.orchestration import supervisor

    configure_logging(level="INFO", json_format=True, add_timestamp=False)
    supervisor.logger.info("supervisor.start", targets=1)

    captured = capsys.readouterr()
    assert captured.out == ""
    record = json.loads(captured.err.strip().splitlines()[-1])
    assert record["event"] == "supervisor.start"
    assert record["logger"] == "monorun.orchestration.supervisor"


def test_get_logger_accepts_a_name_before_configuration():
    structlog.reset_defaults()
    log = get_logger("monorun.early")
    configure_logging(level="ERROR", json_format=True)
    log.info("ignored")
