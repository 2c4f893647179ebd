import io
import sys

import pytest
import structlog

from tinker_runner.logs import default_logging, setup_logging


def test_setup_logging_writes_to_stderr(capsys: pytest.CaptureFixture[str]) -> None:
    setup_logging("info")
    structlog.get_logger(component="test").info("run_started", execution_id="3f2a9c")
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "run_started" in captured.err
    assert "3f2a9c" in captured.err


def test_logging_follows_a_replaced_stderr(monkeypatch: pytest.MonkeyPatch) -> None:
    first = io.StringIO()
    monkeypatch.setattr(sys, "stderr", first)
    setup_logging("info")
    first.close()
    second = io.StringIO()
    monkeypatch.setattr(sys, "stderr", second)
    structlog.get_logger(component="test").info("after_swap")
    assert "after_swap" in second.getvalue()


def test_json_format(capsys: pytest.CaptureFixture[str]) -> None:
    setup_logging("debug", "json")
    structlog.get_logger(component="test").debug("interpreter_resolved", tool="node")
    assert '"event": "interpreter_resolved"' in capsys.readouterr().err


def test_library_default_only_shows_warnings(capsys: pytest.CaptureFixture[str]) -> None:
    structlog.reset_defaults()
    default_logging()
    logger = structlog.get_logger(component="test")
    logger.info("quiet_event")
    logger.warning("loud_event")
    captured = capsys.readouterr()
    assert "quiet_event" not in captured.out + captured.err
    assert "loud_event" in captured.err
    assert captured.out == ""


def test_library_default_keeps_application_config(capsys: pytest.CaptureFixture[str]) -> None:
    setup_logging("debug")
    default_logging()
    structlog.get_logger(component="test").debug("still_visible")
    assert "still_visible" in capsys.readouterr().err
