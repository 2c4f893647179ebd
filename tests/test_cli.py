from __future__ import annotations

import io
import json
from pathlib import Path

import pytest
from rich.console import Console

from tinker_runner import (
    EngineSettings,
    ExecutionCancelled,
    ExecutionError,
    ExecutionResult,
    LogEntry,
    ProbeResult,
)
from tkr import cli


class _FakeEngine:
    result = ExecutionResult()
    raise_cancelled = False

    def __init__(self, settings: EngineSettings) -> None:
        self.settings = settings
        self.requests = []
        self.cancelled_all = False

    async def submit(self, request):
        self.requests.append(request)
        if self.raise_cancelled:
            raise ExecutionCancelled(request.execution_id)
        return self.result

    def cancel_all(self) -> list[str]:
        self.cancelled_all = True
        return []


@pytest.fixture
def fake_engine(monkeypatch: pytest.MonkeyPatch) -> list[_FakeEngine]:
    created: list[_FakeEngine] = []

    def _build(settings: EngineSettings) -> _FakeEngine:
        engine = _FakeEngine(settings)
        created.append(engine)
        return engine

    monkeypatch.setattr(_FakeEngine, "result", ExecutionResult())
    monkeypatch.setattr(_FakeEngine, "raise_cancelled", False)
    monkeypatch.setattr(cli, "build_engine", _build)
    return created


def _snippet(tmp_path: Path, name: str, code: str) -> str:
    path = tmp_path / name
    path.write_text(code, encoding="utf-8")
    return str(path)


def test_cli_run_success(tmp_path: Path, fake_engine, capsys: pytest.CaptureFixture[str]) -> None:
    _FakeEngine.result = ExecutionResult(
        output=(LogEntry("log", "hello-from-snippet"),),
        probes=(ProbeResult(1, "total", 41),),
        exit_code=0,
    )
    file = _snippet(tmp_path, "scratch.js", "const total = 41 // $ total\n")
    code = cli.main(["run", file, "--timeout", "5"])
    output = capsys.readouterr().out
    assert code == 0
    assert "hello-from-snippet" in output
    assert "total" in output
    request = fake_engine[0].requests[0]
    assert request.language == "javascript"
    assert [comment.expression for comment in request.magic_comments] == ["total"]
    assert fake_engine[0].settings.timeout_seconds == 5


def test_cli_run_reports_errors(tmp_path: Path, fake_engine, capsys: pytest.CaptureFixture[str]) -> None:
    _FakeEngine.result = ExecutionResult(error=ExecutionError("boom happened", name="ValueError"), exit_code=1)
    file = _snippet(tmp_path, "scratch.py", "raise ValueError('boom happened')\n")
    code = cli.main(["run", file])
    output = capsys.readouterr().out
    assert code == 1
    assert "boom happened" in output
    assert "ValueError" in output


def test_cli_run_json(tmp_path: Path, fake_engine, capsys: pytest.CaptureFixture[str]) -> None:
    _FakeEngine.result = ExecutionResult(output=(LogEntry("log", "42"),), value=None, has_value=True, exit_code=0)
    file = _snippet(tmp_path, "scratch.php", "<?php\n$x = 42;\n")
    code = cli.main(["run", file, "--json", "--no-auto-log"])
    data = json.loads(capsys.readouterr().out)
    assert code == 0
    assert data["output"] == [{"kind": "log", "text": "42"}]
    assert "value" in data and data["value"] is None
    assert data["error"] is None
    assert fake_engine[0].settings.auto_log is False


def test_cli_run_cancelled(tmp_path: Path, fake_engine, capsys: pytest.CaptureFixture[str]) -> None:
    _FakeEngine.raise_cancelled = True
    file = _snippet(tmp_path, "scratch.py", "while True: pass\n")
    code = cli.main(["run", file])
    output = capsys.readouterr().out
    assert code == 130
    assert "Execution cancelled" in output
    assert fake_engine[0].cancelled_all is True


def test_cli_run_reads_stdin(fake_engine, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("sys.stdin", io.StringIO("print(1)\n"))
    assert cli.main(["run", "-", "--language", "py"]) == 0
    assert fake_engine[0].requests[0].language == "python"


@pytest.mark.parametrize(
    ("argv", "message"),
    [
        (["run", "missing.py"], "No such file"),
        (["run", "-"], "--language is required"),
        (["run", "notes.txt"], "Cannot infer the language"),
        (["run", "scratch.py", "--language", "cobol"], "Unsupported language"),
    ],
)
def test_cli_run_input_errors(argv, message, fake_engine, capsys: pytest.CaptureFixture[str]) -> None:
    code = cli.main(argv)
    output = capsys.readouterr().out
    assert code == 2
    assert message in output
    assert fake_engine == []


def test_cli_run_rejects_negative_timeout(tmp_path: Path, fake_engine, capsys: pytest.CaptureFixture[str]) -> None:
    file = _snippet(tmp_path, "scratch.py", "print(1)\n")
    assert cli.main(["run", file, "--timeout", "-1"]) == 2
    assert "timeout_seconds" in capsys.readouterr().out


def test_cli_probes(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    file = _snippet(tmp_path, "scratch.js", "const cart = [1, 2] // $ cart.length\n")
    code = cli.main(["probes", file])
    output = capsys.readouterr().out
    assert code == 0
    assert "Magic Comments" in output
    assert "cart.length" in output


def test_cli_probes_none_found(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    file = _snippet(tmp_path, "scratch.py", "x = 1\n")
    assert cli.main(["probes", file]) == 0
    assert "No magic comments found." in capsys.readouterr().out


def test_cli_transform(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    file = _snippet(tmp_path, "scratch.py", "x = 1\nx\n")
    assert cli.main(["transform", file]) == 0
    assert "__tinker_display__(x)" in capsys.readouterr().out


def test_cli_which_uses_settings_overrides(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    config = tmp_path / "settings.toml"
    config.write_text(
        '[settings.interpreters]\npython3 = "/custom/py3"\npip3 = "/custom/pip3"\n',
        encoding="utf-8",
    )
    code = cli.main(["which", "python", "--settings", str(config)])
    output = capsys.readouterr().out
    assert code == 0
    assert "/custom/py3" in output
    assert "/custom/pip3" in output


def test_cli_which_unknown_language(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["which", "cobol"]) == 2
    assert "Unsupported language: cobol" in capsys.readouterr().out


def test_cli_languages(monkeypatch: pytest.MonkeyPatch) -> None:
    buffer = io.StringIO()
    monkeypatch.setattr(cli, "_CONSOLE", Console(file=buffer, width=200))
    code = cli.main(["languages"])
    output = buffer.getvalue()
    assert code == 0
    assert "Node.js" in output
    assert "php" in output
    assert "python" in output


def test_cli_top_level_help_examples(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["--help"])
    output = capsys.readouterr().out
    assert exc.value.code == 0
    assert "Quick Examples:" in output
    assert "tkr run scratch.js" in output


def test_cli_print_help_writes_to_requested_stream(capsys: pytest.CaptureFixture[str]) -> None:
    parser = cli.build_parser()
    buffer = io.StringIO()
    parser.print_help(file=buffer)
    assert capsys.readouterr().out == ""
    help_text = buffer.getvalue()
    assert "Usage:" in help_text
    assert "tinker-runner CLI" in help_text
