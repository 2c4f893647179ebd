import pytest

from tinker_runner.execution.protocol import parse_result
from tinker_runner.instrument.python_harness import main

START = "__START__"
END = "__END__"


def _run(capsys: pytest.CaptureFixture[str], code: str, probes: list[dict] | None = None):
    exit_code = main(code, probes or [], START, END)
    captured = capsys.readouterr()
    return parse_result(captured.out, "", START, END, exit_code=exit_code)


def test_prints_become_log_entries(capsys: pytest.CaptureFixture[str]) -> None:
    result = _run(capsys, 'print("a")\nprint("b\\nc")')
    assert [(entry.kind, entry.text) for entry in result.output] == [("log", "a"), ("log", "b"), ("log", "c")]
    assert result.ok
    assert result.exit_code == 0
    assert not result.has_value


def test_trailing_expression_is_the_value(capsys: pytest.CaptureFixture[str]) -> None:
    result = _run(capsys, "x = 41\nx + 1")
    assert result.has_value
    assert result.value == 42


def test_print_tail_has_no_value(capsys: pytest.CaptureFixture[str]) -> None:
    result = _run(capsys, "print(1)")
    assert not result.has_value
    assert result.output[0].text == "1"


def test_exception_keeps_earlier_output(capsys: pytest.CaptureFixture[str]) -> None:
    result = _run(capsys, 'print("a")\nraise ValueError("boom")\nprint("b")', [{"line": 1, "expression": "1"}])
    assert [entry.text for entry in result.output] == ["a"]
    assert result.error.message == "boom"
    assert result.error.name == "ValueError"
    assert '"<snippet>", line 2' in result.error.stack
    assert result.exit_code == 1
    assert result.probes == ()


def test_syntax_error(capsys: pytest.CaptureFixture[str]) -> None:
    result = _run(capsys, "def broken(:\n    pass")
    assert result.error.name == "SyntaxError"
    assert result.exit_code == 1
    assert result.output == ()


def test_system_exit(capsys: pytest.CaptureFixture[str]) -> None:
    clean = _run(capsys, 'print("bye")\nraise SystemExit(0)')
    assert clean.ok
    assert clean.exit_code == 0
    failed = _run(capsys, "import sys\nsys.exit(3)")
    assert failed.exit_code == 3
    assert failed.error.name == "SystemExit"


def test_probes(capsys: pytest.CaptureFixture[str]) -> None:
    probes = [
        {"line": 1, "expression": "x"},
        {"line": 2, "expression": "missing"},
        {"line": 3, "expression": "object()"},
    ]
    result = _run(capsys, "x = [1, 2]", probes)
    assert result.probes[0].value == [1, 2]
    assert result.probes[0].error is None
    assert "missing" in result.probes[1].error
    assert result.probes[2].value == "[Non-serializable: object]"


def test_stderr_and_warnings_are_captured_in_order(capsys: pytest.CaptureFixture[str]) -> None:
    code = 'import sys, warnings\nprint("one")\nwarnings.warn("careful")\nprint("oops", file=sys.stderr)'
    result = _run(capsys, code)
    assert [(entry.kind, entry.text) for entry in result.output] == [
        ("log", "one"),
        ("warn", "UserWarning: careful"),
        ("error", "oops"),
    ]


@pytest.mark.parametrize(
    ("code", "placeholder"),
    [('float("nan")', "[Non-serializable: float]"), ("a = []\na.append(a)\na", "[Non-serializable: list]")],
)
def test_unserializable_values_get_placeholders(
    capsys: pytest.CaptureFixture[str], code: str, placeholder: str
) -> None:
    result = _run(capsys, code)
    assert result.value == placeholder


def test_display_hook_skips_none(capsys: pytest.CaptureFixture[str]) -> None:
    result = _run(capsys, "xs = []\n__tinker_display__(xs.append(1))\n__tinker_display__(xs)")
    assert [entry.text for entry in result.output] == ["[1]"]
    assert not result.has_value


@pytest.mark.parametrize(
    ("code", "name"),
    [
        ('print("a")\nraise KeyboardInterrupt("stop")', "KeyboardInterrupt"),
        ('class Halt(BaseException):\n    pass\nprint("a")\nraise Halt("stop")', "Halt"),
    ],
)
def test_base_exceptions_still_emit_the_payload(capsys: pytest.CaptureFixture[str], code: str, name: str) -> None:
    result = _run(capsys, code)
    assert [entry.text for entry in result.output] == ["a"]
    assert result.error.name == name
    assert result.error.message == "stop"
    assert result.exit_code == 1


def test_snippet_does_not_inherit_harness_future_flags(capsys: pytest.CaptureFixture[str]) -> None:
    check = "f.__annotations__['x'] is int"
    result = _run(capsys, f"def f(x: int):\n    pass\n{check}", [{"line": 1, "expression": check}])
    assert result.value is True
    assert result.probes[0].value is True
