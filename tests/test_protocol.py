import json
import time

import pytest

from tinker_runner import ExecutionResult, LogEntry, MagicComment, ProbeResult, parse_result
from tinker_runner.execution.protocol import NO_OUTPUT_MESSAGE, find_payload_object, reconcile_probes
from tinker_runner.execution.types import ExecutionError

START = "__TINKER_JS_RESULT_START__"
END = "__TINKER_JS_RESULT_END__"


def _framed(payload: dict) -> str:
    return f"{START}\n{json.dumps(payload)}\n{END}\n"


def test_sentinel_payload_is_decoded() -> None:
    payload = {
        "output": [{"kind": "log", "text": "42"}, {"kind": "warn", "text": "careful"}],
        "value": {"a": 1},
        "error": None,
        "probes": [{"line": 1, "expression": "x", "value": 41}],
    }
    result = parse_result("echoed 42\n" + _framed(payload), "", START, END, exit_code=0)
    assert result.output == (LogEntry("log", "42"), LogEntry("warn", "careful"))
    assert result.has_value is True
    assert result.value == {"a": 1}
    assert result.error is None
    assert result.probes == (ProbeResult(1, "x", 41),)
    assert result.exit_code == 0


def test_missing_value_key_means_undefined() -> None:
    result = parse_result(_framed({"output": [], "error": None}), "", START, END)
    assert result.has_value is False
    assert "value" not in result.to_dict()


def test_null_value_is_kept() -> None:
    result = parse_result(_framed({"output": [], "error": None, "value": None}), "", START, END)
    assert result.has_value is True
    assert result.to_dict()["value"] is None


def test_error_object_is_decoded() -> None:
    payload = {"output": [], "error": {"message": "boom", "stack": "Error: boom\n  at x", "name": "Error"}}
    result = parse_result(_framed(payload), "", START, END)
    assert result.error == ExecutionError(message="boom", stack="Error: boom\n  at x", name="Error")
    assert not result.ok


def test_stderr_becomes_error_when_no_sentinel() -> None:
    result = parse_result("", "SyntaxError: Unexpected token\n", START, END, exit_code=1)
    assert result.output == ()
    assert result.error is not None
    assert result.error.message == "SyntaxError: Unexpected token"


def test_stderr_is_ignored_when_payload_is_valid() -> None:
    result = parse_result(_framed({"output": [], "error": None}), "(node) warning", START, END)
    assert result.error is None


def test_payload_recovered_from_noise() -> None:
    stdout = 'garbage {"output": [{"kind": "log", "text": "hi"}], "error": null} trailing'
    result = parse_result(stdout, "", START, END)
    assert result.output == (LogEntry("log", "hi"),)
    assert result.error is None


def test_truncated_frame_falls_back_to_balanced_object() -> None:
    stdout = f'{START}\n{{"output": [], "error": {{"message": "x"}}}}'
    result = parse_result(stdout, "", START, END)
    assert result.error is not None
    assert result.error.message == "x"


def test_raw_stdout_becomes_single_log_entry() -> None:
    result = parse_result("hello world\n", "", START, END)
    assert result.output == (LogEntry("log", "hello world"),)
    assert result.error is None


def test_nothing_at_all_is_a_generic_error() -> None:
    result = parse_result("", "", START, END)
    assert result.output == ()
    assert result.error is not None
    assert result.error.message == NO_OUTPUT_MESSAGE


def test_legacy_field_spellings() -> None:
    payload = {
        "output": [{"type": "warn", "args": ["a", 1]}, "plain", {"kind": "shout", "text": "x"}],
        "error": "flat message",
        "magicComments": [{"line": "2", "expression": "x", "value": 3}, {"expression": "no line"}],
    }
    result = parse_result(_framed(payload), "", START, END)
    assert result.output == (LogEntry("warn", "a 1"), LogEntry("log", "plain"), LogEntry("log", "x"))
    assert result.error == ExecutionError(message="flat message")
    assert result.probes == (ProbeResult(2, "x", 3),)


def test_find_payload_object_ignores_braces_inside_strings() -> None:
    text = 'x {"output": [{"kind": "log", "text": "}{"}]} y'
    assert find_payload_object(text) == {"output": [{"kind": "log", "text": "}{"}]}


def test_find_payload_object_skips_unrelated_objects() -> None:
    assert find_payload_object('{"a": 1} {"error": null}') == {"error": None}
    assert find_payload_object('{"a": 1}') is None


def test_unbalanced_noise_is_scanned_quickly() -> None:
    noise = "{" * 20000
    started = time.perf_counter()
    result = parse_result(noise, "", START, END)
    assert time.perf_counter() - started < 2
    assert result.output == (LogEntry("log", noise),)
    assert find_payload_object(noise + '{"output": []}') == {"output": []}


@pytest.mark.parametrize(
    "stdout",
    [
        "",
        "\x00\xff�",
        START,
        START + END,
        END + START,
        f"{START}\n{{not json\n{END}",
        _framed({"output": []}) + "trailing } garbage {",
        "{" * 1000,
        '{"output": 5, "probes": "nope", "error": 7}',
        f"{START}\n[1, 2]\n{END}",
        f"{START}\n{'[' * 100000}\n{END}",
        "__TINKER_JS_RES",
    ],
)
def test_parser_never_raises(stdout: str) -> None:
    result = parse_result(stdout, "", START, END)
    assert isinstance(result, ExecutionResult)
    assert isinstance(result.output, tuple)


def test_reconcile_fills_missing_probes_and_sorts() -> None:
    result = ExecutionResult(
        error=ExecutionError(message="boom\nmore detail"),
        probes=(ProbeResult(5, "late", 1), ProbeResult(1, "a", 2)),
    )
    requested = [MagicComment(3, "b"), MagicComment(1, "a"), MagicComment(5, "late")]
    reconciled = reconcile_probes(result, requested)
    assert [(p.line, p.expression) for p in reconciled.probes] == [(1, "a"), (3, "b"), (5, "late")]
    assert reconciled.probes[1] == ProbeResult(3, "b", None, "Not evaluated: boom")


def test_reconcile_without_error_uses_generic_reason() -> None:
    reconciled = reconcile_probes(ExecutionResult(), [MagicComment(2, "x")])
    assert reconciled.probes[0].error == "Not evaluated: no probe results were reported"
