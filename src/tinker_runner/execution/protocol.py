"""Result protocol parser.

Children report their outcome as one JSON payload between a start and an end
sentinel on stdout. The channel is lossy: runtimes print warnings around it,
processes die half way through writing it, or never get far enough to write
it at all. ``parse_result`` therefore walks a fixed ladder of recoveries and
always returns an ``ExecutionResult``; it never raises.
"""

from __future__ import annotations

import dataclasses
import json
from typing import Any, Iterable

import structlog

from ..magic import MagicComment
from .types import LOG_KINDS, ExecutionError, ExecutionResult, LogEntry, ProbeResult

logger = structlog.get_logger(component="protocol")

NO_OUTPUT_MESSAGE = "Execution returned no output."
_PAYLOAD_KEYS = frozenset({"output", "error", "value", "probes", "magicComments"})
_DECODER = json.JSONDecoder()


def _to_text(value: Any) -> str:
    """Render an arbitrary JSON value as log text.

    Example:
        ```python
        assert _to_text({"a": 1}) == '{"a": 1}'
        ```
    """
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def _log_entry(item: Any) -> LogEntry:
    """Normalize one output item, accepting ``kind/text`` and ``type/args`` spellings.

    Example:
        ```python
        assert _log_entry({"type": "warn", "args": ["a", 1]}) == LogEntry("warn", "a 1")
        ```
    """
    if not isinstance(item, dict):
        return LogEntry("log", _to_text(item))
    kind = item.get("kind", item.get("type", "log"))
    if kind not in LOG_KINDS:
        kind = "log"
    if "text" in item:
        text = _to_text(item["text"])
    elif isinstance(item.get("args"), list):
        text = " ".join(_to_text(arg) for arg in item["args"])
    else:
        text = _to_text(item.get("args", ""))
    return LogEntry(kind, text)


def _execution_error(raw: Any) -> ExecutionError | None:
    """Normalize the payload's ``error`` field.

    Example:
        ```python
        assert _execution_error({"message": "boom"}).message == "boom"
        ```
    """
    if raw is None or raw is False:
        return None
    if isinstance(raw, dict):
        stack = raw.get("stack")
        name = raw.get("name")
        return ExecutionError(
            message=_to_text(raw.get("message", "")),
            stack=stack if isinstance(stack, str) else None,
            name=name if isinstance(name, str) else None,
        )
    return ExecutionError(message=_to_text(raw))


def _probe_results(raw: Any) -> list[ProbeResult]:
    """Normalize the payload's probe list, skipping entries without a usable line.

    Example:
        ```python
        probes = _probe_results([{"line": 1, "expression": "x", "value": 41}])
        ```
    """
    if not isinstance(raw, list):
        return []
    probes: list[ProbeResult] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            line = int(item.get("line"))
        except (TypeError, ValueError):
            continue
        error = item.get("error")
        probes.append(
            ProbeResult(
                line=line,
                expression=_to_text(item.get("expression", "")),
                value=item.get("value"),
                error=None if error is None else _to_text(error),
            )
        )
    return probes


def result_from_payload(payload: dict[str, Any], exit_code: int | None = None) -> ExecutionResult:
    """Build an ``ExecutionResult`` from a decoded payload object.

    Example:
        ```python
        result = result_from_payload({"output": [], "error": None, "value": 2})
        assert result.has_value and result.value == 2
        ```
    """
    output = payload.get("output")
    entries = [_log_entry(item) for item in output] if isinstance(output, list) else []
    probes = payload.get("probes", payload.get("magicComments"))
    return ExecutionResult(
        output=tuple(entries),
        value=payload.get("value"),
        has_value="value" in payload,
        error=_execution_error(payload.get("error")),
        probes=tuple(_probe_results(probes)),
        exit_code=exit_code,
    )


def _between_sentinels(stdout: str, start: str, end: str) -> str | None:
    """Return the text between the start sentinel and the nearest end sentinel after it.

    Example:
        ```python
        assert _between_sentinels("A\\n{}\\nB", "A", "B") == "{}"
        ```
    """
    begin = stdout.find(start)
    if begin < 0:
        return None
    begin += len(start)
    finish = stdout.find(end, begin)
    if finish < 0:
        return None
    return stdout[begin:finish].strip()


def find_payload_object(text: str) -> dict[str, Any] | None:
    """Find the first JSON object in ``text`` that looks like a payload.

    Every ``{`` is tried as the start of an object with ``raw_decode``.

    Example:
        ```python
        found = find_payload_object('noise {"output": []} more noise')
        assert found == {"output": []}
        ```
    """
    begin = text.find("{")
    while begin >= 0:
        try:
            candidate, _ = _DECODER.raw_decode(text, begin)
        except (ValueError, RecursionError):
            candidate = None
        if isinstance(candidate, dict) and _PAYLOAD_KEYS.intersection(candidate):
            return candidate
        begin = text.find("{", begin + 1)
    return None


def _decode(body: str) -> dict[str, Any] | None:
    """Decode a sentinel body, returning ``None`` unless it is a JSON object.

    Example:
        ```python
        assert _decode("[1]") is None
        ```
    """
    try:
        decoded = json.loads(body)
    except ValueError:
        return None
    return decoded if isinstance(decoded, dict) else None


def _parse(stdout: str, stderr: str, start: str, end: str, exit_code: int | None) -> ExecutionResult:
    """Walk the recovery ladder; see ``parse_result``.

    Example:
        ```python
        result = _parse("", "", "S", "E", None)
        ```
    """
    body = _between_sentinels(stdout, start, end)
    if body is not None:
        payload = _decode(body)
        if payload is not None:
            return result_from_payload(payload, exit_code)
        logger.debug("payload_malformed", size=len(body))

    if start not in stdout and stderr.strip():
        return ExecutionResult(error=ExecutionError(message=stderr.strip()), exit_code=exit_code)

    payload = find_payload_object(stdout)
    if payload is not None:
        logger.debug("payload_recovered")
        return result_from_payload(payload, exit_code)

    if stdout.strip():
        error = ExecutionError(message=stderr.strip()) if stderr.strip() else None
        return ExecutionResult(output=(LogEntry("log", stdout.strip()),), error=error, exit_code=exit_code)

    return ExecutionResult(error=ExecutionError(message=NO_OUTPUT_MESSAGE), exit_code=exit_code)


def parse_result(
    stdout: str,
    stderr: str,
    start_sentinel: str,
    end_sentinel: str,
    *,
    exit_code: int | None = None,
) -> ExecutionResult:
    """Recover one ``ExecutionResult`` from a child's accumulated streams.

    Tried in order until one applies:

    1. the JSON object between the sentinels;
    2. no start sentinel but stderr has text: stderr becomes the error;
    3. the first balanced payload-shaped object anywhere in stdout;
    4. raw stdout as a single log entry;
    5. a generic "no output" error.

    Example:
        ```python
        stdout = "S\\n" + '{"output": [{"kind": "log", "text": "42"}], "error": null}' + "\\nE\\n"
        result = parse_result(stdout, "", "S", "E")
        assert result.output[0].text == "42"
        ```
    """
    stdout = stdout or ""
    stderr = stderr or ""
    try:
        return _parse(stdout, stderr, start_sentinel, end_sentinel, exit_code)
    except Exception as exc:
        logger.warning("payload_parse_failed", error=str(exc))
        return ExecutionResult(
            error=ExecutionError(message=f"Could not read execution output: {exc}"),
            exit_code=exit_code,
        )


def reconcile_probes(
    result: ExecutionResult,
    requested: Iterable[MagicComment],
    reason: str | None = None,
) -> ExecutionResult:
    """Give every requested probe a result and order probes by line.

    Probes the child never reported get ``value=None`` and an
    ``error`` of ``"Not evaluated: <reason>"``.

    Example:
        ```python
        result = reconcile_probes(ExecutionResult(), [MagicComment(2, "x")], "timed out")
        assert result.probes[0].error == "Not evaluated: timed out"
        ```
    """
    reported = {(probe.line, probe.expression) for probe in result.probes}
    if reason is None:
        if result.error is not None and result.error.message.strip():
            reason = result.error.message.strip().splitlines()[0]
        else:
            reason = "no probe results were reported"
    missing = [
        ProbeResult(line=comment.line, expression=comment.expression, error=f"Not evaluated: {reason}")
        for comment in requested
        if (comment.line, comment.expression) not in reported
    ]
    probes = sorted([*result.probes, *missing], key=lambda probe: probe.line)
    return dataclasses.replace(result, probes=tuple(probes))
