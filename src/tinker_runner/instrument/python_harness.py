"""Child-side harness for Python snippets.

This file is copied verbatim into every generated script, followed by a call
to ``main`` with the snippet and its probes as literals. Standard library only.
"""

from __future__ import annotations

import ast
import builtins
import contextlib
import io
import json
import linecache
import sys
import traceback
import warnings
from typing import Any

SNIPPET_FILENAME = "<snippet>"
DISPLAY_HOOK = "__tinker_display__"


class _LineStream(io.TextIOBase):
    def __init__(self, entries: list[dict[str, str]], kind: str) -> None:
        self._entries = entries
        self._kind = kind
        self._pending = ""

    def writable(self) -> bool:
        return True

    def write(self, text: str) -> int:
        self._pending += text
        *lines, self._pending = self._pending.split("\n")
        for line in lines:
            self._entries.append({"kind": self._kind, "text": line})
        return len(text)

    def finish(self) -> None:
        if self._pending:
            self._entries.append({"kind": self._kind, "text": self._pending})
            self._pending = ""


def _plain(value: Any) -> Any:
    try:
        return json.loads(json.dumps(value, allow_nan=False))
    except (TypeError, ValueError, RecursionError):
        return f"[Non-serializable: {type(value).__name__}]"


def _error(exc: BaseException) -> dict[str, Any]:
    frames = traceback.extract_tb(exc.__traceback__)
    for index, frame in enumerate(frames):
        if frame.filename == SNIPPET_FILENAME:
            frames = traceback.StackSummary.from_list(frames[index:])
            break
    else:
        frames = traceback.StackSummary.from_list([])
    stack = "".join(
        ["Traceback (most recent call last):\n", *frames.format(), *traceback.format_exception_only(type(exc), exc)]
    )
    return {"message": str(exc), "stack": stack, "name": type(exc).__name__}


def _normalize_system_exit(exit_code: Any) -> tuple[int, dict[str, Any] | None]:
    if exit_code in (None, 0):
        return 0, None
    code = exit_code if isinstance(exit_code, int) else 1
    return code, {"message": f"SystemExit: {exit_code}", "stack": None, "name": "SystemExit"}


def _evaluate_probes(probes: list[dict[str, Any]], scope: dict[str, Any]) -> list[dict[str, Any]]:
    results: list[dict[str, Any]] = []
    for probe in probes:
        expression = str(probe.get("expression", ""))
        entry: dict[str, Any] = {"line": probe.get("line"), "expression": expression}
        try:
            entry["value"] = _plain(eval(compile(expression, "<probe>", "eval", dont_inherit=True), scope))
        except Exception as exc:
            entry["value"] = None
            entry["error"] = str(exc) or type(exc).__name__
        results.append(entry)
    return results


def _display(value: Any) -> None:
    if value is not None:
        print(value)


def _emit(out: Any, payload: dict[str, Any], start: str, end: str) -> None:
    try:
        body = json.dumps(payload)
    except (TypeError, ValueError):
        body = json.dumps({"output": payload["output"], "error": payload["error"]}, default=str)
    out.write(f"{start}\n{body}\n{end}\n")
    out.flush()


def main(code: str, probes: list[dict[str, Any]], start: str, end: str) -> int:
    out = sys.stdout
    entries: list[dict[str, str]] = []
    payload: dict[str, Any] = {"output": entries, "error": None, "probes": []}
    scope: dict[str, Any] = {"__name__": "__main__", "__builtins__": builtins, DISPLAY_HOOK: _display}
    exit_code = 0

    linecache.cache[SNIPPET_FILENAME] = (len(code), None, code.splitlines(True), SNIPPET_FILENAME)
    stdout_stream = _LineStream(entries, "log")
    stderr_stream = _LineStream(entries, "error")

    def _show_warning(message: Any, category: Any, filename: str, lineno: int, file: Any = None, line: Any = None) -> None:
        stdout_stream.finish()
        entries.append({"kind": "warn", "text": f"{category.__name__}: {message}"})

    try:
        tree = ast.parse(code, filename=SNIPPET_FILENAME, mode="exec")
    except SyntaxError as exc:
        payload["error"] = {"message": str(exc), "stack": None, "name": "SyntaxError"}
        _emit(out, payload, start, end)
        return 1

    tail = None
    if tree.body and isinstance(tree.body[-1], ast.Expr):
        tail = ast.Expression(body=tree.body.pop().value)

    try:
        with (
            contextlib.redirect_stdout(stdout_stream),
            contextlib.redirect_stderr(stderr_stream),
            warnings.catch_warnings(),
        ):
            warnings.showwarning = _show_warning
            completed = False
            try:
                exec(compile(tree, SNIPPET_FILENAME, "exec", dont_inherit=True), scope)
                if tail is not None:
                    value = eval(compile(tail, SNIPPET_FILENAME, "eval", dont_inherit=True), scope)
                    if value is not None:
                        payload["value"] = _plain(value)
                completed = True
            except SystemExit as exc:
                # Non-zero and string exit codes are failures.
                exit_code, payload["error"] = _normalize_system_exit(exc.code)
            except BaseException as exc:
                payload["error"] = _error(exc)
                exit_code = 1
            if completed:
                payload["probes"] = _evaluate_probes(probes, scope)
    finally:
        stdout_stream.finish()
        stderr_stream.finish()
        _emit(out, payload, start, end)
    return exit_code
