from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..magic import MagicComment

LOG_KINDS = ("log", "info", "warn", "error")


@dataclass(slots=True)
class ExecutionRequest:
    """Normalized request sent to an execution engine.

    ``instrumented_script`` is the complete program produced by a target
    profile; the engine only persists and runs it.

    Example:
        ```python
        req = ExecutionRequest(
            execution_id="3f2a9c",
            language="python",
            instrumented_script=script,
            magic_comments=[MagicComment(1, "x")],
        )
        ```
    """

    execution_id: str
    language: str
    instrumented_script: str
    magic_comments: list[MagicComment] = field(default_factory=list)
    timeout_seconds: float | None = None


@dataclass(slots=True)
class ProcessOutcome:
    """Raw streams and status of one finished child process.

    Example:
        ```python
        out = ProcessOutcome(stdout="", stderr="", returncode=0, timed_out=False)
        ```
    """

    stdout: str
    stderr: str
    returncode: int | None
    timed_out: bool
    error: str | None = None
    error_name: str | None = None


@dataclass(frozen=True, slots=True)
class LogEntry:
    """One captured output call.

    Example:
        ```python
        entry = LogEntry(kind="warn", text="deprecated")
        ```
    """

    kind: str
    text: str

    def to_dict(self) -> dict[str, str]:
        """Return the JSON-friendly form.

        Example:
            ```python
            LogEntry("log", "42").to_dict()  # {"kind": "log", "text": "42"}
            ```
        """
        return {"kind": self.kind, "text": self.text}


@dataclass(frozen=True, slots=True)
class ProbeResult:
    """Value (or failure) of one magic comment at the end of the run.

    Example:
        ```python
        probe = ProbeResult(line=1, expression="x", value=41)
        ```
    """

    line: int
    expression: str
    value: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-friendly form; ``error`` is omitted when absent.

        Example:
            ```python
            ProbeResult(1, "x", 41).to_dict()
            ```
        """
        data: dict[str, Any] = {"line": self.line, "expression": self.expression, "value": self.value}
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True, slots=True)
class ExecutionError:
    """Error reported for a run, either by the child or by the engine.

    Example:
        ```python
        err = ExecutionError(message="boom", name="Error")
        ```
    """

    message: str
    stack: str | None = None
    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-friendly form.

        Example:
            ```python
            ExecutionError("boom").to_dict()
            ```
        """
        return {"message": self.message, "stack": self.stack, "name": self.name}


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Terminal artifact of one execution.

    ``has_value`` separates an absent value (``undefined``) from a JSON
    ``null``. ``exit_code`` is ``None`` when no process ever ran.

    Example:
        ```python
        result = ExecutionResult(output=(LogEntry("log", "42"),))
        assert result.ok
        ```
    """

    output: tuple[LogEntry, ...] = ()
    value: Any = None
    has_value: bool = False
    error: ExecutionError | None = None
    probes: tuple[ProbeResult, ...] = ()
    exit_code: int | None = None
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        """Return whether the run finished without an error.

        Example:
            ```python
            assert ExecutionResult().ok
            ```
        """
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON-friendly form; ``value`` is omitted when absent.

        Example:
            ```python
            data = ExecutionResult(value=1, has_value=True).to_dict()
            assert data["value"] == 1
            ```
        """
        data: dict[str, Any] = {"output": [entry.to_dict() for entry in self.output]}
        if self.has_value:
            data["value"] = self.value
        data["error"] = self.error.to_dict() if self.error is not None else None
        data["probes"] = [probe.to_dict() for probe in self.probes]
        data["exit_code"] = self.exit_code
        data["timed_out"] = self.timed_out
        return data
