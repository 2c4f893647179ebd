from __future__ import annotations


class TinkerError(Exception):
    """Base exception for tinker-runner failures that escape to the caller."""


class InstrumentationError(TinkerError):
    """Raised when a profile cannot assemble an instrumented script.

    This is an internal fault, not a per-run error: user mistakes always end
    up inside an ``ExecutionResult`` instead.
    """


class ExecutionCancelled(TinkerError):
    """Terminal outcome of a run that was stopped before delivering a result."""

    def __init__(self, execution_id: str) -> None:
        """Record which execution was cancelled.

        Example:
            ```python
            raise ExecutionCancelled("3f2a9c")
            ```
        """
        super().__init__(f"Execution {execution_id} was cancelled")
        self.execution_id = execution_id
