from __future__ import annotations

from typing import Protocol

from .types import ExecutionRequest, ExecutionResult


class ExecutionEngine(Protocol):
    async def submit(self, request: ExecutionRequest) -> ExecutionResult:
        """Run one request and return its result, or raise ``ExecutionCancelled``.

        Example:
            ```python
            result = await engine.submit(ExecutionRequest("3f2a9c", "python", script))
            ```
        """
        ...

    def cancel(self, execution_id: str) -> bool:
        """Stop one in-flight execution; returns whether it was tracked.

        Example:
            ```python
            engine.cancel("3f2a9c")
            ```
        """
        ...
