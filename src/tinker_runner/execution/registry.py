from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Protocol

import structlog

logger = structlog.get_logger(component="registry")


class Terminable(Protocol):
    """Anything that can be asked to stop: ``asyncio.subprocess.Process`` in practice."""

    def terminate(self) -> None:
        """Ask the process to stop.

        Example:
            ```python
            process.terminate()
            ```
        """
        ...


@dataclass(slots=True)
class _Handle:
    """Internal registry entry for one execution.

    Example:
        ```python
        handle = _Handle(process=None)
        ```
    """

    process: Terminable | None


class ProcessRegistry:
    """Thread-safe table of in-flight executions keyed by execution id.

    An id is registered when the request is created and gets its process
    attached once the child is spawned. Removal happens exactly once; later
    removals are no-ops. Cancelled ids are remembered until released so the
    owner of the run can discard whatever the child produced.

    Example:
        ```python
        registry = ProcessRegistry()
        registry.register("3f2a9c")
        ```
    """

    def __init__(self) -> None:
        """Initialize an empty registry.

        Example:
            ```python
            registry = ProcessRegistry()
            ```
        """
        self._lock = threading.Lock()
        self._handles: dict[str, _Handle] = {}
        self._cancelled: set[str] = set()

    def register(self, execution_id: str) -> None:
        """Track a newly created execution before it has a process.

        Example:
            ```python
            registry.register("3f2a9c")
            ```
        """
        with self._lock:
            if execution_id in self._handles or execution_id in self._cancelled:
                raise ValueError(f"Execution id already in use: {execution_id}")
            self._handles[execution_id] = _Handle(process=None)

    def attach(self, execution_id: str, process: Terminable) -> bool:
        """Attach the spawned child; returns ``False`` if the run was already cancelled.

        The caller owns the process and must stop it when this returns ``False``.

        Example:
            ```python
            if not registry.attach("3f2a9c", process):
                process.kill()
            ```
        """
        with self._lock:
            handle = self._handles.get(execution_id)
            if handle is None:
                return False
            handle.process = process
            return True

    def release(self, execution_id: str) -> bool:
        """Forget an execution; returns whether it had been cancelled.

        Safe to call more than once.

        Example:
            ```python
            was_cancelled = registry.release("3f2a9c")
            ```
        """
        with self._lock:
            self._handles.pop(execution_id, None)
            if execution_id in self._cancelled:
                self._cancelled.discard(execution_id)
                return True
            return False

    def cancel(self, execution_id: str) -> bool:
        """Terminate one tracked execution; returns ``False`` if it is unknown.

        Example:
            ```python
            registry.cancel("3f2a9c")
            ```
        """
        with self._lock:
            handle = self._handles.pop(execution_id, None)
            if handle is None:
                return False
            self._cancelled.add(execution_id)
        self._terminate(execution_id, handle)
        return True

    def cancel_all(self) -> list[str]:
        """Terminate every tracked execution and clear the table.

        Example:
            ```python
            stopped = registry.cancel_all()
            ```
        """
        with self._lock:
            handles = self._handles
            self._handles = {}
            self._cancelled.update(handles)
        for execution_id, handle in handles.items():
            self._terminate(execution_id, handle)
        return list(handles)

    def active(self) -> list[str]:
        """Return the ids currently tracked.

        Example:
            ```python
            assert registry.active() == []
            ```
        """
        with self._lock:
            return list(self._handles)

    @staticmethod
    def _terminate(execution_id: str, handle: _Handle) -> None:
        """Send the termination signal, ignoring processes that already exited.

        Example:
            ```python
            ProcessRegistry._terminate("3f2a9c", handle)
            ```
        """
        logger.info("execution_cancelled", execution_id=execution_id, spawned=handle.process is not None)
        if handle.process is None:
            return
        try:
            handle.process.terminate()
        except ProcessLookupError:
            pass
