from .types import ExecutionError, ExecutionRequest, ExecutionResult, LogEntry, ProbeResult, ProcessOutcome
from .protocol import parse_result, reconcile_probes
from .registry import ProcessRegistry
from .engine import ExecutionEngine
from .local_engine import LocalEngine

__all__ = [
    "ExecutionEngine",
    "ExecutionError",
    "ExecutionRequest",
    "ExecutionResult",
    "LocalEngine",
    "LogEntry",
    "ProbeResult",
    "ProcessOutcome",
    "ProcessRegistry",
    "parse_result",
    "reconcile_probes",
]
