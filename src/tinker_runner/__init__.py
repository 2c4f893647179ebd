from .errors import ExecutionCancelled, InstrumentationError, TinkerError
from .settings import EngineSettings
from .magic import MagicComment, extract_magic_comments
from .transforms import auto_log, register_transform
from .locator import RuntimeLocator
from .execution.types import ExecutionError, ExecutionResult, LogEntry, ProbeResult
from .execution.protocol import parse_result
from .logs import default_logging
from .execution.local_engine import LocalEngine
from .runner import PreparedSnippet, prepare_snippet, run_snippet, submit_execution

default_logging()

__all__ = [
    "EngineSettings",
    "ExecutionCancelled",
    "ExecutionError",
    "ExecutionResult",
    "InstrumentationError",
    "LocalEngine",
    "LogEntry",
    "MagicComment",
    "PreparedSnippet",
    "ProbeResult",
    "RuntimeLocator",
    "TinkerError",
    "auto_log",
    "extract_magic_comments",
    "parse_result",
    "prepare_snippet",
    "register_transform",
    "run_snippet",
    "submit_execution",
]
