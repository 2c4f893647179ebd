from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Iterable

from .errors import InstrumentationError
from .execution.engine import ExecutionEngine
from .execution.local_engine import LocalEngine
from .execution.types import ExecutionError, ExecutionRequest, ExecutionResult
from .instrument import get_profile
from .magic import MagicComment, extract_magic_comments
from .settings import EngineSettings
from .transforms import auto_log


@dataclass(slots=True)
class PreparedSnippet:
    """A snippet after extraction, auto-log and instrumentation, ready to run.

    Example:
        ```python
        prepared = prepare_snippet("x = 41  # $ x\\nx + 1", "python")
        print(prepared.script)
        ```
    """

    language: str
    source: str
    script: str
    magic_comments: list[MagicComment] = field(default_factory=list)


def _resolve_settings(settings: EngineSettings | None, engine: ExecutionEngine | None) -> EngineSettings:
    """Resolve the effective settings for a run.

    Explicit settings win, then the engine's own, then the defaults.

    Example:
        ```python
        settings = _resolve_settings(None, LocalEngine())
        ```
    """
    if settings is not None:
        return settings
    engine_settings = getattr(engine, "settings", None)
    if isinstance(engine_settings, EngineSettings):
        return engine_settings
    return EngineSettings()


def prepare_snippet(
    code: str,
    language: str,
    settings: EngineSettings | None = None,
    magic_comments: Iterable[MagicComment] | None = None,
) -> PreparedSnippet:
    """Run the pipeline up to, but not including, spawning a process.

    Magic comments are extracted from ``code`` unless given. Raises
    ``ValueError`` for an unknown language and ``InstrumentationError`` when
    the profile cannot build a script.

    Example:
        ```python
        prepared = prepare_snippet("const a = [1, 2] // $ a\\na.length", "javascript")
        assert prepared.magic_comments[0].expression == "a"
        ```
    """
    profile = get_profile(language)
    if profile is None:
        raise ValueError(f"Unsupported language: {language}")
    settings = settings or EngineSettings()
    comments = list(magic_comments) if magic_comments is not None else extract_magic_comments(code, profile.language)
    source = auto_log(code, profile.language) if settings.auto_log else code
    try:
        script = profile.build_script(source, comments, settings.data_dir)
    except InstrumentationError:
        raise
    except Exception as exc:
        raise InstrumentationError(f"Could not instrument {profile.language} snippet: {exc}") from exc
    return PreparedSnippet(language=profile.language, source=source, script=script, magic_comments=comments)


async def submit_execution(
    code: str,
    language: str,
    *,
    engine: ExecutionEngine | None = None,
    settings: EngineSettings | None = None,
    magic_comments: Iterable[MagicComment] | None = None,
    execution_id: str | None = None,
    timeout_seconds: float | None = None,
) -> ExecutionResult:
    """Execute a snippet and return its result.

    Every outcome is an ``ExecutionResult`` except cancellation, which raises
    ``ExecutionCancelled``. Pass ``execution_id`` to be able to cancel the run
    through ``engine.cancel``.

    Example:
        ```python
        from tinker_runner import LocalEngine, submit_execution
        engine = LocalEngine()
        result = await submit_execution("console.log(1 + 1)", "javascript", engine=engine)
        ```
    """
    if get_profile(language) is None:
        return ExecutionResult(error=ExecutionError(message=f"Unsupported language: {language}"))
    resolved = _resolve_settings(settings, engine)
    engine = engine or LocalEngine(resolved)
    prepared = prepare_snippet(code, language, resolved, magic_comments)
    request = ExecutionRequest(
        execution_id=execution_id or uuid.uuid4().hex,
        language=prepared.language,
        instrumented_script=prepared.script,
        magic_comments=prepared.magic_comments,
        timeout_seconds=timeout_seconds,
    )
    return await engine.submit(request)


def run_snippet(code: str, language: str, **kwargs: object) -> ExecutionResult:
    """Blocking wrapper around ``submit_execution`` for scripts and the CLI.

    Example:
        ```python
        from tinker_runner import run_snippet
        result = run_snippet("print(2 + 2)", "python")
        ```
    """
    return asyncio.run(submit_execution(code, language, **kwargs))  # type: ignore[arg-type]
