from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from ..errors import ExecutionCancelled
from ..instrument import TargetProfile, get_profile
from ..locator import DEFAULT_LOCATOR, RuntimeLocator
from ..settings import EngineSettings
from .protocol import reconcile_probes
from .registry import ProcessRegistry
from .types import ExecutionError, ExecutionRequest, ExecutionResult, ProcessOutcome

logger = structlog.get_logger(component="engine")


def _format_seconds(seconds: float) -> str:
    """Render a timeout without a trailing ``.0``.

    Example:
        ```python
        assert _format_seconds(30.0) == "30"
        ```
    """
    return f"{seconds:g}"


def _not_found_message(profile: TargetProfile, interpreter: str) -> str:
    """Return the diagnostic for an interpreter that could not be started.

    Example:
        ```python
        message = _not_found_message(get_profile("php"), "/usr/bin/php")
        ```
    """
    name = profile.display_name
    return f"{name} not found. Please install {name} and ensure it is accessible.\n\nTried: {interpreter}"


def _kill(process: asyncio.subprocess.Process) -> None:
    """Kill a child that may already have exited.

    Example:
        ```python
        _kill(process)
        ```
    """
    try:
        process.kill()
    except ProcessLookupError:
        pass


class LocalEngine:
    """Run instrumented scripts as local child processes with asyncio.

    Each execution writes its script to a uniquely named temporary file,
    spawns the resolved interpreter on it, collects both streams in full and
    hands them to the profile's parser. In-flight children are tracked in a
    ``ProcessRegistry`` so they can be cancelled from anywhere.

    Example:
        ```python
        engine = LocalEngine(EngineSettings(timeout_seconds=10))
        result = await engine.submit(request)
        ```
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        *,
        locator: RuntimeLocator | None = None,
        registry: ProcessRegistry | None = None,
    ) -> None:
        """Initialize an engine; a locator is built from the settings' overrides if needed.

        Example:
            ```python
            engine = LocalEngine(EngineSettings(interpreters={"python3": sys.executable}))
            ```
        """
        self._settings = settings or EngineSettings()
        if locator is None:
            locator = RuntimeLocator(self._settings.interpreters) if self._settings.interpreters else DEFAULT_LOCATOR
        self._locator = locator
        self._registry = registry or ProcessRegistry()

    @property
    def settings(self) -> EngineSettings:
        """Return the settings this engine runs with.

        Example:
            ```python
            timeout = engine.settings.timeout_seconds
            ```
        """
        return self._settings

    @property
    def locator(self) -> RuntimeLocator:
        """Return the locator used to find interpreters.

        Example:
            ```python
            node = engine.locator.locate_interpreter("javascript")
            ```
        """
        return self._locator

    @property
    def registry(self) -> ProcessRegistry:
        """Return the table of in-flight executions.

        Example:
            ```python
            running = engine.registry.active()
            ```
        """
        return self._registry

    async def submit(self, request: ExecutionRequest) -> ExecutionResult:
        """Run one request to completion.

        Returns an ``ExecutionResult`` for every outcome except cancellation,
        which raises ``ExecutionCancelled`` and discards whatever the child
        produced.

        Example:
            ```python
            result = await engine.submit(ExecutionRequest("3f2a9c", "python", script))
            ```
        """
        profile = get_profile(request.language)
        if profile is None:
            return ExecutionResult(error=ExecutionError(message=f"Unsupported language: {request.language}"))

        log = logger.bind(execution_id=request.execution_id, language=profile.language)
        self._registry.register(request.execution_id)
        script_path = profile.script_path(request.execution_id)
        keep_script = False
        try:
            await asyncio.to_thread(script_path.write_text, request.instrumented_script, encoding="utf-8")
            outcome = await self._run_process(profile, request, script_path, log)
            keep_script = self._settings.keep_failed_scripts and profile.failed_to_parse(outcome.stderr)
        finally:
            cancelled = self._registry.release(request.execution_id)
            if keep_script:
                log.warning("script_kept_for_debugging", path=str(script_path))
            else:
                script_path.unlink(missing_ok=True)

        if cancelled:
            log.info("execution_discarded")
            raise ExecutionCancelled(request.execution_id)

        if outcome.error is not None:
            result = ExecutionResult(
                error=ExecutionError(message=outcome.error, name=outcome.error_name),
                exit_code=outcome.returncode,
                timed_out=outcome.timed_out,
            )
        else:
            result = await asyncio.to_thread(
                profile.parse, outcome.stdout, outcome.stderr, exit_code=outcome.returncode
            )
        result = reconcile_probes(result, request.magic_comments)
        log.info(
            "execution_finished",
            exit_code=result.exit_code,
            ok=result.ok,
            timed_out=result.timed_out,
            output_entries=len(result.output),
            probes=len(result.probes),
        )
        return result

    def cancel(self, execution_id: str) -> bool:
        """Terminate one in-flight execution; its ``submit`` raises ``ExecutionCancelled``.

        Example:
            ```python
            engine.cancel("3f2a9c")
            ```
        """
        return self._registry.cancel(execution_id)

    def cancel_all(self) -> list[str]:
        """Terminate every in-flight execution of this engine.

        Example:
            ```python
            stopped = engine.cancel_all()
            ```
        """
        return self._registry.cancel_all()

    def _timeout_for(self, request: ExecutionRequest) -> float | None:
        """Return the wall-clock limit for a request; ``None`` means unlimited.

        Example:
            ```python
            limit = engine._timeout_for(request)
            ```
        """
        if request.timeout_seconds is None:
            return self._settings.timeout
        return request.timeout_seconds or None

    async def _run_process(
        self,
        profile: TargetProfile,
        request: ExecutionRequest,
        script_path: Path,
        log: structlog.typing.FilteringBoundLogger,
    ) -> ProcessOutcome:
        """Spawn the interpreter on ``script_path`` and wait for it.

        Example:
            ```python
            outcome = await engine._run_process(profile, request, script_path, log)
            ```
        """
        interpreter = self._locator.locate_interpreter(profile.language)
        command = profile.command(interpreter, script_path)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=profile.child_env(self._settings.data_dir, interpreter),
                cwd=self._settings.working_dir,
            )
        except OSError as exc:
            log.warning("execution_spawn_failed", interpreter=interpreter, error=str(exc))
            return ProcessOutcome(
                stdout="",
                stderr="",
                returncode=None,
                timed_out=False,
                error=_not_found_message(profile, interpreter),
                error_name=type(exc).__name__,
            )

        if not self._registry.attach(request.execution_id, process):
            _kill(process)
            await process.wait()
            return ProcessOutcome(stdout="", stderr="", returncode=process.returncode, timed_out=False)
        log.info("execution_spawned", pid=process.pid, interpreter=interpreter)

        timeout = self._timeout_for(request)
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            _kill(process)
            await process.wait()
            log.warning("execution_timed_out", timeout_seconds=timeout)
            return ProcessOutcome(
                stdout="",
                stderr="",
                returncode=process.returncode,
                timed_out=True,
                error=f"Execution timed out after {_format_seconds(timeout or 0)}s",
                error_name="TimeoutError",
            )
        except asyncio.CancelledError:
            _kill(process)
            await asyncio.shield(process.wait())
            raise
        return ProcessOutcome(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            returncode=process.returncode,
            timed_out=False,
        )

