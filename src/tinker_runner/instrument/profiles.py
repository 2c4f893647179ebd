from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path
from typing import Mapping, Sequence

from ..errors import InstrumentationError
from ..execution.protocol import parse_result
from ..execution.types import ExecutionResult
from ..languages import canonical_language
from ..magic import MagicComment

_PLACEHOLDER = re.compile(r"\{\{([A-Z_]+)\}\}")


def render_template(template: str, **values: str) -> str:
    """Fill ``{{NAME}}`` placeholders in one pass.

    Substituted text is never rescanned, so user code containing ``{{X}}``
    is inserted verbatim.

    Example:
        ```python
        assert render_template("a {{X}} b", X="{{Y}}") == "a {{Y}} b"
        ```
    """

    def _substitute(match: re.Match[str]) -> str:
        """Return the value for one placeholder.

        Example:
            ```python
            _substitute(_PLACEHOLDER.search("{{X}}"))
            ```
        """
        name = match.group(1)
        if name not in values:
            raise InstrumentationError(f"Template placeholder has no value: {name}")
        return values[name]

    return _PLACEHOLDER.sub(_substitute, template)


def php_string(text: str) -> str:
    """Quote ``text`` as a single-quoted PHP string literal.

    Example:
        ```python
        assert php_string("it's") == "'it\\\\'s'"
        ```
    """
    return "'" + text.replace("\\", "\\\\").replace("'", "\\'") + "'"


class TargetProfile:
    """Everything the engine needs to instrument and run one language.

    Subclasses set the class attributes and implement ``build_script``.

    Example:
        ```python
        profile = get_profile("javascript")
        script = profile.build_script("1 + 1", [], Path("~/.tinker-runner").expanduser())
        ```
    """

    language: str = ""
    display_name: str = ""
    suffix: str = ""
    start_sentinel: str = ""
    end_sentinel: str = ""
    dependency_subdir: str = ""
    comment_markers: tuple[str, ...] = ()
    parse_error_marker: str | None = None
    interpreter_args: tuple[str, ...] = ()

    def build_script(self, code: str, magic_comments: Sequence[MagicComment], data_dir: Path) -> str:
        """Return the instrumented program for ``code``.

        Example:
            ```python
            script = profile.build_script("x = 1  # $ x", [MagicComment(1, "x")], data_dir)
            ```
        """
        raise NotImplementedError

    def dependency_dir(self, data_dir: Path) -> Path:
        """Return the per-user package directory for this language.

        Example:
            ```python
            path = get_profile("php").dependency_dir(Path("/home/me/.tinker-runner"))
            ```
        """
        return data_dir / self.dependency_subdir

    def child_env(
        self,
        data_dir: Path,
        interpreter: str,
        base: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Return the child environment: ``base`` (default ``os.environ``) plus search paths.

        Example:
            ```python
            env = profile.child_env(data_dir, "/usr/bin/node")
            ```
        """
        return dict(os.environ if base is None else base)

    def command(self, interpreter: str, script_path: Path) -> list[str]:
        """Return the argv used to run ``script_path``.

        Example:
            ```python
            argv = profile.command("node", Path("/tmp/tinker-javascript-1.js"))
            ```
        """
        return [interpreter, *self.interpreter_args, str(script_path)]

    def script_path(self, execution_id: str) -> Path:
        """Return the temporary script location for one execution.

        Example:
            ```python
            path = profile.script_path("3f2a9c")
            ```
        """
        return Path(tempfile.gettempdir()) / f"tinker-{self.language}-{execution_id}{self.suffix}"

    def failed_to_parse(self, stderr: str) -> bool:
        """Return whether stderr shows the interpreter rejected the script outright.

        Example:
            ```python
            assert get_profile("php").failed_to_parse("PHP Parse error: syntax error")
            ```
        """
        return bool(self.parse_error_marker) and self.parse_error_marker in stderr

    def parse(self, stdout: str, stderr: str, exit_code: int | None = None) -> ExecutionResult:
        """Decode a finished child's streams with this profile's sentinels.

        Example:
            ```python
            result = profile.parse(stdout, stderr, exit_code=0)
            ```
        """
        return parse_result(stdout, stderr, self.start_sentinel, self.end_sentinel, exit_code=exit_code)


_PROFILES: dict[str, TargetProfile] = {}


def register_profile(profile: TargetProfile) -> None:
    """Make ``profile`` available under its language id.

    Example:
        ```python
        register_profile(RubyProfile())
        ```
    """
    _PROFILES[profile.language] = profile


def get_profile(language: str) -> TargetProfile | None:
    """Return the profile for a language id or alias, or ``None``.

    Example:
        ```python
        assert get_profile("js").language == "javascript"
        ```
    """
    canonical = canonical_language(language) or (language or "").strip().lower()
    return _PROFILES.get(canonical)


def registered_profiles() -> list[TargetProfile]:
    """Return every registered profile in registration order.

    Example:
        ```python
        names = [profile.display_name for profile in registered_profiles()]
        ```
    """
    return list(_PROFILES.values())
