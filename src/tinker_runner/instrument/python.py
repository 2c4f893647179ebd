from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Sequence

from ..languages import PYTHON
from ..magic import MagicComment
from .profiles import TargetProfile

_ENTRY_POINT = """

if __name__ == "__main__":
    raise SystemExit(main({code}, {probes}, {start}, {end}))
"""


@lru_cache(maxsize=1)
def harness_source() -> str:
    """Return the source of the child-side harness module.

    Example:
        ```python
        assert "def main(" in harness_source()
        ```
    """
    return Path(__file__).with_name("python_harness.py").read_text(encoding="utf-8")


class PythonProfile(TargetProfile):
    """Run snippets with CPython.

    The generated script is the harness module followed by a call to its
    ``main`` with the snippet as a string literal, so the snippet is compiled
    (and its syntax errors reported) by the harness itself.

    Example:
        ```python
        script = PythonProfile().build_script("x = 41  # $ x", [MagicComment(1, "x")], data_dir)
        ```
    """

    language = PYTHON
    display_name = "Python"
    suffix = ".py"
    start_sentinel = "__TINKER_PY_RESULT_START__"
    end_sentinel = "__TINKER_PY_RESULT_END__"
    dependency_subdir = "site-packages"
    comment_markers = ("#",)

    def build_script(self, code: str, magic_comments: Sequence[MagicComment], data_dir: Path) -> str:
        """Append an entry point that runs ``code`` under the harness.

        Example:
            ```python
            script = profile.build_script("1 + 1", [], data_dir)
            ```
        """
        probes = [comment.to_dict() for comment in magic_comments]
        return harness_source() + _ENTRY_POINT.format(
            code=repr(code),
            probes=repr(probes),
            start=repr(self.start_sentinel),
            end=repr(self.end_sentinel),
        )

    def child_env(
        self,
        data_dir: Path,
        interpreter: str,
        base: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Prepend the per-user ``site-packages`` to ``PYTHONPATH`` and force UTF-8 streams.

        Example:
            ```python
            env = profile.child_env(data_dir, "python3")
            ```
        """
        env = super().child_env(data_dir, interpreter, base)
        site_packages = str(self.dependency_dir(data_dir))
        current = env.get("PYTHONPATH")
        env["PYTHONPATH"] = f"{site_packages}{os.pathsep}{current}" if current else site_packages
        env["PYTHONIOENCODING"] = "utf-8"
        return env

