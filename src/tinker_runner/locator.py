from __future__ import annotations

import os
import re
import shutil
import sys
import threading
from pathlib import Path
from typing import Mapping

import structlog

from .languages import JAVASCRIPT, PHP, PYTHON, canonical_language

logger = structlog.get_logger(component="locator")

INTERPRETERS = {JAVASCRIPT: "node", PHP: "php", PYTHON: "python3"}
PACKAGE_MANAGERS = {JAVASCRIPT: "npm", PHP: "composer", PYTHON: "pip3"}

# Version-manager roots relative to the home directory; each holds one
# directory per installed version with the tools under ``bin/``.
_VERSION_MANAGER_ROOTS = {
    "node": (".nvm", "versions", "node"),
    "npm": (".nvm", "versions", "node"),
    "php": (".phpenv", "versions"),
    "python3": (".pyenv", "versions"),
    "pip3": (".pyenv", "versions"),
}


def natural_key(text: str) -> tuple[object, ...]:
    """Sort key that compares digit runs numerically (``v9`` before ``v10``).

    Example:
        ```python
        assert sorted(["v10.0.0", "v9.1.0"], key=natural_key) == ["v9.1.0", "v10.0.0"]
        ```
    """
    return tuple(int(part) if part.isdigit() else part.lower() for part in re.split(r"(\d+)", text))


def _common_paths(tool: str, platform: str, home: Path, env: Mapping[str, str]) -> list[str]:
    """Return well-known install locations for ``tool`` on ``platform``.

    Example:
        ```python
        paths = _common_paths("node", "linux", Path.home(), os.environ)
        ```
    """
    if platform.startswith("win"):
        program_files = env.get("PROGRAMFILES", "C:\\Program Files")
        program_files_x86 = env.get("PROGRAMFILES(X86)", "C:\\Program Files (x86)")
        appdata = env.get("APPDATA", "")
        local_appdata = env.get("LOCALAPPDATA", "")
        windows = {
            "node": [
                os.path.join(program_files, "nodejs", "node.exe"),
                os.path.join(program_files_x86, "nodejs", "node.exe"),
                os.path.join(appdata, "npm", "node.exe"),
            ],
            "npm": [
                os.path.join(program_files, "nodejs", "npm.cmd"),
                os.path.join(appdata, "npm", "npm.cmd"),
            ],
            "php": [
                os.path.join(program_files, "PHP", "php.exe"),
                os.path.join(program_files_x86, "PHP", "php.exe"),
                "C:\\xampp\\php\\php.exe",
                "C:\\wamp\\bin\\php\\php.exe",
            ],
            "composer": [
                os.path.join(appdata, "Composer", "composer.bat"),
                os.path.join(local_appdata, "Composer", "composer.bat"),
            ],
            "python3": [
                os.path.join(local_appdata, "Programs", "Python", "Python312", "python.exe"),
                os.path.join(program_files, "Python312", "python.exe"),
            ],
        }
        return windows.get(tool, [])
    posix = {
        "composer": [
            "/usr/local/bin/composer",
            "/usr/bin/composer",
            str(home / ".composer" / "vendor" / "bin" / "composer"),
            str(home / ".config" / "composer" / "vendor" / "bin" / "composer"),
        ],
        "php": [
            "/usr/bin/php",
            "/usr/local/bin/php",
            "/opt/homebrew/bin/php",
            "/snap/bin/php",
            "/usr/local/php/bin/php",
        ],
    }
    if tool in posix:
        return posix[tool]
    return [
        f"/usr/bin/{tool}",
        f"/usr/local/bin/{tool}",
        f"/opt/homebrew/bin/{tool}",
        f"/snap/bin/{tool}",
    ]


class RuntimeLocator:
    """Find interpreter and package-manager executables, caching each answer.

    Lookup order: configured override, newest version-manager install,
    ``PATH``, well-known install locations, then the bare command name.

    Example:
        ```python
        locator = RuntimeLocator(overrides={"node": "/opt/node/bin/node"})
        node = locator.locate_interpreter("javascript")
        ```
    """

    def __init__(
        self,
        overrides: Mapping[str, str] | None = None,
        *,
        home: Path | None = None,
        platform: str | None = None,
    ) -> None:
        """Initialize a locator with optional per-tool path overrides.

        Example:
            ```python
            locator = RuntimeLocator(home=Path("/tmp/home"), platform="linux")
            ```
        """
        self._overrides = dict(overrides or {})
        self._home = home
        self._platform = platform or sys.platform
        self._lock = threading.Lock()
        self._cache: dict[str, str] = {}

    def locate_interpreter(self, language: str) -> str:
        """Return the interpreter command for ``language``.

        Unknown languages resolve to their own name.

        Example:
            ```python
            php = locator.locate_interpreter("php")
            ```
        """
        canonical = canonical_language(language)
        return self.resolve(INTERPRETERS.get(canonical or "", language))

    def locate_package_manager(self, language: str) -> str:
        """Return the package-manager command for ``language``.

        Example:
            ```python
            npm = locator.locate_package_manager("javascript")
            ```
        """
        canonical = canonical_language(language)
        return self.resolve(PACKAGE_MANAGERS.get(canonical or "", language))

    def resolve(self, tool: str) -> str:
        """Return a path (or, failing that, the bare name) for ``tool``.

        Never raises; a bad candidate only surfaces when spawning.

        Example:
            ```python
            path = locator.resolve("composer")
            ```
        """
        with self._lock:
            cached = self._cache.get(tool)
        if cached is not None:
            return cached
        try:
            found, source = self._lookup(tool)
        except OSError as exc:
            logger.warning("interpreter_lookup_failed", tool=tool, error=str(exc))
            found, source = tool, "fallback"
        logger.debug("interpreter_resolved", tool=tool, path=found, source=source)
        with self._lock:
            self._cache[tool] = found
        return found

    def clear_cache(self) -> None:
        """Forget every cached answer.

        Example:
            ```python
            locator.clear_cache()
            ```
        """
        with self._lock:
            self._cache.clear()

    def set_override(self, tool: str, path: str | None) -> None:
        """Pin (or unpin, with ``None``) the path used for ``tool``.

        Example:
            ```python
            locator.set_override("node", "/usr/local/bin/node")
            ```
        """
        with self._lock:
            if path:
                self._overrides[tool] = path
            else:
                self._overrides.pop(tool, None)
            self._cache.pop(tool, None)

    def _lookup(self, tool: str) -> tuple[str, str]:
        """Walk the lookup order once, returning the candidate and where it came from.

        Example:
            ```python
            path, source = locator._lookup("node")
            ```
        """
        override = self._overrides.get(tool)
        if override:
            return os.path.expanduser(override), "override"
        home = self._home or Path.home()
        from_manager = self._from_version_manager(tool, home)
        if from_manager is not None:
            return from_manager, "version_manager"
        on_path = shutil.which(tool)
        if on_path:
            return on_path, "path"
        for candidate in _common_paths(tool, self._platform, home, os.environ):
            if os.path.isfile(candidate):
                return candidate, "common_path"
        return tool, "fallback"

    def _from_version_manager(self, tool: str, home: Path) -> str | None:
        """Return ``tool`` from the newest version-manager install, if any.

        Example:
            ```python
            node = locator._from_version_manager("node", Path.home())
            ```
        """
        parts = _VERSION_MANAGER_ROOTS.get(tool)
        if parts is None:
            return None
        root = home.joinpath(*parts)
        if not root.is_dir():
            return None
        versions = sorted((entry.name for entry in root.iterdir() if entry.is_dir()), key=natural_key, reverse=True)
        for version in versions:
            candidate = root / version / "bin" / tool
            if candidate.is_file():
                return str(candidate)
        return None


DEFAULT_LOCATOR = RuntimeLocator()


def locate_interpreter(language: str) -> str:
    """Resolve an interpreter with the process-wide default locator.

    Example:
        ```python
        node = locate_interpreter("javascript")
        ```
    """
    return DEFAULT_LOCATOR.locate_interpreter(language)
