from __future__ import annotations

from pathlib import Path

JAVASCRIPT = "javascript"
PHP = "php"
PYTHON = "python"

SUPPORTED_LANGUAGES = (JAVASCRIPT, PHP, PYTHON)

_ALIASES = {
    "javascript": JAVASCRIPT,
    "js": JAVASCRIPT,
    "node": JAVASCRIPT,
    "ts": JAVASCRIPT,
    "typescript": JAVASCRIPT,
    "php": PHP,
    "python": PYTHON,
    "python3": PYTHON,
    "py": PYTHON,
}

_SUFFIXES = {
    ".js": JAVASCRIPT,
    ".mjs": JAVASCRIPT,
    ".cjs": JAVASCRIPT,
    ".ts": JAVASCRIPT,
    ".php": PHP,
    ".py": PYTHON,
}


def canonical_language(name: str | None) -> str | None:
    """Map a language id or alias to its canonical id, or ``None`` if unknown.

    Example:
        ```python
        assert canonical_language("JS") == "javascript"
        ```
    """
    if not name:
        return None
    return _ALIASES.get(name.strip().lower())


def language_for_path(path: str | Path) -> str | None:
    """Guess the snippet language from a file suffix.

    Example:
        ```python
        assert language_for_path("scratch.php") == "php"
        ```
    """
    return _SUFFIXES.get(Path(path).suffix.lower())


def aliases_for(language: str) -> list[str]:
    """Return the alternative names accepted for a canonical language id.

    Example:
        ```python
        assert "py" in aliases_for("python")
        ```
    """
    return [alias for alias, target in _ALIASES.items() if target == language and alias != language]
