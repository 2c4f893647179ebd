"""Magic-comment extraction.

A magic comment is a trailing annotation such as ``// $ user.name`` (or
``# $ total`` in Python) asking for the value of an expression after the
snippet has run. Extraction never rewrites the snippet: annotations stay in
place as ordinary comments, so probe line numbers keep matching the source.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .languages import JAVASCRIPT, PHP, PYTHON, canonical_language

_MARKER_PATTERNS = {
    JAVASCRIPT: re.compile(r"//\s*\$\s*(.+)"),
    PHP: re.compile(r"(?://|#)\s*\$\s*(.+)"),
    PYTHON: re.compile(r"#\s*\$\s*(.+)"),
}


@dataclass(frozen=True, slots=True)
class MagicComment:
    """One probe request: evaluate ``expression`` and report it on ``line``.

    Example:
        ```python
        probe = MagicComment(line=3, expression="items.length")
        ```
    """

    line: int
    expression: str

    def to_dict(self) -> dict[str, object]:
        """Return the JSON-friendly form used by the CLI.

        Example:
            ```python
            MagicComment(1, "x").to_dict()  # {"line": 1, "expression": "x"}
            ```
        """
        return {"line": self.line, "expression": self.expression}


def extract_magic_comments(code: str, language: str = JAVASCRIPT) -> list[MagicComment]:
    """Scan ``code`` and return its probes in source line order.

    Lines are numbered from 1. Only the first annotation on a line counts and
    annotations with an empty expression are ignored. Unknown languages use the
    JavaScript marker.

    Example:
        ```python
        probes = extract_magic_comments("const x = 1 // $ x\\n", "javascript")
        assert probes == [MagicComment(line=1, expression="x")]
        ```
    """
    pattern = _MARKER_PATTERNS.get(canonical_language(language) or JAVASCRIPT, _MARKER_PATTERNS[JAVASCRIPT])
    found: list[MagicComment] = []
    for index, line in enumerate(code.split("\n"), start=1):
        match = pattern.search(line)
        if match is None:
            continue
        expression = match.group(1).strip()
        if expression:
            found.append(MagicComment(line=index, expression=expression))
    return found
