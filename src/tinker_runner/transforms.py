"""Auto-log transform.

Wraps bare expression statements such as ``user.name`` in the language's
output call so their values show up without an explicit ``console.log``.
This is a line heuristic, not a parser: it keeps a running brace depth and
paren depth by counting characters and only rewrites top-level lines that
look like an identifier followed by member, index or call chains. Lines it
is not sure about pass through untouched, and the line count never changes.

A language can replace the heuristic with its own callable through
``register_transform``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import partial
from typing import Callable

from .languages import JAVASCRIPT, PHP, PYTHON, canonical_language

AutoLogTransform = Callable[[str], str]

_ASSIGNMENT = re.compile(r"=\s*[^=]")
_PHP_SIMPLE_VARIABLE = re.compile(r"\$[A-Za-z_][A-Za-z0-9_]*")
PYTHON_DISPLAY = "__tinker_display__"


@dataclass(frozen=True, slots=True)
class AutoLogRules:
    """Per-language knobs for the line heuristic.

    Example:
        ```python
        rules = RULES["javascript"]
        assert "const" in rules.statement_keywords
        ```
    """

    language: str
    line_comments: tuple[str, ...]
    block_comments: tuple[tuple[str, str], ...]
    statement_keywords: frozenset[str]
    assignment_exclusions: tuple[str, ...]
    expression_pattern: re.Pattern[str]
    output_calls: tuple[str, ...]
    wrap: Callable[[str], str]
    block_openers: tuple[str, ...] = ("{",)
    paren_chars: tuple[str, str] = ("(", ")")
    colon_guard: bool = True
    indented_is_nested: bool = False


def _wrap_javascript(expression: str) -> str:
    """Wrap a JavaScript expression in ``console.log``.

    Example:
        ```python
        assert _wrap_javascript("a.b") == "console.log(a.b);"
        ```
    """
    return f"console.log({expression});"


def _wrap_php(expression: str) -> str:
    """Wrap a PHP expression: ``var_export`` for plain variables, ``print_r`` otherwise.

    Example:
        ```python
        assert _wrap_php("$x").startswith("echo var_export($x, true)")
        ```
    """
    if _PHP_SIMPLE_VARIABLE.fullmatch(expression):
        return f'echo var_export({expression}, true) . "\\n";'
    return f'echo print_r({expression}, true) . "\\n";'


def _wrap_python(expression: str) -> str:
    """Wrap a Python expression in the harness display hook.

    The hook prints the value unless it is ``None``, like the interactive
    interpreter, so calls such as ``xs.append(1)`` stay silent.

    Example:
        ```python
        assert _wrap_python("len(xs)") == "__tinker_display__(len(xs))"
        ```
    """
    return f"{PYTHON_DISPLAY}({expression})"


RULES: dict[str, AutoLogRules] = {
    JAVASCRIPT: AutoLogRules(
        language=JAVASCRIPT,
        line_comments=("//",),
        block_comments=(("/*", "*/"),),
        statement_keywords=frozenset(
            {
                "const", "let", "var", "function", "class", "if", "else", "for", "while",
                "do", "switch", "case", "default", "try", "catch", "finally", "throw",
                "return", "break", "continue", "import", "export", "async", "await", "yield",
                "debugger", "with", "enum", "interface", "type", "namespace", "new", "delete",
            }
        ),
        assignment_exclusions=("==", "!=", "=>", "<=", ">="),
        expression_pattern=re.compile(
            r"[A-Za-z_$][\w$]*(?:\.[A-Za-z_$][\w$]*|\[[^\]]*\]|\([^)]*\))*"
        ),
        output_calls=("console.log", "console.error", "console.warn", "console.info"),
        wrap=_wrap_javascript,
    ),
    PHP: AutoLogRules(
        language=PHP,
        line_comments=("//", "#"),
        block_comments=(("/*", "*/"),),
        statement_keywords=frozenset(
            {
                "function", "class", "if", "else", "elseif", "for", "foreach", "while",
                "do", "switch", "case", "default", "try", "catch", "finally", "throw",
                "return", "break", "continue", "goto", "declare", "namespace", "use",
                "abstract", "final", "private", "public", "protected", "static", "const",
                "require", "require_once", "include", "include_once", "echo", "print",
                "print_r", "var_dump", "var_export",
            }
        ),
        assignment_exclusions=("==", "!=", "=>", "<=>", "<=", ">="),
        expression_pattern=re.compile(
            r"\$[A-Za-z_][A-Za-z0-9_]*(?:->[A-Za-z_][A-Za-z0-9_]*|\[[^\]]*\]|\([^)]*\))*"
        ),
        output_calls=("echo", "print", "print_r", "var_dump", "var_export"),
        wrap=_wrap_php,
    ),
    PYTHON: AutoLogRules(
        language=PYTHON,
        line_comments=("#",),
        block_comments=(('"""', '"""'), ("'''", "'''")),
        statement_keywords=frozenset(
            {
                "def", "class", "if", "elif", "else", "for", "while", "try", "except",
                "finally", "with", "return", "import", "from", "raise", "pass", "break",
                "continue", "del", "global", "nonlocal", "assert", "yield", "async",
                "await", "lambda", "match", "case", "print",
            }
        ),
        assignment_exclusions=("==", "!=", "<=", ">="),
        expression_pattern=re.compile(
            r"[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*|\[[^\]]*\]|\([^)]*\))*"
        ),
        output_calls=("print", PYTHON_DISPLAY),
        wrap=_wrap_python,
        block_openers=("{", ":"),
        paren_chars=("([", ")]"),
        colon_guard=False,
        indented_is_nested=True,
    ),
}


def _scan_block_comment(
    trimmed: str,
    active: str | None,
    pairs: tuple[tuple[str, str], ...],
) -> tuple[str | None, bool]:
    """Track block comments across lines.

    Returns the closing marker still awaited after this line (or ``None``) and
    whether this line belongs to a block comment and must be left alone.

    Example:
        ```python
        active, skip = _scan_block_comment("/* start", None, (("/*", "*/"),))
        assert (active, skip) == ("*/", True)
        ```
    """
    if active is not None:
        symmetric = any(opener == closer == active for opener, closer in pairs)
        closed = trimmed.count(active) % 2 == 1 if symmetric else active in trimmed
        return (None if closed else active), True
    for opener, closer in pairs:
        if opener in trimmed:
            if opener == closer:
                still_open = trimmed.count(opener) % 2 == 1
            else:
                still_open = closer not in trimmed
            return (closer if still_open else None), True
    for _, closer in pairs:
        if closer in trimmed:
            return None, True
    return None, False


def _split_trailing_comment(trimmed: str, markers: tuple[str, ...]) -> tuple[str, str]:
    """Split ``code // comment`` into its code part and the comment with its spacing.

    Example:
        ```python
        assert _split_trailing_comment("x // $ x", ("//",)) == ("x", " // $ x")
        ```
    """
    pattern = re.compile(r"\s+(?:" + "|".join(re.escape(marker) for marker in markers) + r")")
    match = pattern.search(trimmed)
    if match is None:
        return trimmed, ""
    return trimmed[: match.start()], trimmed[match.start():]


def _has_assignment(body: str, exclusions: tuple[str, ...]) -> bool:
    """Return whether a line looks like an assignment rather than a comparison.

    Example:
        ```python
        assert _has_assignment("x = 1", ("==",))
        assert not _has_assignment("a == b", ("==",))
        ```
    """
    if _ASSIGNMENT.search(body) is None:
        return False
    return not any(operator in body for operator in exclusions)


def _is_output_call(expression: str, output_calls: tuple[str, ...]) -> bool:
    """Return whether the expression already starts with an output call.

    Example:
        ```python
        assert _is_output_call("console.log(x)", ("console.log",))
        assert not _is_output_call("printer.status", ("print",))
        ```
    """
    return any(re.match(re.escape(call) + r"(?![\w$])", expression) for call in output_calls)


def _rewrite_line(line: str, trimmed: str, rules: AutoLogRules) -> str | None:
    """Return the wrapped form of a top-level line, or ``None`` to keep it.

    Example:
        ```python
        assert _rewrite_line("  total", "total", RULES["javascript"]) == "  console.log(total);"
        ```
    """
    body, comment = _split_trailing_comment(trimmed, rules.line_comments)
    first_word = re.split(r"[\s(]", body, maxsplit=1)[0]
    if first_word in rules.statement_keywords:
        return None
    if body.startswith(("{", "}")) or body.endswith(rules.block_openers):
        return None
    if rules.colon_guard and ":" in body and "?" not in body:
        return None
    if _has_assignment(body, rules.assignment_exclusions):
        return None
    expression = body[:-1].rstrip() if body.endswith(";") else body
    if not expression or rules.expression_pattern.fullmatch(expression) is None:
        return None
    if _is_output_call(expression, rules.output_calls):
        return None
    indent = line[: len(line) - len(line.lstrip())]
    return indent + rules.wrap(expression) + comment


def apply_rules(code: str, rules: AutoLogRules) -> str:
    """Run the line heuristic described by ``rules`` over ``code``.

    Example:
        ```python
        out = apply_rules("const a = [1]\\na.length", RULES["javascript"])
        assert out.splitlines()[1] == "console.log(a.length);"
        ```
    """
    if not code or not code.strip():
        return code
    opening, closing = rules.paren_chars
    processed: list[str] = []
    active_comment: str | None = None
    brace_depth = 0
    paren_depth = 0
    for line in code.split("\n"):
        trimmed = line.strip()
        if not trimmed or trimmed.startswith(rules.line_comments):
            processed.append(line)
            continue
        if rules.block_comments:
            active_comment, inside = _scan_block_comment(trimmed, active_comment, rules.block_comments)
            if inside:
                processed.append(line)
                continue
        at_top_level = brace_depth <= 0 and paren_depth <= 0
        if rules.indented_is_nested and line[:1].isspace():
            at_top_level = False
        brace_depth += line.count("{") - line.count("}")
        paren_depth += sum(line.count(char) for char in opening) - sum(line.count(char) for char in closing)
        rewritten = _rewrite_line(line, trimmed, rules) if at_top_level else None
        processed.append(line if rewritten is None else rewritten)
    return "\n".join(processed)


_TRANSFORMS: dict[str, AutoLogTransform] = {}


def register_transform(language: str, transform: AutoLogTransform) -> None:
    """Install the auto-log transform used for ``language``.

    Example:
        ```python
        register_transform("javascript", lambda code: code)  # disable the heuristic
        ```
    """
    _TRANSFORMS[canonical_language(language) or language] = transform


def auto_log(code: str, language: str) -> str:
    """Apply the registered auto-log transform; unknown languages pass through.

    Example:
        ```python
        assert auto_log("$total;", "php") == 'echo var_export($total, true) . "\\n";'
        ```
    """
    transform = _TRANSFORMS.get(canonical_language(language) or language)
    if transform is None:
        return code
    return transform(code)


for _language, _rules in RULES.items():
    register_transform(_language, partial(apply_rules, rules=_rules))
