"""PHP profile.

Output goes through ``ob_start`` and is split into one ``log`` entry per
non-blank line. The error handler drains that buffer before recording a
warning so entries stay in the order they happened. A shutdown function emits
the payload, which covers ``exit()`` and fatal errors as well as the normal
path; a flag keeps it to a single write.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Mapping, Sequence

from ..languages import PHP
from ..magic import MagicComment
from .profiles import TargetProfile, php_string, render_template

_OPEN_TAG = re.compile(r"^\s*<\?(?:php\b|=)?")
_CLOSE_TAG = re.compile(r"\?>\s*$")
_USE_LINE = re.compile(r"^\s*use\s+[^;]+;\s*$")
_SIMPLE_IDENTIFIER = re.compile(r"\$?([A-Za-z_][A-Za-z0-9_]*)")

_HARNESS = """\
<?php
{{USES}}
$__tinker_autoload = {{AUTOLOAD}};
if (is_file($__tinker_autoload)) {
    require_once $__tinker_autoload;
}
$__tinker_output = [];
$__tinker_probes = [];
$__tinker_error = null;
$__tinker_emitted = false;

function __tinker_drain(array &$output): void
{
    $text = ob_get_contents();
    if ($text === false || $text === '') {
        return;
    }
    ob_clean();
    foreach (preg_split('/\\r\\n|\\r|\\n/', $text) as $line) {
        if (trim($line) !== '') {
            $output[] = ['kind' => 'log', 'text' => $line];
        }
    }
}

function __tinker_plain($value)
{
    if (is_resource($value)) {
        return '[Non-serializable: resource]';
    }
    $encoded = json_encode($value);
    if ($encoded === false) {
        return '[Non-serializable: ' . gettype($value) . ']';
    }
    return json_decode($encoded, true);
}

set_error_handler(function ($severity, $message, $file = '', $line = 0) use (&$__tinker_output) {
    if (!(error_reporting() & $severity)) {
        return false;
    }
    if (strpos($message, 'Undefined variable') !== false) {
        return true;
    }
    __tinker_drain($__tinker_output);
    $kind = in_array($severity, [E_USER_ERROR, E_RECOVERABLE_ERROR], true) ? 'error' : 'warn';
    $__tinker_output[] = ['kind' => $kind, 'text' => $message];
    return true;
});

ob_start();
$__tinker_ob_level = ob_get_level();

$__tinker_emit = function () use (&$__tinker_output, &$__tinker_probes, &$__tinker_error, &$__tinker_emitted, $__tinker_ob_level) {
    if ($__tinker_emitted) {
        return;
    }
    $__tinker_emitted = true;
    while (ob_get_level() > $__tinker_ob_level) {
        ob_end_flush();
    }
    if (ob_get_level() === $__tinker_ob_level) {
        __tinker_drain($__tinker_output);
        ob_end_clean();
    }
    if ($__tinker_error === null) {
        $last = error_get_last();
        if ($last !== null && in_array($last['type'], [E_ERROR, E_PARSE, E_CORE_ERROR, E_COMPILE_ERROR], true)) {
            $__tinker_error = ['message' => $last['message'], 'stack' => null, 'name' => 'FatalError'];
        }
    }
    $flags = JSON_PRETTY_PRINT | JSON_UNESCAPED_UNICODE | JSON_PARTIAL_OUTPUT_ON_ERROR | JSON_INVALID_UTF8_SUBSTITUTE;
    $json = json_encode(['output' => $__tinker_output, 'error' => $__tinker_error, 'probes' => $__tinker_probes], $flags);
    if ($json === false) {
        $json = json_encode(['output' => $__tinker_output, 'error' => $__tinker_error], $flags);
    }
    fwrite(STDOUT, {{START}} . "\\n" . $json . "\\n" . {{END}} . "\\n");
};
register_shutdown_function($__tinker_emit);

try {
{{CODE}}
{{PROBES}}
} catch (\\Throwable $__tinker_caught) {
    $__tinker_error = [
        'message' => $__tinker_caught->getMessage(),
        'stack' => $__tinker_caught->getTraceAsString(),
        'name' => get_class($__tinker_caught),
    ];
}
$__tinker_emit();
"""

_PROBE = """\
try {
    $__tinker_value = {{EVALUATE}};
    $__tinker_probes[] = ['line' => {{LINE}}, 'expression' => {{EXPRESSION}}, 'value' => __tinker_plain($__tinker_value)];
} catch (\\Throwable $__tinker_probe_error) {
    $__tinker_probes[] = ['line' => {{LINE}}, 'expression' => {{EXPRESSION}}, 'value' => null, 'error' => $__tinker_probe_error->getMessage()];
}"""


def strip_php_tags(code: str) -> str:
    """Remove a leading opening tag and a trailing ``?>`` from ``code``.

    Example:
        ```python
        assert strip_php_tags("<?php\\necho 1;\\n?>") == "\\necho 1;\\n"
        ```
    """
    code = _OPEN_TAG.sub("", code, count=1)
    return _CLOSE_TAG.sub("", code, count=1)


def hoist_use_statements(code: str) -> tuple[list[str], str]:
    """Split top-level ``use ...;`` import lines from the rest of ``code``.

    Hoisted lines are blanked in place so line numbers do not shift.

    Example:
        ```python
        uses, body = hoist_use_statements("use Carbon\\\\Carbon;\\nCarbon::now();")
        assert uses == ["use Carbon\\\\Carbon;"]
        ```
    """
    uses: list[str] = []
    kept: list[str] = []
    for line in code.split("\n"):
        if _USE_LINE.match(line):
            uses.append(line.strip())
            kept.append("")
        else:
            kept.append(line)
    return uses, "\n".join(kept)


def probe_evaluation(expression: str) -> str:
    """Return the PHP expression that evaluates one probe.

    A bare name (with or without ``$``) reads the variable with ``@`` so an
    undefined one is simply ``null``; anything else goes through ``eval`` so
    a broken expression only fails its own probe.

    Example:
        ```python
        assert probe_evaluation("total") == "@$total"
        assert probe_evaluation("count($xs)") == "eval('return count($xs);')"
        ```
    """
    simple = _SIMPLE_IDENTIFIER.fullmatch(expression.strip())
    if simple is not None:
        return f"@${simple.group(1)}"
    body = expression.strip().rstrip(";")
    return f"eval({php_string(f'return {body};')})"


class PhpProfile(TargetProfile):
    """Run snippets with the PHP CLI.

    Example:
        ```python
        script = PhpProfile().build_script("<?php echo 1;", [], data_dir)
        ```
    """

    language = PHP
    display_name = "PHP"
    suffix = ".php"
    start_sentinel = "__TINKER_PHP_RESULT_START__"
    end_sentinel = "__TINKER_PHP_RESULT_END__"
    dependency_subdir = "vendor"
    comment_markers = ("//", "#")
    parse_error_marker = "Parse error"
    interpreter_args = ("-d", "display_errors=stderr", "-d", "log_errors=0")

    def build_script(self, code: str, magic_comments: Sequence[MagicComment], data_dir: Path) -> str:
        """Wrap ``code`` in the output-buffering harness.

        Example:
            ```python
            script = profile.build_script("$x = 41; // $ x", [MagicComment(1, "x")], data_dir)
            ```
        """
        uses, body = hoist_use_statements(strip_php_tags(code))
        probes = "\n".join(
            render_template(
                _PROBE,
                EVALUATE=probe_evaluation(comment.expression),
                LINE=str(comment.line),
                EXPRESSION=php_string(comment.expression),
            )
            for comment in magic_comments
        )
        return render_template(
            _HARNESS,
            USES="\n".join(uses),
            AUTOLOAD=php_string(str(self.dependency_dir(data_dir) / "autoload.php")),
            START=php_string(self.start_sentinel),
            END=php_string(self.end_sentinel),
            CODE=body,
            PROBES=probes,
        )

    def child_env(
        self,
        data_dir: Path,
        interpreter: str,
        base: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Point ``COMPOSER_HOME`` at the user data directory.

        Example:
            ```python
            env = profile.child_env(data_dir, "php")
            ```
        """
        env = super().child_env(data_dir, interpreter, base)
        env["COMPOSER_HOME"] = str(data_dir)
        return env
