from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import sys
import uuid
from functools import partial
from pathlib import Path
from typing import Any, Never, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.pretty import Pretty
from rich.table import Table
from rich.text import Text
from rich_argparse import RawTextRichHelpFormatter
from tinker_runner import (
    EngineSettings,
    ExecutionCancelled,
    ExecutionResult,
    LocalEngine,
    auto_log,
    extract_magic_comments,
    submit_execution,
)
from tinker_runner.instrument import registered_profiles
from tinker_runner.languages import SUPPORTED_LANGUAGES, aliases_for, canonical_language, language_for_path
from tinker_runner.logs import setup_logging

_CONSOLE = Console(no_color=False)

_KIND_STYLES = {
    "log": "white",
    "info": "cyan",
    "warn": "yellow",
    "error": "bold red",
}


class _CLIHelpFormatter(RawTextRichHelpFormatter):
    """Rich formatter with explicit high-contrast CLI styles.

    Example:
        ```python
        parser = argparse.ArgumentParser(formatter_class=_CLIHelpFormatter)
        ```
    """

    styles = {
        "argparse.args": "bold cyan",
        "argparse.groups": "bold magenta",
        "argparse.help": "white",
        "argparse.metavar": "bold yellow",
        "argparse.prog": "bold bright_blue",
        "argparse.syntax": "bold bright_white",
        "argparse.text": "bright_white",
    }


_HELP_FORMATTER = partial(
    _CLIHelpFormatter,
    max_help_position=34,
    width=120,
)


class _RichArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that renders errors via Rich.

    Example:
        ```python
        parser = _RichArgumentParser(prog="tkr")
        ```
    """

    def error(self, message: str) -> Never:
        """Render parse errors with Rich and exit.

        Example:
            ```python
            # parser.error("invalid usage")
            ```
        """
        _CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {message}", border_style="red"))
        self.print_help()
        raise SystemExit(2)


def _add_language_option(command: argparse.ArgumentParser) -> None:
    """Attach the shared ``--language`` option.

    Example:
        ```python
        _add_language_option(run_cmd)
        ```
    """
    command.add_argument(
        "-l",
        "--language",
        help=(
            "Snippet language or alias (javascript/js/node, php, python/py).\n"
            "Default: inferred from the file suffix."
        ),
    )


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for running and inspecting snippets.

    Example:
        ```python
        parser = build_parser()
        ```
    """
    parser = _RichArgumentParser(
        prog="tkr",
        description=(
            "tinker-runner CLI\n"
            "Run JavaScript, PHP and Python snippets and show their output,\n"
            "final value and `$` magic-comment probes."
        ),
        epilog=(
            "Quick Examples:\n"
            "  tkr run scratch.js\n"
            "  tkr run scratch.php --timeout 5\n"
            "  tkr run - --language python < snippet.py\n"
            "  tkr probes scratch.js\n"
            "  tkr transform scratch.py\n"
            "  tkr which javascript php\n"
            "  tkr languages"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    sub = parser.add_subparsers(
        dest="command",
        required=True,
        parser_class=_RichArgumentParser,
    )

    run_cmd = sub.add_parser(
        "run",
        help="Execute a snippet file.",
        description=(
            "Instrument and execute a snippet with the matching interpreter.\n"
            "Exit code is 0 on success, 1 when the run reports an error, 130 when cancelled."
        ),
        epilog=(
            "Examples:\n"
            "  tkr run scratch.js\n"
            "  tkr run scratch.py --no-auto-log --json"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    run_cmd.add_argument("file", help="Snippet file, or `-` to read stdin (needs --language).")
    _add_language_option(run_cmd)
    run_cmd.add_argument(
        "--no-auto-log",
        action="store_true",
        help="Do not wrap bare expression lines in the language's output call.",
    )
    run_cmd.add_argument(
        "--timeout",
        type=float,
        help="Wall-clock limit in seconds; 0 disables it (default: from settings, 30).",
    )
    run_cmd.add_argument(
        "--settings",
        help="Path to a settings TOML file.",
    )
    run_cmd.add_argument(
        "--json",
        action="store_true",
        help="Print the raw result as JSON instead of tables.",
    )
    run_cmd.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show engine debug logs on stderr and error stacks.",
    )

    probes_cmd = sub.add_parser(
        "probes",
        help="List the magic comments found in a snippet.",
        description="Show every `$` probe annotation with its line number.",
        formatter_class=_HELP_FORMATTER,
    )
    probes_cmd.add_argument("file")
    _add_language_option(probes_cmd)

    transform_cmd = sub.add_parser(
        "transform",
        help="Print a snippet after the auto-log transform.",
        description="Show which bare expression lines would be wrapped in an output call.",
        formatter_class=_HELP_FORMATTER,
    )
    transform_cmd.add_argument("file")
    _add_language_option(transform_cmd)

    which_cmd = sub.add_parser(
        "which",
        help="Show the interpreters and package managers that would be used.",
        description="Resolve interpreter and package-manager paths per language.",
        epilog=(
            "Examples:\n"
            "  tkr which\n"
            "  tkr which php --settings ~/.tinker-runner/settings.toml"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    which_cmd.add_argument("languages", nargs="*", help="Languages to resolve (default: all).")
    which_cmd.add_argument("--settings", help="Path to a settings TOML file.")

    sub.add_parser(
        "languages",
        help="List supported languages.",
        description="Show every supported language with its aliases and dependency directory.",
        formatter_class=_HELP_FORMATTER,
    )

    return parser


def build_engine(settings: EngineSettings) -> LocalEngine:
    """Create the engine used by ``tkr run``.

    Example:
        ```python
        engine = build_engine(EngineSettings())
        ```
    """
    return LocalEngine(settings)


def _load_settings(path: str | None) -> EngineSettings:
    """Load settings from ``path`` or fall back to the bundled defaults.

    Example:
        ```python
        settings = _load_settings(None)
        ```
    """
    if path is None:
        return EngineSettings()
    return EngineSettings.from_file(str(Path(path).expanduser()))


def _read_snippet(file: str, language: str | None) -> tuple[str, str]:
    """Return ``(code, canonical_language)`` for a snippet argument.

    Raises ``ValueError`` with a user-facing message when either is unusable.

    Example:
        ```python
        code, language = _read_snippet("scratch.js", None)
        ```
    """
    if language is not None:
        resolved = canonical_language(language)
        if resolved is None:
            raise ValueError(f"Unsupported language: {language}")
    elif file == "-":
        raise ValueError("--language is required when reading from stdin")
    else:
        resolved = language_for_path(file)
        if resolved is None:
            raise ValueError(f"Cannot infer the language of {file}; pass --language")
    if file == "-":
        return sys.stdin.read(), resolved
    path = Path(file).expanduser()
    if not path.is_file():
        raise ValueError(f"No such file: {file}")
    return path.read_text(encoding="utf-8"), resolved


def _print_error_panel(message: str) -> None:
    """Render a short failure message.

    Example:
        ```python
        _print_error_panel("No such file: x.js")
        ```
    """
    _CONSOLE.print(Panel.fit(Text(message), title="Error", border_style="red"))


def _print_result(result: ExecutionResult, verbose: bool) -> None:
    """Render output entries, value, probes and error of one run.

    Example:
        ```python
        _print_result(result, verbose=False)
        ```
    """
    for entry in result.output:
        _CONSOLE.print(Text(entry.text, style=_KIND_STYLES.get(entry.kind, "white")), soft_wrap=True)
    if result.has_value:
        _CONSOLE.print(Panel.fit(Pretty(result.value), title="Value", border_style="cyan"))
    if result.probes:
        table = Table(title="Probes")
        table.add_column("Line", style="cyan", justify="right")
        table.add_column("Expression", style="magenta")
        table.add_column("Value")
        table.add_column("Error", style="red")
        for probe in result.probes:
            value = "" if probe.error is not None and probe.value is None else json.dumps(probe.value)
            table.add_row(str(probe.line), probe.expression, value, probe.error or "")
        _CONSOLE.print(table)
    if result.error is not None:
        body = result.error.message
        if verbose and result.error.stack:
            body = f"{body}\n\n{result.error.stack}"
        title = result.error.name or "Error"
        _CONSOLE.print(Panel(Text(body), title=title, border_style="red"))
    if result.timed_out:
        _CONSOLE.print(Panel.fit("Execution timed out", style="bold yellow"))


def _run(args: argparse.Namespace) -> int:
    """Handle ``tkr run``.

    Example:
        ```python
        code = _run(build_parser().parse_args(["run", "scratch.py"]))
        ```
    """
    try:
        code, language = _read_snippet(args.file, args.language)
        settings = _load_settings(args.settings)
    except ValueError as exc:
        _print_error_panel(str(exc))
        return 2
    changes: dict[str, Any] = {}
    if args.no_auto_log:
        changes["auto_log"] = False
    if args.timeout is not None:
        changes["timeout_seconds"] = args.timeout
    try:
        settings = dataclasses.replace(settings, **changes)
    except ValueError as exc:
        _print_error_panel(str(exc))
        return 2
    setup_logging("debug" if args.verbose else settings.log_level, settings.log_format)

    engine = build_engine(settings)
    execution_id = uuid.uuid4().hex
    try:
        result = asyncio.run(
            submit_execution(code, language, engine=engine, settings=settings, execution_id=execution_id)
        )
    except (KeyboardInterrupt, ExecutionCancelled):
        engine.cancel_all()
        _CONSOLE.print(Panel.fit("Execution cancelled", style="bold yellow"))
        return 130

    if args.json:
        sys.stdout.write(json.dumps(result.to_dict(), indent=2) + "\n")
    else:
        _print_result(result, args.verbose)
    return 0 if result.ok else 1


def _probes(args: argparse.Namespace) -> int:
    """Handle ``tkr probes``.

    Example:
        ```python
        code = _probes(build_parser().parse_args(["probes", "scratch.js"]))
        ```
    """
    try:
        code, language = _read_snippet(args.file, args.language)
    except ValueError as exc:
        _print_error_panel(str(exc))
        return 2
    comments = extract_magic_comments(code, language)
    if not comments:
        _CONSOLE.print(Panel.fit("No magic comments found.", style="bold yellow"))
        return 0
    table = Table(title="Magic Comments")
    table.add_column("Line", style="cyan", justify="right")
    table.add_column("Expression", style="magenta")
    for comment in comments:
        table.add_row(str(comment.line), comment.expression)
    _CONSOLE.print(table)
    return 0


def _transform(args: argparse.Namespace) -> int:
    """Handle ``tkr transform``.

    Example:
        ```python
        code = _transform(build_parser().parse_args(["transform", "scratch.py"]))
        ```
    """
    try:
        code, language = _read_snippet(args.file, args.language)
    except ValueError as exc:
        _print_error_panel(str(exc))
        return 2
    sys.stdout.write(auto_log(code, language))
    if not code.endswith("\n"):
        sys.stdout.write("\n")
    return 0


def _which(args: argparse.Namespace) -> int:
    """Handle ``tkr which``.

    Example:
        ```python
        code = _which(build_parser().parse_args(["which", "php"]))
        ```
    """
    requested = args.languages or list(SUPPORTED_LANGUAGES)
    languages: list[str] = []
    for name in requested:
        resolved = canonical_language(name)
        if resolved is None:
            _print_error_panel(f"Unsupported language: {name}")
            return 2
        languages.append(resolved)
    try:
        settings = _load_settings(args.settings)
    except ValueError as exc:
        _print_error_panel(str(exc))
        return 2
    setup_logging(settings.log_level, settings.log_format)
    locator = build_engine(settings).locator
    table = Table(title="Runtimes")
    table.add_column("Language", style="cyan")
    table.add_column("Interpreter", style="magenta")
    table.add_column("Package manager")
    for language in languages:
        table.add_row(language, locator.locate_interpreter(language), locator.locate_package_manager(language))
    _CONSOLE.print(table)
    return 0


def _languages(_args: argparse.Namespace) -> int:
    """Handle ``tkr languages``.

    Example:
        ```python
        code = _languages(argparse.Namespace())
        ```
    """
    data_dir = EngineSettings().data_dir
    table = Table(title="Supported Languages")
    table.add_column("Language", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Aliases")
    table.add_column("Suffix")
    table.add_column("Dependencies")
    for profile in registered_profiles():
        table.add_row(
            profile.language,
            profile.display_name,
            ", ".join(aliases_for(profile.language)),
            profile.suffix,
            str(profile.dependency_dir(data_dir)),
        )
    _CONSOLE.print(table)
    return 0


_HANDLERS = {
    "run": _run,
    "probes": _probes,
    "transform": _transform,
    "which": _which,
    "languages": _languages,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Run the `tkr` CLI command handler.

    Example:
        ```python
        code = main(["run", "scratch.py"])
        ```
    """
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    handler = _HANDLERS.get(args.command)
    if handler is None:
        parser.error("Unhandled command")
    return handler(args)
