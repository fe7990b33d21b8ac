from __future__ import annotations

import argparse
import sys
from functools import partial
from pathlib import Path
from typing import Any, Never, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.pretty import Pretty
from rich.table import Table
from rich.text import Text
from rich_argparse import RawTextRichHelpFormatter
from snippet_eval import (
    CompileFailure,
    EngineConfig,
    Evaluator,
    InternalFailure,
    Outcome,
    RuntimeFailure,
    SecurityPolicy,
    Success,
    Timeout,
)
from snippet_eval.diagnostics import DiagnosticSet

_CONSOLE = Console(no_color=False)

EXIT_OK = 0
EXIT_SNIPPET_FAILED = 1
EXIT_INTERNAL = 2
EXIT_TIMEOUT = 124


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
        parser = _RichArgumentParser(prog="python -m sev")
        ```
    """

    def error(self, message: str) -> Never:
        """Render parse errors with Rich and exit.

        Example:
            ```python
            # parser.error("invalid usage")
            ```
        """
        _CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {escape(message)}", border_style="red"))
        self.print_help()
        raise SystemExit(EXIT_INTERNAL)


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for evaluating snippet files.

    Example:
        ```python
        parser = build_parser()
        ```
    """
    parser = _RichArgumentParser(
        prog="python -m sev",
        description=(
            "snippet-eval CLI\n"
            "Compile and run a Python snippet under a deadline and report the outcome.\n"
            "Exit codes: 0 success, 1 compile/runtime failure, 124 timeout, 2 internal error."
        ),
        epilog=(
            "Quick Examples:\n"
            "  python -m sev run snippet.py\n"
            "  python -m sev run snippet.py --prelude prelude.py --timeout 2\n"
            "  echo '1 + 1' | python -m sev run -\n"
            "  python -m sev run snippet.py --classpath ./lib --flag=-Werror\n"
            "  python -m sev policy --config engine.toml"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    parser.add_argument(
        "--config",
        help=(
            "Engine TOML file with an [engine] table and optional [policy] table.\n"
            "Command-line options override values from the file."
        ),
    )

    sub = parser.add_subparsers(
        dest="command",
        required=True,
        parser_class=_RichArgumentParser,
    )

    run_cmd = sub.add_parser(
        "run",
        help="Evaluate one snippet file.",
        description=(
            "Evaluate a snippet file and render the outcome.\n"
            "The value of the snippet's last expression is shown on success."
        ),
        epilog=(
            "Examples:\n"
            "  python -m sev run snippet.py\n"
            "  python -m sev run snippet.py --no-security --timeout 0.5"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    run_cmd.add_argument("snippet", help="Snippet file, or '-' to read standard input.")
    run_cmd.add_argument("--prelude", help="File emitted verbatim before the snippet.")
    run_cmd.add_argument(
        "--timeout",
        type=float,
        help="Deadline in seconds for compile and execute (default: 5).",
    )
    run_cmd.add_argument(
        "--classpath",
        action="append",
        default=[],
        help="Directory or zip archive searched for imports; repeatable.",
    )
    run_cmd.add_argument(
        "--flag",
        action="append",
        default=[],
        help=(
            "Compiler flag; repeatable. Use the '=' form for dashed values.\n"
            "Example: --flag=-O --flag=-Werror --flag=-future:annotations"
        ),
    )
    run_cmd.add_argument(
        "--no-security",
        action="store_true",
        help="Run without the restrictive security policy.",
    )
    run_cmd.add_argument(
        "--policy-file",
        help="Security policy TOML overriding the engine's policy.",
    )

    sub.add_parser(
        "policy",
        help="Show the effective security policy.",
        description="Print the security policy snippets would run under.",
        formatter_class=_HELP_FORMATTER,
    )

    return parser


def _read_source(path: str | None) -> str:
    """Read snippet text from a file path, `-` for stdin, or nothing.

    Example:
        ```python
        code = _read_source("snippet.py")
        ```
    """
    if path is None:
        return ""
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def build_config(args: argparse.Namespace) -> EngineConfig:
    """Create an EngineConfig from the config file and CLI overrides.

    Example:
        ```python
        config = build_config(args)
        ```
    """
    base = EngineConfig.from_file(args.config) if args.config else EngineConfig()
    if args.command != "run":
        return base
    policy = SecurityPolicy.from_file(args.policy_file) if args.policy_file else base.policy
    return EngineConfig(
        classpath=(*base.classpath, *args.classpath),
        compiler_flags=(*base.compiler_flags, *args.flag),
        security_enabled=base.security_enabled and not args.no_security,
        timeout_seconds=args.timeout if args.timeout is not None else base.timeout_seconds,
        policy=policy,
        max_units_per_target=base.max_units_per_target,
    )


def _print_diagnostics(diagnostics: DiagnosticSet) -> None:
    """Render compile diagnostics in a rich table.

    Example:
        ```python
        _print_diagnostics(outcome.diagnostics)
        ```
    """
    if not diagnostics:
        return
    table = Table(title="Diagnostics")
    table.add_column("Severity", style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("Message")
    for severity, items in diagnostics.items():
        for item in items:
            line = str(item.position.line) if item.position else "-"
            table.add_row(severity.value, line, Text(item.message))
    _CONSOLE.print(table)


def render_outcome(outcome: Outcome) -> int:
    """Print an outcome and return the matching exit code.

    Example:
        ```python
        code = render_outcome(Success(value=2))
        ```
    """
    if isinstance(outcome, Success):
        _print_diagnostics(outcome.diagnostics)
        if outcome.captured_output:
            output = Text(outcome.captured_output.rstrip("\n"))
            _CONSOLE.print(Panel(output, title="Output", border_style="cyan"))
        _CONSOLE.print(Panel.fit(Pretty(outcome.value), title="Result", border_style="green"))
        return EXIT_OK
    if isinstance(outcome, CompileFailure):
        _print_diagnostics(outcome.diagnostics)
        _CONSOLE.print(Panel.fit("Compilation failed", style="bold red"))
        return EXIT_SNIPPET_FAILED
    if isinstance(outcome, RuntimeFailure):
        _print_diagnostics(outcome.diagnostics)
        failure = outcome.failure
        if failure is None:
            message = "Snippet raised an unknown error"
        else:
            where = f" at line {failure.line}" if failure.line is not None else ""
            message = f"{type(failure.cause).__name__}{where}: {failure.cause}"
        _CONSOLE.print(Panel.fit(Text(message), title="Runtime failure", border_style="red"))
        return EXIT_SNIPPET_FAILED
    if isinstance(outcome, Timeout):
        _CONSOLE.print(Panel.fit("Evaluation timed out", style="bold yellow"))
        return EXIT_TIMEOUT
    if isinstance(outcome, InternalFailure):
        _CONSOLE.print(
            Panel.fit(
                Text(f"{type(outcome.cause).__name__}: {outcome.cause}"),
                title="Internal failure",
                border_style="red",
            )
        )
        return EXIT_INTERNAL
    return EXIT_INTERNAL


def _policy_rows(policy: SecurityPolicy) -> dict[str, Any]:
    """Return the policy fields shown by the `policy` command.

    Example:
        ```python
        rows = _policy_rows(SecurityPolicy())
        ```
    """
    return {
        "mode": policy.mode,
        "allowed_imports": policy.allowed_imports,
        "blocked_imports": policy.blocked_imports,
        "allowed_builtins": policy.allowed_builtins,
        "blocked_builtins": policy.blocked_builtins,
        "blocked_events": policy.blocked_events,
    }


def main(argv: Sequence[str] | None = None) -> int:
    """Run the `sev` CLI command handler.

    Example:
        ```python
        code = main(["run", "snippet.py"])
        ```
    """
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    try:
        config = build_config(args)
    except (OSError, ValueError) as exc:
        _CONSOLE.print(
            Panel.fit(f"[bold red]Invalid configuration:[/bold red] {escape(str(exc))}", border_style="red")
        )
        return EXIT_INTERNAL

    if args.command == "policy":
        _CONSOLE.print(
            Panel.fit(Pretty(_policy_rows(config.policy)), title="Security Policy", border_style="cyan")
        )
        return EXIT_OK
    if args.command == "run":
        try:
            code = _read_source(args.snippet)
            prelude = _read_source(args.prelude)
        except OSError as exc:
            _CONSOLE.print(Panel.fit(f"Cannot read snippet: {escape(str(exc))}", style="bold red"))
            return EXIT_INTERNAL
        return render_outcome(Evaluator(config).evaluate(prelude, code))

    parser.error("Unhandled command")
