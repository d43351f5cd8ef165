from __future__ import annotations

import argparse
from dataclasses import replace
from functools import partial
from pathlib import Path
from typing import Any, Never, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.pretty import Pretty
from rich.table import Table
from rich_argparse import RawTextRichHelpFormatter

from fence_runner import RegistryError, Runner, RunnerSettings, load_languages, load_settings
from fence_runner.execution import DEFAULT_CAPABILITIES, Failure
from fence_runner.languages import dump_languages, pull_languages
from fence_runner.logging import configure_logging

_CONSOLE = Console(no_color=False)


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
        parser = _RichArgumentParser(prog="frun")
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


def _add_source_options(cmd: argparse.ArgumentParser) -> None:
    """Attach the options shared by commands that read documents.

    Example:
        ```python
        _add_source_options(run_cmd)
        ```
    """
    cmd.add_argument("sources", nargs="*", metavar="SOURCE", help="Markdown documents to scan.")
    cmd.add_argument(
        "-L",
        "--languages",
        help=(
            "Location of the languages.yml catalog used to resolve tags.\n"
            "Default: <tmpdir>/.fence-runner/languages.yml"
        ),
    )
    cmd.add_argument(
        "-N",
        "--no-auto-pull",
        action="store_true",
        help="Do not download languages.yml when it is missing.",
    )
    cmd.add_argument("--config", help="TOML file with a [runner] table.")
    cmd.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Log level (default: from config, INFO).",
    )
    cmd.add_argument("-D", "--debug", action="store_true", help="Shorthand for --log-level DEBUG.")


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for fence-runner.

    Example:
        ```python
        parser = build_parser()
        ```
    """
    parser = _RichArgumentParser(
        prog="frun",
        description=(
            "fence-runner CLI\n"
            "Run the fenced code examples of Markdown documents.\n"
            "Each failing example is reported with its document, line and language."
        ),
        epilog=(
            "Quick Examples:\n"
            "  frun run README.md docs/*.md\n"
            "  frun run README.md --count 12\n"
            "  frun extract README.md -o build/examples\n"
            "  frun list-capabilities\n"
            "  frun pull-languages\n"
            "  frun dump-languages"
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
        help="Run every example and report failures.",
        description=(
            "Run every fenced example whose language has a capability.\n"
            "Unknown languages and skipped examples never count as failures."
        ),
        epilog=(
            "Examples:\n"
            "  frun run README.md\n"
            "  frun run README.md --count 4 --timeout-seconds 30"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    _add_source_options(run_cmd)
    run_cmd.add_argument(
        "-c",
        "--count",
        type=int,
        default=0,
        help="Expected number of examples; 0 disables the check (default: 0).",
    )
    run_cmd.add_argument(
        "--timeout-seconds",
        type=int,
        help="Hard limit for each example command (default: from config, 120).",
    )

    extract_cmd = sub.add_parser(
        "extract",
        help="Write examples to disk without running them.",
        description=(
            "Extract every runnable example into one directory.\n"
            "Files are named <document>-<ordinal><extension>."
        ),
        epilog=(
            "Example:\n"
            "  frun extract README.md -o build/examples"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    _add_source_options(extract_cmd)
    extract_cmd.add_argument(
        "-o",
        "--output-dir",
        help="Destination directory (default: a new temporary directory).",
    )

    sub.add_parser(
        "list-capabilities",
        help="List the languages examples can be run in.",
        description="Show each built-in capability with the file extension it writes.",
        formatter_class=_HELP_FORMATTER,
    )

    pull_cmd = sub.add_parser(
        "pull-languages",
        help="Download the languages.yml catalog.",
        description="Download the linguist language catalog used to resolve aliases.",
        formatter_class=_HELP_FORMATTER,
    )
    pull_cmd.add_argument("-L", "--languages", help="Destination path (default: the catalog location).")
    pull_cmd.add_argument("--url", help="Catalog URL (default: linguist master).")

    dump_cmd = sub.add_parser(
        "dump-languages",
        help="Print the loaded languages.yml catalog.",
        description="Print canonical language names with their aliases and extensions.",
        formatter_class=_HELP_FORMATTER,
    )
    dump_cmd.add_argument("-L", "--languages", help="Catalog path (default: the catalog location).")

    return parser


def build_settings(args: argparse.Namespace) -> RunnerSettings:
    """Merge config file, environment and command line options.

    Example:
        ```python
        settings = build_settings(args)
        ```
    """
    settings = load_settings(getattr(args, "config", None))
    updates: dict[str, Any] = {}
    if getattr(args, "languages", None):
        updates["languages_yml"] = args.languages
    if getattr(args, "no_auto_pull", False):
        updates["auto_pull"] = False
    if getattr(args, "timeout_seconds", None) is not None:
        updates["timeout_seconds"] = args.timeout_seconds
    if getattr(args, "debug", False):
        updates["log_level"] = "DEBUG"
    elif getattr(args, "log_level", None):
        updates["log_level"] = args.log_level
    return replace(settings, **updates) if updates else settings


def _print_failures(failures: list[Failure]) -> None:
    """Render failures in a rich table.

    Example:
        ```python
        _print_failures([Failure("exit status 1", source="README.md", line=3, lang="bash")])
        ```
    """
    table = Table(title="Failed Examples")
    table.add_column("Source", style="cyan")
    table.add_column("Line", style="magenta")
    table.add_column("Lang")
    table.add_column("Error", style="red")
    for failure in failures:
        table.add_row(
            escape(failure.source or "-"),
            str(failure.line) if failure.line is not None else "-",
            failure.lang or "-",
            escape(failure.message),
        )
    _CONSOLE.print(table)


def _print_capabilities() -> None:
    """Render the built-in capabilities in a rich table.

    Example:
        ```python
        _print_capabilities()
        ```
    """
    table = Table(title="Capabilities")
    table.add_column("Name", style="cyan")
    table.add_column("Extension", style="magenta")
    for name in sorted(DEFAULT_CAPABILITIES):
        table.add_row(name, DEFAULT_CAPABILITIES[name].extension)
    _CONSOLE.print(table)


def _run(args: argparse.Namespace, settings: RunnerSettings) -> int:
    """Handle ``run`` and ``extract``.

    Example:
        ```python
        code = _run(args, settings)
        ```
    """
    no_exec = args.command == "extract"
    runner = Runner.from_settings(
        args.sources,
        getattr(args, "count", 0),
        settings,
        no_exec=no_exec,
        extract_dir=getattr(args, "output_dir", None),
    )
    report = runner.run_report()
    if report.errors:
        _print_failures(report.errors)
        return 1
    if no_exec:
        message = f"Extracted {report.units} example(s) to {runner.extract_dir}"
    else:
        message = f"{report.units} example(s) passed in {report.elapsed:.2f}s"
        if report.skipped:
            message = f"{message} ({report.skipped} skipped)"
    _CONSOLE.print(Panel.fit(message, style="bold green"))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the `frun` CLI command handler.

    Example:
        ```python
        code = main(["run", "README.md"])
        ```
    """
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        settings = build_settings(args)
        configure_logging(settings.log_level)

        if args.command in {"run", "extract"}:
            return _run(args, settings)
        if args.command == "list-capabilities":
            _print_capabilities()
            return 0
        if args.command == "pull-languages":
            path = pull_languages(args.url or settings.languages_url, settings.languages_path)
            _CONSOLE.print(Panel.fit(f"Downloaded languages to {path}", style="bold green"))
            return 0
        if args.command == "dump-languages":
            path = settings.languages_path
            if not Path(path).exists():
                _CONSOLE.print(Panel.fit(f"No languages catalog at {path}", style="bold red"))
                return 1
            registry = load_languages(path)
            _CONSOLE.print(Panel.fit(Pretty(dump_languages(registry)), title="Languages", border_style="cyan"))
            return 0
    except (RegistryError, ValueError) as exc:
        _CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {escape(str(exc))}", border_style="red"))
        return 2

    parser.error("Unhandled command")
    return 2
