"""Terminal output for the cachegen CLI: data on stdout, diagnostics on stderr.

stdout carries only what a caller may pipe: resource bodies, JSON
summaries and tables. Everything else (outcome lines, warnings, errors and
engine log records) goes to stderr. Formatting follows
`clig.dev <https://clig.dev/>`_: Rich styling on an interactive terminal,
plain text when piped, and no colour under ``NO_COLOR``, ``TERM=dumb`` or
``--no-color``.

One :class:`OutputManager` is built per invocation in
:func:`~cachegen.app.main_callback` and installed with :func:`set_output`;
commands use the module-level helpers, and :func:`configure_logging` points
the ``cachegen`` logger at the same stderr console.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table

# Rich style for each retrieval outcome shown by ``cachegen fetch``.
_OUTCOME_STYLES = {
    "cache_hit": "green",
    "network_hit": "cyan",
    "network_hit_uncached": "cyan",
    "offline_fallback": "yellow",
    "failed": "bold red",
}


class OutputFormat(str, Enum):
    """Output formats selectable with ``--json`` / ``--plain``.

    ``AUTO`` becomes ``RICH`` on a colour-capable TTY and ``PLAIN`` otherwise.
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Routes CLI output to the right stream in the resolved format.

    Args:
        format: Requested format; ``AUTO`` is resolved from the terminal.
        no_color: Disable colour and Rich markup on both streams.
        quiet: Drop informational diagnostics (warnings and errors stay).
        verbose: Show debug diagnostics.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose

        if format == OutputFormat.AUTO:
            rich_ok = _is_tty() and not self._no_color
            format = OutputFormat.RICH if rich_ok else OutputFormat.PLAIN
        self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=(format == OutputFormat.RICH),
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    @property
    def stderr_console(self) -> Console:
        """Console for diagnostics; the log handler writes through it too."""
        return self._stderr

    # ------------------------------------------------------------------ #
    # stdout
    # ------------------------------------------------------------------ #

    def format_response(self, data: Any) -> None:
        """Print a summary dict (or list of them) in the active format."""
        if self._format == OutputFormat.PLAIN:
            self._print_plain(data)
            return
        text = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        if self._format == OutputFormat.JSON:
            self.print_data(text)
        else:
            self._stdout.print(Syntax(text, "json", theme="monokai", word_wrap=True))

    def print_data(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    def print_body(self, body: bytes) -> None:
        """Write a resource body to stdout byte for byte.

        ``cachegen fetch ./icon-192.png > icon.png`` must produce a valid
        file, so the text layer is bypassed whenever the stream has one.
        """
        stream = getattr(sys.stdout, "buffer", None)
        if stream is None:
            sys.stdout.write(body.decode("utf-8", errors="replace"))
            sys.stdout.flush()
            return
        stream.write(body)
        stream.flush()

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Print rows as a Rich table, a JSON array of objects, or TSV."""
        if self._format == OutputFormat.JSON:
            records = [dict(zip(headers, row)) for row in rows]
            self.print_data(json.dumps(records, indent=2, ensure_ascii=False))
            return
        if self._format == OutputFormat.PLAIN:
            for line in [headers, *rows]:
                self.print_data("\t".join(line))
            return
        table = Table(title=title, show_header=True, header_style="bold cyan")
        for header in headers:
            table.add_column(header)
        for row in rows:
            table.add_row(*row)
        self._stdout.print(table)

    # ------------------------------------------------------------------ #
    # stderr
    # ------------------------------------------------------------------ #

    def info(self, message: str) -> None:
        self._emit(message, message, quiet_ok=True)

    def success(self, message: str) -> None:
        self._emit(message, f"[green]{message}[/green]", quiet_ok=True)

    def warning(self, message: str) -> None:
        self._emit(f"Warning: {message}", f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        self._emit(f"Error: {message}", f"[bold red]Error:[/bold red] {message}")

    def suggest(self, message: str) -> None:
        """Next-step hint, e.g. ``Run: cachegen activate``."""
        self._emit(f"→ {message}", f"[dim]→ {message}[/dim]", quiet_ok=True)

    def debug(self, message: str) -> None:
        if self._verbose:
            self._emit(f"[debug] {message}", f"[dim]\\[debug] {message}[/dim]")

    def outcome(self, outcome: str, status: int, key: str) -> None:
        """Report how a fetch was answered, coloured by outcome."""
        style = _OUTCOME_STYLES.get(outcome, "default")
        self._emit(
            f"{outcome}: {status} {key}",
            f"[{style}]{outcome}[/{style}]: {status} {key}",
            quiet_ok=True,
        )

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _emit(self, plain: str, styled: str, quiet_ok: bool = False) -> None:
        """Write one diagnostic line; ``quiet_ok`` lines are dropped by ``--quiet``."""
        if quiet_ok and self._quiet:
            return
        if self._no_color:
            print(plain, file=sys.stderr, flush=True)
        else:
            self._stderr.print(styled, highlight=False)

    def _print_plain(self, data: Any) -> None:
        if isinstance(data, dict):
            for key, value in data.items():
                self.print_data(f"{key}\t{'-' if value is None else value}")
        elif isinstance(data, list):
            for item in data:
                values = item.values() if isinstance(item, dict) else [item]
                self.print_data("\t".join(str(v) for v in values))
        else:
            self.print_data(str(data))


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """True when ``NO_COLOR`` is set to anything or ``TERM`` is ``dumb``."""
    return os.environ.get("NO_COLOR") is not None or os.environ.get("TERM") == "dumb"


def configure_logging(output: OutputManager) -> None:
    """Send ``cachegen`` log records to stderr via :class:`~rich.logging.RichHandler`.

    DEBUG when the manager is verbose, ERROR when quiet, WARNING otherwise.
    Replaces any handler a previous call installed, so calling it once per
    CLI invocation is safe.
    """
    if output.is_verbose:
        level = logging.DEBUG
    elif output.is_quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING

    handler = RichHandler(
        console=output.stderr_console,
        show_path=False,
        show_time=output.is_verbose,
        markup=False,
    )
    handler.set_name("cachegen")

    package_logger = logging.getLogger("cachegen")
    for existing in list(package_logger.handlers):
        if existing.get_name() == "cachegen":
            package_logger.removeHandler(existing)
    package_logger.addHandler(handler)
    package_logger.setLevel(level)


# ------------------------------------------------------------------ #
# Per-invocation instance
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed :class:`OutputManager`, building a default one if needed."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the installed manager (tests reset it between CLI runs)."""
    global _output
    _output = None


def format_response(data: Any) -> None:
    get_output().format_response(data)


def print_body(body: bytes) -> None:
    get_output().print_body(body)


def info(message: str) -> None:
    get_output().info(message)


def error(message: str) -> None:
    get_output().error(message)


def success(message: str) -> None:
    get_output().success(message)


def warning(message: str) -> None:
    get_output().warning(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def debug(message: str) -> None:
    get_output().debug(message)


def outcome(name: str, status: int, key: str) -> None:
    get_output().outcome(name, status, key)
