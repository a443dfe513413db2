"""Typer application and CLI entry point for cachegen.

This module wires together the top-level Typer application and registers
the built-in commands: ``install``, ``activate``, ``version``, ``sync``,
``fetch``, and the ``generations`` and ``config`` groups.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and
invokes the Typer app. Unhandled exceptions are written to a crash log under
the data directory.

See Also:
    :mod:`cachegen.config`: Configuration resolution.
    :mod:`cachegen.output`: Output formatting and logging initialised in
    :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from cachegen import __version__
from cachegen.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="cachegen",
    help="Generation-scoped offline cache for an application shell.",
    no_args_is_help=True,
    add_completion=True,
    rich_markup_mode="rich",
)

# ------------------------------------------------------------------ #
# Built-in commands
# ------------------------------------------------------------------ #

from cachegen.commands.config import config_app  # noqa: E402
from cachegen.commands.fetch import fetch_command  # noqa: E402
from cachegen.commands.generations import generations_app  # noqa: E402
from cachegen.commands.lifecycle import (  # noqa: E402
    activate_command,
    install_command,
    sync_command,
    version_command,
)

app.command("install")(install_command)
app.command("activate")(activate_command)
app.command("fetch")(fetch_command)
app.command("version")(version_command)
app.command("sync")(sync_command)
app.add_typer(generations_app, name="generations", help="List, inspect and collect generation stores.")
app.add_typer(config_app, name="config", help="Show or change the user configuration.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"cachegen {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Print the cachegen version and exit.",
    ),
    generation: Optional[str] = typer.Option(
        None, "--generation", "-g", help="Generation identifier to use."
    ),
    scope: Optional[str] = typer.Option(
        None, "--scope", help="Origin URL that resource keys resolve against."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="Print summaries and tables as JSON."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Print plain tab-separated text."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Never colour diagnostics."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Only print warnings and errors on stderr."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log engine decisions (cache hits, fetches, transitions)."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~cachegen.output.OutputManager` and the
    log handler. The format comes from ``--json`` / ``--plain``, else from the
    ``output.format`` setting. Also stores ``generation`` and ``scope`` in
    the Typer context so that sub-commands can read them via ``ctx.obj``.
    """
    from cachegen.output import OutputFormat, OutputManager, configure_logging, set_output

    flag: Optional[str] = None
    if json_output:
        flag = OutputFormat.JSON.value
    elif plain_output:
        flag = OutputFormat.PLAIN.value

    output = OutputManager(
        format=_resolve_format(flag, generation, scope),
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)
    configure_logging(output)

    ctx.ensure_object(dict)
    ctx.obj["generation"] = generation
    ctx.obj["scope"] = scope
    ctx.obj["verbose"] = verbose


def _resolve_format(flag: Optional[str], generation: Optional[str], scope: Optional[str]) -> Any:
    """Return the output format: the flag, else ``output.format`` from config."""
    from cachegen.config import resolve_config
    from cachegen.exceptions import CachegenError
    from cachegen.output import OutputFormat

    try:
        config = resolve_config(cli_generation=generation, cli_scope=scope, cli_format=flag)
    except CachegenError:
        # Commands that need the config report the error themselves, and
        # ``config set`` / ``config reset`` must still run to repair it.
        return OutputFormat(flag or OutputFormat.AUTO.value)
    return OutputFormat(config.output.format)


def _setup_signal_handlers() -> None:
    """Exit with status 130 on Ctrl-C instead of a traceback."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Save the traceback of *exc* under the data directory; return the path."""
    from cachegen.config import get_data_dir

    crash_dir = get_data_dir() / "crashes"
    crash_dir.mkdir(parents=True, exist_ok=True)
    crash_path = crash_dir / f"crash-{datetime.now():%Y%m%d-%H%M%S}.log"
    crash_path.write_text(
        f"cachegen {__version__}\n"
        + "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    )
    return str(crash_path)


def main() -> None:
    """CLI entry point invoked by the ``cachegen`` console script.

    Unhandled :class:`~cachegen.exceptions.CachegenError` instances cause a
    clean exit with the error's ``exit_code``. All other exceptions produce
    a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from cachegen.exceptions import CachegenError
        from cachegen.output import error

        if isinstance(exc, CachegenError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            crash_path = _write_crash_log(exc)
            error(f"Unexpected error; traceback saved to {crash_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
