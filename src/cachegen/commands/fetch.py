"""Fetch command -- run one request through the retrieval engine.

The resource body goes to stdout unchanged, so it can be piped or
redirected. The outcome (cache hit, network, offline fallback) is reported
on stderr. With ``--json`` a summary of the record is printed instead of
the body.
"""

from __future__ import annotations

import typer

from cachegen.commands.common import controller_session, fail, load_settings, run
from cachegen.exceptions import FallbackUnavailableError
from cachegen.models import (
    Outcome,
    Request,
    RetrievalResult,
    record_summary,
)
from cachegen.output import OutputFormat, format_response, get_output, outcome, print_body, warning


def fetch_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="Resource URL, absolute or relative to the scope."),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method."),
    offline: bool = typer.Option(
        False, "--offline", help="Pretend the origin is unreachable."
    ),
) -> None:
    """Fetch URL the way an intercepted client request would be answered.

    Exits with code 6 when the origin is unreachable and no offline shell
    is stored.

    Example::

        cachegen fetch ./index.html
        cachegen fetch https://app.example.com/app.js --offline
        cachegen --json fetch ./manifest.json
    """
    config = load_settings(ctx)
    request = Request(url=url, method=method)

    async def _fetch() -> RetrievalResult:
        async with controller_session(config, offline=offline) as controller:
            return await controller.handle_fetch(request)

    result = run(_fetch())

    if result.outcome == Outcome.PASS_THROUGH:
        warning(f"{url} is not intercepted; nothing to serve.")
        return
    if result.outcome == Outcome.FAILED:
        exc = result.error
        if not isinstance(exc, FallbackUnavailableError):
            exc = FallbackUnavailableError(str(exc), url=result.key)
        raise fail(exc)

    record = result.record
    assert record is not None
    outcome(result.outcome.value, record.status, result.key)

    if get_output().format == OutputFormat.JSON:
        summary = record_summary(record)
        summary["outcome"] = result.outcome.value
        summary["key"] = result.key
        format_response(summary)
    else:
        print_body(record.body)
