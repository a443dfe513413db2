"""Lifecycle commands -- install, activate, and the control channel.

Each invocation is a fresh process, so the controller first resumes from
what is on disk: the recorded active generation, or a generation whose
store already holds the whole manifest. See
:meth:`~cachegen.engine.lifecycle.LifecycleController.resume`.
"""

from __future__ import annotations

from typing import Any

import typer

from cachegen.commands.common import controller_session, load_settings, run
from cachegen.exceptions import LifecycleError
from cachegen.models import LifecycleState, MessageType
from cachegen.output import format_response, info, success, suggest, warning

# Stands in for a page still bound to the previous generation.
_CLI_CLIENT = "cachegen-cli"


def install_command(
    ctx: typer.Context,
    no_skip_wait: bool = typer.Option(
        False,
        "--no-skip-wait",
        help="Keep the previous generation active until 'cachegen activate'.",
    ),
) -> None:
    """Install the configured generation and, by default, activate it.

    Fetches every manifest resource and commits them as one unit. If any
    resource is unavailable nothing is stored, the previous generation stays
    active and the command exits with code 9.

    Example::

        cachegen install
        cachegen --generation app-shell-v2 install --no-skip-wait
    """
    config = load_settings(ctx)
    if no_skip_wait:
        config = config.model_copy(update={"skip_waiting": False})

    async def _install() -> dict[str, Any]:
        async with controller_session(config) as controller:
            previous = await controller.manager.active_generation()
            if controller.state == LifecycleState.ACTIVE:
                return {"generation": config.generation, "state": "active", "previous": previous}
            if not config.skip_waiting and previous not in (None, config.generation):
                await controller.connect_client(_CLI_CLIENT)
            state = await controller.install_or_raise()
            return {"generation": config.generation, "state": state.value, "previous": previous}

    summary = run(_install())
    if summary["state"] == LifecycleState.ACTIVE.value:
        success(f"Generation '{config.generation}' is active.")
    else:
        info(
            f"Generation '{config.generation}' installed; "
            f"'{summary['previous']}' stays active."
        )
        suggest("Run: cachegen activate")
    format_response(summary)


def activate_command(ctx: typer.Context) -> None:
    """Activate an installed generation now (the SKIP_WAITING message).

    Promotes the generation, deletes every other generation and claims
    clients. Exits with an error if the generation was never installed.

    Example::

        cachegen activate
    """
    config = load_settings(ctx)

    async def _activate() -> LifecycleState:
        async with controller_session(config) as controller:
            if controller.state == LifecycleState.PARSED:
                raise LifecycleError(
                    f"Generation '{config.generation}' is not installed. "
                    "Run: cachegen install"
                )
            await controller.handle_message({"type": MessageType.SKIP_WAITING.value})
            return controller.state

    state = run(_activate())
    if state == LifecycleState.ACTIVE:
        success(f"Generation '{config.generation}' is active.")
    else:
        warning(f"Generation '{config.generation}' is {state.value}.")
    format_response({"generation": config.generation, "state": state.value})


def version_command(ctx: typer.Context) -> None:
    """Report the active generation (the GET_VERSION message).

    Example::

        cachegen version
        cachegen --json version
    """
    config = load_settings(ctx)

    async def _version() -> Any:
        async with controller_session(config) as controller:
            return await controller.handle_message({"type": MessageType.GET_VERSION.value})

    reply = run(_version())
    if reply.get("version") is None:
        info("No generation has been activated yet.")
    format_response(reply)


def sync_command(
    ctx: typer.Context,
    tag: str = typer.Argument(
        "sync-documents", help="Sync tag whose handler should run."
    ),
) -> None:
    """Run the background sync handler registered for TAG.

    Example::

        cachegen sync
        cachegen sync sync-documents
    """
    config = load_settings(ctx)

    async def _sync() -> None:
        async with controller_session(config) as controller:
            await controller.sync(tag)

    run(_sync())
    success(f"Sync '{tag}' finished.")
