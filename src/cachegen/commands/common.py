"""Plumbing shared by the command modules.

Every command resolves the effective configuration from the flags stored
in ``ctx.obj`` by :func:`~cachegen.app.main_callback`, runs its coroutine
with :func:`asyncio.run`, and turns a :class:`~cachegen.exceptions.CachegenError`
into an error line plus the matching exit code.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Coroutine, TypeVar

import typer

from cachegen.config import get_store_dir, resolve_config
from cachegen.engine import LifecycleController
from cachegen.exceptions import CachegenError
from cachegen.models import GlobalConfig
from cachegen.output import debug, error
from cachegen.store import StoreRegistry
from cachegen.transport import HttpTransport, OfflineTransport

T = TypeVar("T")


def fail(exc: CachegenError) -> typer.Exit:
    """Report *exc* on stderr and return the ``typer.Exit`` to raise."""
    error(str(exc))
    return typer.Exit(code=exc.exit_code)


def load_settings(ctx: typer.Context) -> GlobalConfig:
    """Resolve the effective config, honouring ``--generation`` and ``--scope``.

    Raises:
        typer.Exit: With the :class:`~cachegen.exceptions.ConfigError` exit
            code if any config layer is invalid.
    """
    obj = ctx.obj or {}
    try:
        config = resolve_config(
            cli_generation=obj.get("generation"),
            cli_scope=obj.get("scope"),
        )
    except CachegenError as exc:
        raise fail(exc) from None
    debug(f"Generation '{config.generation}', scope {config.scope}")
    return config


def run(coro: Coroutine[Any, Any, T]) -> T:
    """Run *coro* to completion, mapping cachegen errors to exit codes."""
    try:
        return asyncio.run(coro)
    except CachegenError as exc:
        raise fail(exc) from None


def open_registry(config: GlobalConfig) -> StoreRegistry:
    return StoreRegistry(get_store_dir(config))


def make_transport(config: GlobalConfig, offline: bool = False) -> Any:
    """Return the (not yet entered) transport for this invocation."""
    if offline:
        return OfflineTransport()
    return HttpTransport(config)


@asynccontextmanager
async def controller_session(
    config: GlobalConfig, offline: bool = False
) -> AsyncIterator[LifecycleController]:
    """Yield a resumed :class:`LifecycleController` and drain it on the way out.

    Background write-backs and sync handlers finish before the transport
    and the stores are closed.
    """
    registry = open_registry(config)
    try:
        async with make_transport(config, offline) as transport:
            controller = LifecycleController(config, registry, transport)
            await controller.resume()
            try:
                yield controller
            finally:
                await controller.drain()
    finally:
        registry.close()
