"""Structural transport interface used by the engine."""

from __future__ import annotations

from typing import Protocol

from cachegen.exceptions import NetworkError
from cachegen.models import Request, ResourceRecord


class Transport(Protocol):
    """The only way the engine reaches the origin.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (:class:`~cachegen.transport.HttpTransport`)
    concrete. Implementations own their own timeouts: a fetch that never
    resolves must eventually raise :class:`~cachegen.exceptions.NetworkError`.
    """

    async def fetch(self, request: Request) -> ResourceRecord:
        ...


class OfflineTransport:
    """A transport for hosts with no connectivity: every fetch fails.

    Lets the engine's offline path be exercised on demand, e.g. by
    ``cachegen fetch --offline``.
    """

    async def __aenter__(self) -> OfflineTransport:
        return self

    async def __aexit__(self, *args: object) -> None:
        return None

    async def fetch(self, request: Request) -> ResourceRecord:
        raise NetworkError(f"Offline: {request.url} not fetched", url=request.url)
