"""Cache-first retrieval with network fallback and an offline shell.

For every intercepted request :class:`RetrievalEngine` walks a small state
machine and ends in exactly one :class:`~cachegen.models.Outcome`:

1. **Filter** -- locators outside the intercepted schemes (for example
   ``chrome-extension://``) are handed back untouched: ``PASS_THROUGH``.
2. **Cache lookup** -- a stored record is returned without touching the
   network: ``CACHE_HIT``.
3. **Network** -- the origin answers:

   * status 200, ``basic`` type and same origin as the scope:
     ``NETWORK_HIT``, and a background task writes the record back;
   * anything else: ``NETWORK_HIT_UNCACHED``, nothing is written.

4. **Offline** -- the origin is unreachable: the shell resource is served
   from the store (``OFFLINE_FALLBACK``) or, if it is missing too, the
   request fails with :class:`~cachegen.exceptions.FallbackUnavailableError`
   (``FAILED``).

The cache is always consulted first. Previously seen keys answer instantly
and deterministically, at the price of possibly stale content until the next
generation is installed.

The network fetch runs as its own task and the caller awaits it through
:func:`asyncio.shield`. The write-back hangs off that task rather than off
the caller, so a caller that gives up early does not cancel the write.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from cachegen.engine.bootstrap import stamp
from cachegen.engine.tasks import BackgroundTasks
from cachegen.exceptions import FallbackUnavailableError, NetworkError, StoreIOError
from cachegen.keys import is_same_origin, resolve_key, scheme_of
from cachegen.models import (
    GlobalConfig,
    Outcome,
    Request,
    ResourceRecord,
    RetrievalResult,
)
from cachegen.store import GenerationStore
from cachegen.transport import Transport

logger = logging.getLogger(__name__)


class RetrievalEngine:
    """Answers requests for one generation's store.

    Many :meth:`retrieve` calls may run concurrently; they share nothing but
    the store, where the last writer for a key wins.

    Args:
        store: The generation store to read from and write back into.
        transport: The origin collaborator.
        config: Supplies ``scope``, ``shell_key`` and ``intercept_schemes``.
        tasks: Where background work (fetches, write-backs) is tracked.
            A private instance is created when omitted.
    """

    def __init__(
        self,
        store: GenerationStore,
        transport: Transport,
        config: GlobalConfig,
        tasks: Optional[BackgroundTasks] = None,
    ) -> None:
        self._store = store
        self._transport = transport
        self._scope = config.scope
        self._shell_key = resolve_key(config.scope, config.shell_key)
        self._schemes = frozenset(config.intercept_schemes)
        self._tasks = tasks if tasks is not None else BackgroundTasks()

    @property
    def store(self) -> GenerationStore:
        return self._store

    @property
    def tasks(self) -> BackgroundTasks:
        return self._tasks

    async def retrieve(self, request: Request) -> RetrievalResult:
        """Resolve *request* to a terminal outcome. Never raises for request failures."""
        key = resolve_key(self._scope, request.url)
        if key is None or scheme_of(key) not in self._schemes:
            logger.debug("Passing through %s", request.url)
            return RetrievalResult(request, Outcome.PASS_THROUGH, key=key or "")

        if request.method == "GET":
            cached = await self._lookup(key)
            if cached is not None:
                logger.debug("Fetching from cache: %s", key)
                return RetrievalResult(request, Outcome.CACHE_HIT, key=key, record=cached)

        logger.debug("Fetching from network: %s", key)
        outbound = request.model_copy(update={"url": key})
        fetch = self._tasks.spawn(
            self._transport.fetch(outbound), name=f"fetch {key}", quiet=True
        )
        fetch.add_done_callback(lambda task: self._on_fetched(request, key, task))

        try:
            record = await asyncio.shield(fetch)
        except NetworkError as exc:
            logger.error("Fetch failed: %s", exc)
            return await self._fallback(request, key, exc)
        except Exception as exc:
            logger.exception("Transport error while fetching %s", key)
            return await self._fallback(
                request, key, NetworkError(f"Fetching {key} failed: {exc}", url=key)
            )

        if self._should_store(request, key, record):
            return RetrievalResult(request, Outcome.NETWORK_HIT, key=key, record=record)
        return RetrievalResult(
            request, Outcome.NETWORK_HIT_UNCACHED, key=key, record=record
        )

    async def retrieve_or_raise(self, request: Request) -> RetrievalResult:
        """Like :meth:`retrieve`, but raise the carried error for ``FAILED``.

        Raises:
            FallbackUnavailableError: If neither network nor shell could answer.
        """
        result = await self.retrieve(request)
        if result.outcome == Outcome.FAILED and result.error is not None:
            raise result.error
        return result

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _lookup(self, key: str) -> Optional[ResourceRecord]:
        try:
            return await asyncio.to_thread(self._store.get, key)
        except Exception as exc:
            logger.error("Cache lookup for %s failed: %s", key, exc)
            return None

    def _should_store(self, request: Request, key: str, record: ResourceRecord) -> bool:
        return (
            request.method == "GET"
            and record.cacheable
            and is_same_origin(key, self._scope)
        )

    def _on_fetched(self, request: Request, key: str, task: asyncio.Task[Any]) -> None:
        """Spawn the write-back once the network result is in, whatever the caller did."""
        if task.cancelled() or task.exception() is not None:
            return
        record = task.result()
        if self._should_store(request, key, record):
            self._tasks.spawn(self._write_back(key, record), name=f"store {key}")

    async def _write_back(self, key: str, record: ResourceRecord) -> None:
        try:
            await asyncio.to_thread(self._store.put, key, stamp(record))
        except StoreIOError as exc:
            logger.warning("Could not cache %s: %s", key, exc)
            return
        logger.debug("Cached %s in '%s'", key, self._store.name)

    async def _fallback(
        self, request: Request, key: str, cause: NetworkError
    ) -> RetrievalResult:
        shell = await self._lookup(self._shell_key) if self._shell_key else None
        if shell is not None:
            logger.info("Offline: serving shell %s for %s", self._shell_key, key)
            return RetrievalResult(
                request, Outcome.OFFLINE_FALLBACK, key=key, record=shell
            )
        error = FallbackUnavailableError(
            f"{key} is unreachable and no offline shell is stored", url=key
        )
        error.__cause__ = cause
        return RetrievalResult(request, Outcome.FAILED, key=key, error=error)
