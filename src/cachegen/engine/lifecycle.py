"""Lifecycle controller: install -> activate -> active, plus the control channel.

:class:`LifecycleController` is what a host runtime talks to. It owns the
:class:`~cachegen.engine.events.ControllerState`, feeds every incoming event
through :func:`~cachegen.engine.events.transition`, and executes the
resulting effects in order through a dispatch table keyed by effect type.

Side effects are strictly ordered: the manifest is populated before the
generation is promoted, promotion happens before garbage collection, and
clients are claimed only after garbage collection completed. Lifecycle
sequences are serialised by an :class:`asyncio.Lock`; fetches and version
queries never wait for it.

Example::

    async with HttpTransport(config) as transport:
        controller = LifecycleController(config, StoreRegistry(root), transport)
        await controller.install()
        result = await controller.handle_fetch(Request(url="./index.html"))
        await controller.drain()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol, Sequence

from cachegen.engine.bootstrap import Bootstrapper
from cachegen.engine.events import (
    Activate,
    ClaimClients,
    ClientConnected,
    ClientReleased,
    CollectGarbage,
    ControllerState,
    DiscardFailed,
    Emit,
    Event,
    Fetch,
    Install,
    InstallResult,
    Log,
    Message,
    Populate,
    Promote,
    ReplyVersion,
    Resume,
    Retrieve,
    RunSync,
    Sync,
    transition,
)
from cachegen.engine.generations import GenerationManager
from cachegen.engine.retrieval import RetrievalEngine
from cachegen.engine.tasks import BackgroundTasks
from cachegen.exceptions import PopulateError, StoreIOError
from cachegen.keys import resolve_key
from cachegen.models import (
    GlobalConfig,
    LifecycleState,
    MessageType,
    Outcome,
    Request,
    RetrievalResult,
)
from cachegen.store import StoreRegistry
from cachegen.transport import Transport

logger = logging.getLogger(__name__)

SyncHandler = Callable[[], Awaitable[None]]


class ClientNotifier(Protocol):
    """Re-binds live clients to a newly activated generation."""

    async def claim_all(self, generation: str, client_ids: Sequence[str]) -> None:
        ...


class LoggingNotifier:
    """Default notifier for hosts without live clients: just records the claim."""

    async def claim_all(self, generation: str, client_ids: Sequence[str]) -> None:
        logger.info("Claiming %d client(s) for '%s'", len(client_ids), generation)


async def sync_documents() -> None:
    """Built-in handler for the ``sync-documents`` tag; nothing to sync yet."""
    logger.debug("Syncing documents")


class LifecycleController:
    """Drives one generation through its lifecycle and routes requests.

    Args:
        config: Effective configuration; ``generation`` names the current
            generation and is never read from a global.
        registry: The store collaborator.
        transport: The origin collaborator.
        notifier: Called with every bound client at activation takeover.
        tasks: Background task tracker shared with the retrieval engines.
        sync_handlers: Extra ``tag -> coroutine function`` handlers for
            :class:`~cachegen.engine.events.Sync` events.
    """

    def __init__(
        self,
        config: GlobalConfig,
        registry: StoreRegistry,
        transport: Transport,
        notifier: Optional[ClientNotifier] = None,
        tasks: Optional[BackgroundTasks] = None,
        sync_handlers: Optional[Mapping[str, SyncHandler]] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._manager = GenerationManager(registry, config.generation)
        self._bootstrapper = Bootstrapper(transport, config.scope)
        self._notifier: ClientNotifier = notifier or LoggingNotifier()
        self._tasks = tasks if tasks is not None else BackgroundTasks()
        self._sync_handlers: dict[str, SyncHandler] = {"sync-documents": sync_documents}
        self._sync_handlers.update(sync_handlers or {})
        self._state = ControllerState(skip_waiting=config.skip_waiting)
        self._lock = asyncio.Lock()
        self._engine: Optional[RetrievalEngine] = None
        self._previous_engine: Optional[RetrievalEngine] = None
        self._last_error: Optional[PopulateError] = None
        self._executors: dict[type, Callable[[Any], Awaitable[Any]]] = {
            Populate: self._do_populate,
            DiscardFailed: self._do_discard_failed,
            Promote: self._do_promote,
            CollectGarbage: self._do_collect_garbage,
            ClaimClients: self._do_claim_clients,
            Emit: self._do_emit,
            Retrieve: self._do_retrieve,
            ReplyVersion: self._do_reply_version,
            RunSync: self._do_run_sync,
            Log: self._do_log,
        }

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    @property
    def generation(self) -> str:
        return self._config.generation

    @property
    def state(self) -> LifecycleState:
        return self._state.phase

    @property
    def snapshot(self) -> ControllerState:
        return self._state

    @property
    def manager(self) -> GenerationManager:
        return self._manager

    @property
    def tasks(self) -> BackgroundTasks:
        return self._tasks

    @property
    def last_error(self) -> Optional[PopulateError]:
        """The failure of the most recent install attempt, if it failed."""
        return self._last_error

    async def active_generation(self) -> Optional[str]:
        """The generation answering requests right now."""
        if self._state.phase in (LifecycleState.ACTIVATING, LifecycleState.ACTIVE):
            return self._config.generation
        return await self._manager.active_generation()

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    async def dispatch(self, event: Event) -> Any:
        """Apply *event* and execute its effects.

        Returns:
            The reply produced by the effects, if any: a
            :class:`~cachegen.models.RetrievalResult` for fetches, a
            ``{"version": ...}`` mapping for ``GET_VERSION``, else ``None``.
        """
        if isinstance(event, Fetch) or (
            isinstance(event, Message) and event.type == MessageType.GET_VERSION.value
        ):
            return await self._apply(event)
        async with self._lock:
            return await self._apply(event)

    async def _apply(self, event: Event) -> Any:
        step = transition(self._state, event)
        self._state = step.state
        reply: Any = None
        follow_ups: list[Event] = []
        for effect in step.effects:
            outcome = await self._executors[type(effect)](effect)
            if isinstance(effect, (Populate, Emit)):
                if outcome is not None:
                    follow_ups.append(outcome)
            elif outcome is not None:
                reply = outcome
        for follow_up in follow_ups:
            result = await self._apply(follow_up)
            if result is not None:
                reply = result
        return reply

    # ------------------------------------------------------------------ #
    # Convenience API
    # ------------------------------------------------------------------ #

    async def install(self) -> LifecycleState:
        """Install (and, unless waiting for clients, activate) the generation.

        Returns:
            The lifecycle state afterwards. ``INSTALL_FAILED`` leaves the
            previous generation current; :attr:`last_error` says why.
        """
        await self.dispatch(Install())
        return self.state

    async def install_or_raise(self) -> LifecycleState:
        """Like :meth:`install`, but raise when the install failed.

        Raises:
            PopulateError: If any manifest resource could not be stored.
        """
        state = await self.install()
        if state == LifecycleState.INSTALL_FAILED and self._last_error is not None:
            raise self._last_error
        return state

    async def resume(self) -> LifecycleState:
        """Pick up where a previous process left this generation.

        ``ACTIVE`` if it is the recorded active generation, ``INSTALLED`` if
        its store already holds the whole manifest, otherwise unchanged.
        No bootstrapping happens either way.
        """
        if await self._manager.active_generation() == self.generation:
            await self.dispatch(Resume())
        elif await self._manager.holds_all(self._manifest_keys()):
            await self.dispatch(Resume(active=False))
        return self.state

    async def activate(self) -> LifecycleState:
        """Activate an installed generation now, without waiting for clients."""
        await self.dispatch(Activate())
        return self.state

    async def handle_fetch(self, request: Request) -> RetrievalResult:
        return await self.dispatch(Fetch(request))

    async def handle_message(self, message: Mapping[str, Any]) -> Optional[dict[str, Any]]:
        """Handle a control-channel message such as ``{"type": "GET_VERSION"}``.

        Returns:
            ``{"version": <generation>}`` for ``GET_VERSION``, else ``None``.
        """
        message_type = message.get("type") if isinstance(message, Mapping) else None
        if not isinstance(message_type, str):
            logger.warning("Ignoring malformed control message: %r", message)
            return None
        return await self.dispatch(Message(message_type))

    async def sync(self, tag: str) -> None:
        await self.dispatch(Sync(tag))

    async def connect_client(self, client_id: str) -> None:
        await self.dispatch(ClientConnected(client_id))

    async def release_client(self, client_id: str) -> None:
        await self.dispatch(ClientReleased(client_id))

    async def drain(self) -> None:
        """Wait for background fetches, write-backs and sync tasks to finish."""
        await self._tasks.drain()

    # ------------------------------------------------------------------ #
    # Effect executors
    # ------------------------------------------------------------------ #

    async def _do_populate(self, effect: Populate) -> InstallResult:
        try:
            store = await self._manager.ensure_current()
        except StoreIOError as exc:
            self._last_error = PopulateError(str(exc))
            return InstallResult(ok=False, reason=str(exc))
        try:
            await self._bootstrapper.populate_or_raise(store, self._config.manifest)
        except PopulateError as exc:
            self._last_error = exc
            return InstallResult(ok=False, reason=str(exc))
        self._last_error = None
        return InstallResult(ok=True)

    async def _do_discard_failed(self, effect: DiscardFailed) -> None:
        if await self._manager.active_generation() == self.generation:
            return
        await self._manager.discard_if_empty()

    async def _do_promote(self, effect: Promote) -> None:
        await self._manager.promote()

    async def _do_collect_garbage(self, effect: CollectGarbage) -> None:
        deleted = await self._manager.collect_garbage()
        self._previous_engine = None
        if deleted:
            logger.info("Deleted old generations: %s", ", ".join(deleted))

    async def _do_claim_clients(self, effect: ClaimClients) -> None:
        try:
            await self._notifier.claim_all(self.generation, effect.client_ids)
        except Exception as exc:
            logger.error("Claiming clients for '%s' failed: %s", self.generation, exc)

    async def _do_emit(self, effect: Emit) -> Event:
        return effect.event

    async def _do_retrieve(self, effect: Retrieve) -> RetrievalResult:
        engine = await (self._current_engine() if effect.current else self._fallback_engine())
        if engine is None:
            return RetrievalResult(effect.request, Outcome.PASS_THROUGH)
        return await engine.retrieve(effect.request)

    async def _do_reply_version(self, effect: ReplyVersion) -> dict[str, Any]:
        return {"version": await self.active_generation()}

    async def _do_run_sync(self, effect: RunSync) -> None:
        handler = self._sync_handlers.get(effect.tag)
        if handler is None:
            logger.warning("No sync handler for tag %r", effect.tag)
            return
        self._tasks.spawn(handler(), name=f"sync {effect.tag}")

    async def _do_log(self, effect: Log) -> None:
        logger.log(effect.level, "%s [%s]", effect.message, self.generation)

    # ------------------------------------------------------------------ #
    # Engines
    # ------------------------------------------------------------------ #

    def _manifest_keys(self) -> list[str]:
        keys = (resolve_key(self._config.scope, entry) for entry in self._config.manifest)
        return [key for key in keys if key is not None]

    async def _current_engine(self) -> Optional[RetrievalEngine]:
        if self._engine is None:
            try:
                store = await self._manager.ensure_current()
            except StoreIOError as exc:
                logger.error("Current store unavailable: %s", exc)
                return None
            self._engine = RetrievalEngine(store, self._transport, self._config, self._tasks)
        return self._engine

    async def _fallback_engine(self) -> Optional[RetrievalEngine]:
        """Engine bound to the previously active generation, while this one is not active."""
        if self._previous_engine is not None:
            return self._previous_engine
        previous = await self._manager.active_generation()
        if previous is None or previous == self.generation:
            return None
        registry = self._manager.registry
        if previous not in await asyncio.to_thread(registry.list_names):
            return None
        try:
            store = await asyncio.to_thread(registry.open, previous)
        except StoreIOError as exc:
            logger.error("Previous store '%s' unavailable: %s", previous, exc)
            return None
        self._previous_engine = RetrievalEngine(
            store, self._transport, self._config, self._tasks
        )
        return self._previous_engine
