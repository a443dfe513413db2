"""Lifecycle events, effects, and the pure transition table.

The host runtime feeds events (install, activate, fetch, control messages,
sync, client churn) into :class:`~cachegen.engine.lifecycle.LifecycleController`.
Deciding what an event *means* is kept separate from doing it:
:func:`transition` is a pure function of ``(state, event)`` that returns the
next state plus an ordered tuple of effects. The controller then executes the
effects. This makes every lifecycle rule testable without an event loop,
a store, or a network.

Rules encoded here:

* install is idempotent: a generation already installing or active ignores
  a second :class:`Install`, and an installed one only activates if
  skip-wait is set;
* a failed install can be retried;
* activation effects are always ordered ``Promote -> CollectGarbage ->
  ClaimClients -> Emit(Activated)``;
* a skip-wait request received before install finishes is remembered;
* without skip-wait, activation happens once no client is bound to an older
  generation.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Callable, Union

from cachegen.models import LifecycleState, MessageType, Request

# --- Events ---


@dataclass(frozen=True)
class Install:
    """Begin installing the current generation."""


@dataclass(frozen=True)
class InstallResult:
    """Outcome of the populate step, fed back by the controller."""

    ok: bool
    reason: str = ""


@dataclass(frozen=True)
class Activate:
    """Activate an installed generation without waiting for clients."""


@dataclass(frozen=True)
class Activated:
    """Activation side effects finished; fed back by the controller."""


@dataclass(frozen=True)
class Resume:
    """A previous process already installed the current generation.

    ``active`` tells whether it was also activated, or is still waiting.
    """

    active: bool = True


@dataclass(frozen=True)
class Fetch:
    request: Request


@dataclass(frozen=True)
class Message:
    """A command on the control channel (see :class:`~cachegen.models.MessageType`)."""

    type: str


@dataclass(frozen=True)
class Sync:
    tag: str


@dataclass(frozen=True)
class ClientConnected:
    client_id: str


@dataclass(frozen=True)
class ClientReleased:
    client_id: str


Event = Union[
    Install,
    InstallResult,
    Activate,
    Activated,
    Resume,
    Fetch,
    Message,
    Sync,
    ClientConnected,
    ClientReleased,
]


# --- Effects ---


@dataclass(frozen=True)
class Populate:
    """Run the bootstrapper against the current generation's store."""


@dataclass(frozen=True)
class DiscardFailed:
    """Drop the empty store left behind by a failed install."""


@dataclass(frozen=True)
class Promote:
    """Record the current generation as active."""


@dataclass(frozen=True)
class CollectGarbage:
    """Delete every generation except the current one."""


@dataclass(frozen=True)
class ClaimClients:
    client_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class Emit:
    """Dispatch *event* after the remaining effects have run."""

    event: Event


@dataclass(frozen=True)
class Retrieve:
    """Answer a request, from the current generation or the previous one."""

    request: Request
    current: bool


@dataclass(frozen=True)
class ReplyVersion:
    """Answer a GET_VERSION control message."""


@dataclass(frozen=True)
class RunSync:
    tag: str


@dataclass(frozen=True)
class Log:
    level: int
    message: str


Effect = Union[
    Populate,
    DiscardFailed,
    Promote,
    CollectGarbage,
    ClaimClients,
    Emit,
    Retrieve,
    ReplyVersion,
    RunSync,
    Log,
]


# --- State ---


@dataclass(frozen=True)
class ControllerState:
    """Everything :func:`transition` needs to decide.

    Attributes:
        phase: Where the generation is in its lifecycle.
        skip_waiting: Activate as soon as install succeeds.
        current_clients: Clients bound to this generation.
        stale_clients: Clients still bound to an older generation.
    """

    phase: LifecycleState = LifecycleState.PARSED
    skip_waiting: bool = False
    current_clients: frozenset[str] = field(default_factory=frozenset)
    stale_clients: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class Transition:
    state: ControllerState
    effects: tuple[Effect, ...] = ()


def _stay(state: ControllerState, *effects: Effect) -> Transition:
    return Transition(state, tuple(effects))


def _begin_activation(state: ControllerState) -> Transition:
    return Transition(
        dataclasses.replace(state, phase=LifecycleState.ACTIVATING),
        (
            Log(logging.INFO, "Activating"),
            Promote(),
            CollectGarbage(),
            ClaimClients(tuple(sorted(state.stale_clients | state.current_clients))),
            Emit(Activated()),
        ),
    )


# --- Handlers ---


def _on_install(state: ControllerState, event: Install) -> Transition:
    if state.phase in (LifecycleState.PARSED, LifecycleState.INSTALL_FAILED):
        return Transition(
            dataclasses.replace(state, phase=LifecycleState.INSTALLING),
            (Log(logging.INFO, "Installing"), Populate()),
        )
    if state.phase == LifecycleState.INSTALLED and state.skip_waiting:
        return _begin_activation(state)
    return _stay(state, Log(logging.DEBUG, f"Install ignored: already {state.phase.value}"))


def _on_install_result(state: ControllerState, event: InstallResult) -> Transition:
    if state.phase != LifecycleState.INSTALLING:
        return _stay(state, Log(logging.WARNING, "Install result outside of install"))
    if not event.ok:
        return Transition(
            dataclasses.replace(state, phase=LifecycleState.INSTALL_FAILED),
            (Log(logging.ERROR, f"Install failed: {event.reason}"), DiscardFailed()),
        )
    installed = dataclasses.replace(state, phase=LifecycleState.INSTALLED)
    if state.skip_waiting or not state.stale_clients:
        activation = _begin_activation(installed)
        return Transition(
            activation.state,
            (Log(logging.INFO, "All files cached"),) + activation.effects,
        )
    return _stay(
        installed,
        Log(
            logging.INFO,
            f"Installed; waiting for {len(state.stale_clients)} client(s) to release",
        ),
    )


def _on_activate(state: ControllerState, event: Activate) -> Transition:
    if state.phase == LifecycleState.INSTALLED:
        return _begin_activation(state)
    return _stay(state, Log(logging.DEBUG, f"Activate ignored: {state.phase.value}"))


def _on_activated(state: ControllerState, event: Activated) -> Transition:
    if state.phase != LifecycleState.ACTIVATING:
        return _stay(state, Log(logging.WARNING, "Activation finished outside of activation"))
    return Transition(
        dataclasses.replace(
            state,
            phase=LifecycleState.ACTIVE,
            current_clients=state.current_clients | state.stale_clients,
            stale_clients=frozenset(),
        ),
        (Log(logging.INFO, "Active"),),
    )


def _on_resume(state: ControllerState, event: Resume) -> Transition:
    if state.phase == LifecycleState.PARSED:
        phase = LifecycleState.ACTIVE if event.active else LifecycleState.INSTALLED
        return Transition(
            dataclasses.replace(state, phase=phase),
            (Log(logging.INFO, f"Resuming as {phase.value}"),),
        )
    return _stay(state, Log(logging.DEBUG, f"Resume ignored: {state.phase.value}"))


def _on_fetch(state: ControllerState, event: Fetch) -> Transition:
    # Once activation starts the new store is complete and old ones are going away.
    current = state.phase in (LifecycleState.ACTIVATING, LifecycleState.ACTIVE)
    return _stay(state, Retrieve(event.request, current=current))


def _on_message(state: ControllerState, event: Message) -> Transition:
    if event.type == MessageType.GET_VERSION.value:
        return _stay(state, ReplyVersion())
    if event.type == MessageType.SKIP_WAITING.value:
        if state.phase == LifecycleState.INSTALLED:
            return _begin_activation(dataclasses.replace(state, skip_waiting=True))
        if state.phase in (LifecycleState.PARSED, LifecycleState.INSTALLING):
            return _stay(
                dataclasses.replace(state, skip_waiting=True),
                Log(logging.DEBUG, "Skip-wait requested; will activate after install"),
            )
        return _stay(state, Log(logging.DEBUG, f"Skip-wait ignored: {state.phase.value}"))
    return _stay(state, Log(logging.WARNING, f"Unknown control message: {event.type!r}"))


def _on_sync(state: ControllerState, event: Sync) -> Transition:
    return _stay(state, RunSync(event.tag))


def _on_client_connected(state: ControllerState, event: ClientConnected) -> Transition:
    if state.phase == LifecycleState.ACTIVE:
        return _stay(
            dataclasses.replace(
                state, current_clients=state.current_clients | {event.client_id}
            )
        )
    return _stay(
        dataclasses.replace(state, stale_clients=state.stale_clients | {event.client_id})
    )


def _on_client_released(state: ControllerState, event: ClientReleased) -> Transition:
    released = dataclasses.replace(
        state,
        current_clients=state.current_clients - {event.client_id},
        stale_clients=state.stale_clients - {event.client_id},
    )
    if released.phase == LifecycleState.INSTALLED and not released.stale_clients:
        return _begin_activation(released)
    return _stay(released)


TRANSITIONS: dict[type, Callable[..., Transition]] = {
    Install: _on_install,
    InstallResult: _on_install_result,
    Activate: _on_activate,
    Activated: _on_activated,
    Resume: _on_resume,
    Fetch: _on_fetch,
    Message: _on_message,
    Sync: _on_sync,
    ClientConnected: _on_client_connected,
    ClientReleased: _on_client_released,
}
"""Event type -> handler. Each handler is pure: no I/O, no mutation."""


def transition(state: ControllerState, event: Event) -> Transition:
    """Return the next state and the effects to run for *event*.

    Raises:
        TypeError: If *event* is not a known event type.
    """
    handler = TRANSITIONS.get(type(event))
    if handler is None:
        raise TypeError(f"Unknown lifecycle event: {event!r}")
    return handler(state, event)
