"""Tests for the pure lifecycle transition table."""

from __future__ import annotations

import dataclasses

import pytest

from cachegen.engine.events import (
    Activate,
    Activated,
    ClaimClients,
    ClientConnected,
    ClientReleased,
    CollectGarbage,
    ControllerState,
    DiscardFailed,
    Emit,
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
from cachegen.models import LifecycleState, Request


def _state(phase: LifecycleState, **kwargs) -> ControllerState:
    return ControllerState(phase=phase, **kwargs)


def _kinds(effects) -> list[type]:
    """Effect types in order, ignoring log lines."""
    return [type(e) for e in effects if not isinstance(e, Log)]


ACTIVATION = [Promote, CollectGarbage, ClaimClients, Emit]


class TestInstall:
    def test_parsed_starts_populate(self) -> None:
        step = transition(_state(LifecycleState.PARSED), Install())
        assert step.state.phase == LifecycleState.INSTALLING
        assert _kinds(step.effects) == [Populate]

    @pytest.mark.parametrize(
        "phase", [LifecycleState.INSTALLING, LifecycleState.ACTIVATING, LifecycleState.ACTIVE]
    )
    def test_second_install_is_noop(self, phase: LifecycleState) -> None:
        state = _state(phase)
        step = transition(state, Install())
        assert step.state == state
        assert _kinds(step.effects) == []

    def test_installed_waits_without_skip(self) -> None:
        state = _state(LifecycleState.INSTALLED)
        assert _kinds(transition(state, Install()).effects) == []

    def test_installed_activates_with_skip(self) -> None:
        step = transition(_state(LifecycleState.INSTALLED, skip_waiting=True), Install())
        assert step.state.phase == LifecycleState.ACTIVATING
        assert _kinds(step.effects) == ACTIVATION

    def test_retry_after_failure(self) -> None:
        step = transition(_state(LifecycleState.INSTALL_FAILED), Install())
        assert step.state.phase == LifecycleState.INSTALLING
        assert _kinds(step.effects) == [Populate]


class TestInstallResult:
    def test_failure(self) -> None:
        step = transition(_state(LifecycleState.INSTALLING), InstallResult(ok=False, reason="x"))
        assert step.state.phase == LifecycleState.INSTALL_FAILED
        assert _kinds(step.effects) == [DiscardFailed]
        assert "x" in next(e.message for e in step.effects if isinstance(e, Log))

    def test_success_without_old_clients_activates(self) -> None:
        step = transition(_state(LifecycleState.INSTALLING), InstallResult(ok=True))
        assert step.state.phase == LifecycleState.ACTIVATING
        assert _kinds(step.effects) == ACTIVATION

    def test_success_with_old_clients_waits(self) -> None:
        state = _state(LifecycleState.INSTALLING, stale_clients=frozenset({"tab-1"}))
        step = transition(state, InstallResult(ok=True))
        assert step.state.phase == LifecycleState.INSTALLED
        assert _kinds(step.effects) == []

    def test_success_with_skip_waiting_ignores_old_clients(self) -> None:
        state = _state(
            LifecycleState.INSTALLING,
            skip_waiting=True,
            stale_clients=frozenset({"tab-1"}),
        )
        step = transition(state, InstallResult(ok=True))
        assert step.state.phase == LifecycleState.ACTIVATING
        claim = next(e for e in step.effects if isinstance(e, ClaimClients))
        assert claim.client_ids == ("tab-1",)

    def test_result_outside_install_is_ignored(self) -> None:
        state = _state(LifecycleState.ACTIVE)
        assert transition(state, InstallResult(ok=True)).state == state


class TestActivation:
    def test_effect_order(self) -> None:
        step = transition(_state(LifecycleState.INSTALLED), Activate())
        assert _kinds(step.effects) == ACTIVATION
        emit = next(e for e in step.effects if isinstance(e, Emit))
        assert emit.event == Activated()

    def test_activate_before_install_is_ignored(self) -> None:
        state = _state(LifecycleState.PARSED)
        assert transition(state, Activate()).state == state

    def test_activated_rebinds_clients(self) -> None:
        state = _state(
            LifecycleState.ACTIVATING,
            current_clients=frozenset({"a"}),
            stale_clients=frozenset({"b"}),
        )
        step = transition(state, Activated())
        assert step.state.phase == LifecycleState.ACTIVE
        assert step.state.current_clients == {"a", "b"}
        assert step.state.stale_clients == frozenset()


class TestSkipWaiting:
    def test_installed_activates_immediately(self) -> None:
        state = _state(LifecycleState.INSTALLED, stale_clients=frozenset({"tab"}))
        step = transition(state, Message("SKIP_WAITING"))
        assert step.state.phase == LifecycleState.ACTIVATING
        assert _kinds(step.effects) == ACTIVATION

    @pytest.mark.parametrize("phase", [LifecycleState.PARSED, LifecycleState.INSTALLING])
    def test_remembered_before_install_finishes(self, phase: LifecycleState) -> None:
        step = transition(_state(phase), Message("SKIP_WAITING"))
        assert step.state.phase == phase
        assert step.state.skip_waiting is True

    def test_ignored_once_active(self) -> None:
        state = _state(LifecycleState.ACTIVE)
        assert transition(state, Message("SKIP_WAITING")).state == state


class TestMessagesAndRouting:
    def test_get_version(self) -> None:
        step = transition(_state(LifecycleState.ACTIVE), Message("GET_VERSION"))
        assert _kinds(step.effects) == [ReplyVersion]

    def test_unknown_message_is_logged(self) -> None:
        state = _state(LifecycleState.ACTIVE)
        step = transition(state, Message("PING"))
        assert step.state == state
        assert _kinds(step.effects) == []
        assert any(isinstance(e, Log) for e in step.effects)

    @pytest.mark.parametrize(
        "phase, current",
        [
            (LifecycleState.PARSED, False),
            (LifecycleState.INSTALLING, False),
            (LifecycleState.INSTALLED, False),
            (LifecycleState.INSTALL_FAILED, False),
            (LifecycleState.ACTIVATING, True),
            (LifecycleState.ACTIVE, True),
        ],
    )
    def test_fetch_routing(self, phase: LifecycleState, current: bool) -> None:
        request = Request(url="./index.html")
        (effect,) = transition(_state(phase), Fetch(request)).effects
        assert effect == Retrieve(request, current=current)

    def test_sync(self) -> None:
        (effect,) = transition(_state(LifecycleState.ACTIVE), Sync("sync-documents")).effects
        assert effect == RunSync("sync-documents")

    def test_unknown_event_type(self) -> None:
        with pytest.raises(TypeError):
            transition(_state(LifecycleState.ACTIVE), object())


class TestResumeAndClients:
    def test_resume_active(self) -> None:
        step = transition(_state(LifecycleState.PARSED), Resume())
        assert step.state.phase == LifecycleState.ACTIVE

    def test_resume_installed(self) -> None:
        step = transition(_state(LifecycleState.PARSED), Resume(active=False))
        assert step.state.phase == LifecycleState.INSTALLED

    def test_client_before_activation_is_stale(self) -> None:
        step = transition(_state(LifecycleState.INSTALLING), ClientConnected("tab"))
        assert step.state.stale_clients == {"tab"}

    def test_client_while_active_is_current(self) -> None:
        step = transition(_state(LifecycleState.ACTIVE), ClientConnected("tab"))
        assert step.state.current_clients == {"tab"}

    def test_last_stale_release_triggers_activation(self) -> None:
        state = _state(LifecycleState.INSTALLED, stale_clients=frozenset({"a", "b"}))
        step = transition(state, ClientReleased("a"))
        assert step.state.phase == LifecycleState.INSTALLED

        step = transition(step.state, ClientReleased("b"))
        assert step.state.phase == LifecycleState.ACTIVATING
        assert _kinds(step.effects) == ACTIVATION

    def test_transition_is_pure(self) -> None:
        state = _state(LifecycleState.INSTALLED, stale_clients=frozenset({"a"}))
        snapshot = dataclasses.replace(state)
        transition(state, ClientReleased("a"))
        assert state == snapshot
