"""Tests for named pause reasons."""

from __future__ import annotations

from sonar_nav.core.processing.pause_control import APP_STATE, MANUAL, NAVIGATION, PauseController


def test_paused_while_any_reason_active() -> None:
    pause = PauseController()

    pause.set_paused(True, APP_STATE)
    pause.set_paused(True, NAVIGATION)
    assert pause.paused

    pause.set_paused(False, APP_STATE)
    assert pause.paused
    assert pause.reasons == frozenset({NAVIGATION})

    pause.set_paused(False, NAVIGATION)
    assert not pause.paused


def test_default_reason_is_manual() -> None:
    pause = PauseController()

    assert pause.set_paused(True) is True
    assert pause.reasons == frozenset({MANUAL})


def test_clearing_unknown_reason_is_noop() -> None:
    pause = PauseController()
    pause.set_paused(True, APP_STATE)

    assert pause.set_paused(False, "unknown") is True


def test_listeners_only_see_transitions() -> None:
    pause = PauseController()
    seen = []
    unsubscribe = pause.subscribe(seen.append)

    pause.set_paused(True, APP_STATE)
    pause.set_paused(True, NAVIGATION)
    pause.set_paused(False, APP_STATE)
    pause.set_paused(False, NAVIGATION)
    unsubscribe()
    pause.set_paused(True)

    assert seen == [True, False]


def test_failing_listener_does_not_block_others() -> None:
    pause = PauseController()
    seen = []

    def broken(paused):
        raise RuntimeError("ui gone")

    pause.subscribe(broken)
    pause.subscribe(seen.append)

    pause.set_paused(True)

    assert seen == [True]


def test_clear_removes_all_reasons() -> None:
    pause = PauseController()
    pause.set_paused(True, APP_STATE)
    pause.set_paused(True, MANUAL)

    pause.clear()

    assert not pause.paused
