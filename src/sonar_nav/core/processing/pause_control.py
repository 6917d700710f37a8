"""Named pause reasons for the detection intake.

Intake stays paused while at least one reason is active, so the app going
to the background and the user pausing navigation do not fight each other.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, FrozenSet, List, Set

log = logging.getLogger(__name__)

APP_STATE = "app_state"
NAVIGATION = "navigation"
MANUAL = "manual"

PauseListener = Callable[[bool], None]


class PauseController:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reasons: Set[str] = set()
        self._listeners: List[PauseListener] = []

    @property
    def paused(self) -> bool:
        with self._lock:
            return bool(self._reasons)

    @property
    def reasons(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._reasons)

    def set_paused(self, paused: bool, reason: str = MANUAL) -> bool:
        """Add or clear one reason; returns the resulting paused state."""
        with self._lock:
            was_paused = bool(self._reasons)
            if paused:
                self._reasons.add(reason)
            else:
                self._reasons.discard(reason)
            now_paused = bool(self._reasons)
            listeners = list(self._listeners)

        if now_paused != was_paused:
            log.info("Detection intake %s (reasons=%s)", "paused" if now_paused else "resumed", sorted(self.reasons))
            for listener in listeners:
                try:
                    listener(now_paused)
                except Exception:
                    log.exception("Pause listener failed")
        return now_paused

    def subscribe(self, listener: PauseListener) -> Callable[[], None]:
        """Call ``listener(paused)`` on every transition; returns an unsubscribe callable."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def clear(self) -> None:
        with self._lock:
            had_reasons = bool(self._reasons)
        if had_reasons:
            for reason in list(self.reasons):
                self.set_paused(False, reason)


__all__ = ["APP_STATE", "MANUAL", "NAVIGATION", "PauseController"]
