"""Aggregate detection settings with live-update subscriptions."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, List

from sonar_nav.utils.config_sections import (
    EventLogConfig,
    HazardFilterConfig,
    NavigationGuidanceConfig,
    ProximityConfig,
    SonarConfig,
    StabilizerConfig,
    TrackerConfig,
    load_event_log_config,
    load_hazard_filter_config,
    load_navigation_guidance_config,
    load_proximity_config,
    load_sonar_config,
    load_stabilizer_config,
    load_tracker_config,
)

log = logging.getLogger(__name__)

SettingsListener = Callable[["DetectionSettings"], None]


@dataclass(frozen=True)
class DetectionSettings:
    """Every configuration section the pipeline needs, passed in explicitly."""

    stabilizer: StabilizerConfig = field(default_factory=StabilizerConfig)
    hazard: HazardFilterConfig = field(default_factory=HazardFilterConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    proximity: ProximityConfig = field(default_factory=ProximityConfig)
    navigation: NavigationGuidanceConfig = field(default_factory=NavigationGuidanceConfig)
    event_log: EventLogConfig = field(default_factory=EventLogConfig)
    sonar: SonarConfig = field(default_factory=SonarConfig)

    @classmethod
    def from_defaults(cls) -> "DetectionSettings":
        """Build settings from ``Config`` (and therefore the environment)."""
        return cls(
            stabilizer=load_stabilizer_config(),
            hazard=load_hazard_filter_config(),
            tracker=load_tracker_config(),
            proximity=load_proximity_config(),
            navigation=load_navigation_guidance_config(),
            event_log=load_event_log_config(),
            sonar=load_sonar_config(),
        )

    def with_overrides(self, section: str, **changes: Any) -> "DetectionSettings":
        """Return a copy with ``changes`` applied to one section.

        Raises:
            ValueError: unknown section or unsupported key
        """
        section_names = {f.name for f in fields(self)}
        if section not in section_names:
            raise ValueError(f"Unknown settings section: {section}")
        current = getattr(self, section)
        allowed = {f.name for f in fields(current)}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Unsupported {section} overrides: {sorted(unknown)}")
        # replace() re-runs __post_init__ so clamping still applies
        return replace(self, **{section: replace(current, **changes)})


class SettingsStore:
    """Holds the current settings and notifies subscribers on change.

    Listeners are called synchronously from the thread calling ``update``;
    consumers that own mutable state (the pipeline) only stage the new value
    and apply it on their own processing path.
    """

    def __init__(self, settings: DetectionSettings | None = None) -> None:
        self._settings = settings or DetectionSettings.from_defaults()
        self._listeners: List[SettingsListener] = []
        self._lock = threading.Lock()

    @property
    def settings(self) -> DetectionSettings:
        return self._settings

    def update(self, section: str, **changes: Any) -> DetectionSettings:
        with self._lock:
            self._settings = self._settings.with_overrides(section, **changes)
            snapshot = self._settings
            listeners = list(self._listeners)
        log.info("Settings updated: %s %s", section, changes)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                log.exception("Settings listener failed")
        return snapshot

    def subscribe(self, listener: SettingsListener) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe


__all__ = ["DetectionSettings", "SettingsStore", "SettingsListener"]
