"""
Sonar-style haptic cadence for the current obstacle.

Maps the stabilized obstacle height to a pulse interval (closer obstacle =
faster pulses) and the detection confidence to a pulse intensity. Actuating
the pulses is left to the platform; this module only decides *what* cadence
to run and *when* it changed enough to be re-issued.

Mapping:
    t = clamp((height - height_floor) / (1 - height_floor), 0, 1)
    interval_ms = round(max_interval - t * (max_interval - min_interval))
    intensity = heavy (conf > 0.6) | medium (conf > 0.4) | light
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sonar_nav.utils.config_sections import SonarConfig

log = logging.getLogger(__name__)

LIGHT = "light"
MEDIUM = "medium"
HEAVY = "heavy"


@dataclass(frozen=True)
class SonarCadence:
    interval_ms: int
    intensity: str


def cadence_interval_ms(height: float, config: Optional[SonarConfig] = None) -> int:
    config = config or SonarConfig()
    span = 1.0 - config.height_floor
    t = (height - config.height_floor) / span if span > 0 else 1.0
    t = max(0.0, min(1.0, t))
    return int(round(config.max_interval_ms - t * (config.max_interval_ms - config.min_interval_ms)))


def cadence_intensity(confidence: float) -> str:
    if confidence > 0.6:
        return HEAVY
    if confidence > 0.4:
        return MEDIUM
    return LIGHT


def map_cadence(height: float, confidence: float, config: Optional[SonarConfig] = None) -> SonarCadence:
    return SonarCadence(
        interval_ms=cadence_interval_ms(height, config),
        intensity=cadence_intensity(confidence),
    )


class SonarCadenceTracker:
    """Remembers the active cadence and reports only meaningful changes.

    ``update`` returns the new cadence when it should be (re)issued, or None
    when the running one is still good. ``active`` is None while no obstacle
    is present.
    """

    def __init__(self, config: Optional[SonarConfig] = None) -> None:
        self.config = config or SonarConfig()
        self.active: Optional[SonarCadence] = None

    def update(
        self,
        detected: bool,
        height: Optional[float],
        confidence: Optional[float],
    ) -> Optional[SonarCadence]:
        if not detected or height is None or confidence is None:
            if self.active is not None:
                log.debug("Sonar stopped - no obstacles")
            self.active = None
            return None

        cadence = map_cadence(height, confidence, self.config)
        if self.active is not None and abs(cadence.interval_ms - self.active.interval_ms) <= self.config.change_threshold_ms:
            return None

        log.debug("Sonar update: %dms interval, %s intensity", cadence.interval_ms, cadence.intensity)
        self.active = cadence
        return cadence

    @property
    def running(self) -> bool:
        return self.active is not None

    def reset(self) -> None:
        self.active = None


__all__ = [
    "HEAVY",
    "LIGHT",
    "MEDIUM",
    "SonarCadence",
    "SonarCadenceTracker",
    "cadence_intensity",
    "cadence_interval_ms",
    "map_cadence",
]
