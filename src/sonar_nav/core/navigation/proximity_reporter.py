"""
Distance estimation, stability gating and rate limiting for obstacle events.

The reporter converts the tracked obstacle's normalized height into an
approximate distance (a monotonic heuristic, not a calibrated measurement),
waits until several consecutive estimates agree, and only then considers an
event. Events are routed to the primary detection callback at most once per
cooldown window; candidates inside the window (or while the stabilizer does
not report an obstacle) go to the fallback callback instead of being
dropped, so passive consumers such as navigation guidance still see them.

Architecture:
    height -> estimate_distance -> stability gate -> meaningful-change gate
                                                          |
                                    CooldownGate -> on_detection (primary)
                                          \\-----> on_fallback_detection

Usage:
    reporter = ProximityReporter(config, on_detection=speak, on_fallback_detection=buffer)
    outcome = reporter.report(height=0.5, confidence=0.8, bounding_box=det.bounding_box)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from sonar_nav.core.telemetry.loggers.navigation_logger import get_navigation_logger
from sonar_nav.utils.config_sections import ProximityConfig

log = logging.getLogger(__name__)

PRIMARY = "primary"
FALLBACK = "fallback"

DetectionCallback = Callable[[float, float, Optional[Dict[str, float]]], None]
FallbackCallback = Callable[[float, float], None]


def estimate_distance(height: float, config: ProximityConfig) -> float:
    """distance = max(min_distance, offset - scale * height)."""
    return max(config.min_distance, config.distance_offset - config.distance_scale * height)


class CooldownGate:
    """Minimum wall-clock spacing between primary emissions."""

    def __init__(self, cooldown_ms: float) -> None:
        self.cooldown_ms = cooldown_ms
        self.last_emitted_at: Optional[float] = None

    def allows(self, now: float) -> bool:
        if self.last_emitted_at is None:
            return True
        return (now - self.last_emitted_at) * 1000.0 >= self.cooldown_ms

    def mark(self, now: float) -> None:
        self.last_emitted_at = now

    def reset(self) -> None:
        self.last_emitted_at = None


@dataclass(frozen=True)
class ReportOutcome:
    """What the reporter did with one reading."""
    distance: float
    stable_frames: int
    channel: Optional[str] = None
    reason: str = ""


class ProximityReporter:
    """Turns tracked heights into rate-limited detection events."""

    def __init__(
        self,
        config: Optional[ProximityConfig] = None,
        on_detection: Optional[DetectionCallback] = None,
        on_fallback_detection: Optional[FallbackCallback] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or ProximityConfig()
        self.on_detection = on_detection
        self.on_fallback_detection = on_fallback_detection
        self.clock = clock
        self.gate = CooldownGate(self.config.cooldown_ms)

        self.stable_distance: Optional[float] = None
        self.consecutive_stable_frames = 0
        self.last_reported_distance: Optional[float] = None
        self.last_reported_at: Optional[float] = None

        self.primary_count = 0
        self.fallback_count = 0

    def apply_config(self, config: ProximityConfig) -> None:
        self.config = config
        self.gate.cooldown_ms = config.cooldown_ms

    def report(
        self,
        height: float,
        confidence: float,
        bounding_box: Optional[Dict[str, float]] = None,
        detected: bool = True,
        now: Optional[float] = None,
    ) -> ReportOutcome:
        """
        Feed one reading.

        Args:
            height: Normalized obstacle height (0-1)
            confidence: Detection confidence (0-1)
            bounding_box: Optional ``{x, y, w, h}`` forwarded to the primary callback
            detected: Stabilizer verdict; candidates without it go to fallback
            now: Wall-clock seconds (defaults to the reporter clock)

        Returns:
            ReportOutcome describing the routing decision
        """
        if now is None:
            now = self.clock()
        cfg = self.config
        logger = get_navigation_logger().proximity

        distance = estimate_distance(height, cfg)
        if self.stable_distance is not None and abs(distance - self.stable_distance) <= cfg.stability_epsilon:
            self.consecutive_stable_frames += 1
        else:
            self.stable_distance = distance
            self.consecutive_stable_frames = 1

        if self.consecutive_stable_frames < cfg.required_stable_frames:
            return ReportOutcome(distance, self.consecutive_stable_frames, reason="unstable")

        if (
            self.last_reported_distance is not None
            and abs(distance - self.last_reported_distance) < cfg.meaningful_change_threshold
        ):
            return ReportOutcome(distance, self.consecutive_stable_frames, reason="unchanged")

        if not detected:
            self._emit_fallback(height, confidence)
            return ReportOutcome(distance, self.consecutive_stable_frames, channel=FALLBACK, reason="below_threshold")

        if not self.gate.allows(now):
            logger.debug(f"Rate limited ({cfg.cooldown_ms}ms cooldown): d={distance:.2f}m")
            self._emit_fallback(height, confidence)
            return ReportOutcome(distance, self.consecutive_stable_frames, channel=FALLBACK, reason="cooldown")

        self.gate.mark(now)
        self.last_reported_distance = distance
        self.last_reported_at = now
        self.primary_count += 1
        logger.info(f"Obstacle at ~{distance:.2f}m (h={height:.2f}, conf={confidence:.2f})")
        if self.on_detection is not None:
            try:
                self.on_detection(height, confidence, bounding_box)
            except Exception:
                log.exception("on_detection callback failed")
        return ReportOutcome(distance, self.consecutive_stable_frames, channel=PRIMARY, reason="reported")

    def _emit_fallback(self, height: float, confidence: float) -> None:
        self.fallback_count += 1
        if self.on_fallback_detection is None:
            return
        try:
            self.on_fallback_detection(height, confidence)
        except Exception:
            log.exception("on_fallback_detection callback failed")

    def reset(self) -> None:
        self.stable_distance = None
        self.consecutive_stable_frames = 0
        self.last_reported_distance = None
        self.last_reported_at = None
        self.gate.reset()


__all__ = [
    "CooldownGate",
    "FALLBACK",
    "PRIMARY",
    "ProximityReporter",
    "ReportOutcome",
    "estimate_distance",
]
