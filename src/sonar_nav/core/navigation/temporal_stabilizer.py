"""
Temporal stabilization of per-frame obstacle heights.

Raw detector heights flicker from frame to frame. This module smooths them
with a moving average, estimates the trend with a least-squares slope and
runs a two-sided hysteresis state machine so the "obstacle detected" signal
neither chatters near the threshold nor lags behind a fast approach.

Decision rules (enter = threshold, exit = max(0, threshold - hysteresis)):
- Instant close: smoothed >= enter + min(0.15, 3 * hysteresis) -> detected
- Sudden increase: last two smoothed values differ by >= sudden_delta -> detected
- Entry: (smoothed >= enter or latest raw >= enter)
         and (allow_size_only or slope >= min_slope)
- Exit: (smoothed <= exit and latest raw <= enter) or slope <= -min_slope

Usage:
    stabilizer = TemporalStabilizer(StabilizerConfig(threshold=0.4))
    result = stabilizer.update(height=0.52, confidence=0.8)
    if result.detected:
        ...
"""

from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Sequence

import numpy as np

from sonar_nav.core.telemetry.loggers.navigation_logger import get_navigation_logger
from sonar_nav.utils.config_sections import StabilizerConfig


@dataclass(frozen=True)
class StabilizerResult:
    """Outcome of analysing the current window."""
    detected: bool
    smoothed: float
    slope: float
    avg_confidence: Optional[float]
    latest_raw: float = 0.0


def moving_average_series(values: Sequence[float], window: int) -> List[float]:
    """Trailing moving average; early points average over what is available."""
    window = max(1, int(window))
    out: List[float] = []
    for i in range(len(values)):
        start = max(0, i - (window - 1))
        chunk = values[start:i + 1]
        out.append(sum(chunk) / len(chunk))
    return out


def regression_slope(values: Sequence[float]) -> float:
    """Ordinary least-squares slope against index 0..n-1 (0 for fewer than 2 points)."""
    n = len(values)
    if n <= 1:
        return 0.0
    y = np.asarray(values, dtype=float)
    dx = np.arange(n, dtype=float) - (n - 1) / 2
    denom = float(np.dot(dx, dx))
    if denom == 0:
        return 0.0
    return float(np.dot(dx, y - y.mean()) / denom)


def decide_detection(
    previous_detected: bool,
    smoothed: float,
    latest_raw: float,
    slope: float,
    previous_smoothed: Optional[float],
    options: StabilizerConfig,
) -> bool:
    """Hysteresis state transition for one frame."""
    enter_threshold = options.threshold
    exit_threshold = max(0.0, options.threshold - options.hysteresis)
    instant_delta = min(0.15, options.hysteresis * 3)

    instant_close = smoothed >= enter_threshold + instant_delta
    sudden_increase = previous_smoothed is not None and smoothed - previous_smoothed >= options.sudden_delta

    if not previous_detected:
        crosses_enter = (smoothed >= enter_threshold or latest_raw >= enter_threshold) and (
            options.allow_size_only or slope >= options.min_slope
        )
        return crosses_enter or instant_close or sudden_increase

    if (smoothed <= exit_threshold and latest_raw <= enter_threshold) or slope <= -options.min_slope:
        return False
    return True


def analyze_detection(
    heights: Sequence[float],
    confidences: Sequence[float],
    previous_detected: bool,
    options: StabilizerConfig,
) -> StabilizerResult:
    """Smooth the window, estimate the trend and apply hysteresis."""
    frames = options.frames
    raw = list(heights)[-frames:]
    conf_raw = list(confidences)[-frames:]

    smooth_series = moving_average_series(raw, min(options.smoothing_window, frames))
    smoothed = smooth_series[-1] if smooth_series else 0.0

    regression_window = min(len(smooth_series), frames)
    slope = regression_slope(smooth_series[len(smooth_series) - regression_window:])

    avg_confidence = sum(conf_raw) / len(conf_raw) if conf_raw else None
    previous_smoothed = smooth_series[-2] if len(smooth_series) >= 2 else None
    latest_raw = raw[-1] if raw else 0.0

    detected = decide_detection(previous_detected, smoothed, latest_raw, slope, previous_smoothed, options)
    return StabilizerResult(
        detected=detected,
        smoothed=smoothed,
        slope=slope,
        avg_confidence=avg_confidence,
        latest_raw=latest_raw,
    )


class TemporalStabilizer:
    """Owns the sliding window and the debounced obstacle flag."""

    def __init__(self, config: Optional[StabilizerConfig] = None) -> None:
        self.config = config or StabilizerConfig()
        self.heights: Deque[float] = deque(maxlen=self.config.frames)
        self.confidences: Deque[float] = deque(maxlen=self.config.frames)
        self.smoothed: Optional[float] = None
        self.slope: Optional[float] = None
        self.obstacle_detected = False

    def update(self, height: float, confidence: Optional[float] = None) -> Optional[StabilizerResult]:
        """Feed one accepted reading; non-finite heights are ignored."""
        if height is None or not math.isfinite(height):
            return None
        if confidence is None or not math.isfinite(confidence):
            confidence = 0.0

        self.heights.append(float(height))
        self.confidences.append(float(confidence))

        result = analyze_detection(self.heights, self.confidences, self.obstacle_detected, self.config)
        self.smoothed = result.smoothed
        self.slope = result.slope

        if result.detected != self.obstacle_detected:
            self.obstacle_detected = result.detected
            get_navigation_logger().stabilizer.info(
                f"Obstacle state changed: detected={result.detected} smoothed={result.smoothed:.3f} slope={result.slope:.4f}"
            )
        return result

    def apply_config(self, config: StabilizerConfig) -> None:
        """Swap thresholds; the window keeps its most recent readings."""
        self.config = config
        self.heights = deque(self.heights, maxlen=config.frames)
        self.confidences = deque(self.confidences, maxlen=config.frames)

    @property
    def avg_confidence(self) -> Optional[float]:
        if not self.confidences:
            return None
        return sum(self.confidences) / len(self.confidences)

    def reset(self) -> None:
        self.heights.clear()
        self.confidences.clear()
        self.smoothed = None
        self.slope = None
        self.obstacle_detected = False


__all__ = [
    "StabilizerResult",
    "TemporalStabilizer",
    "analyze_detection",
    "decide_detection",
    "moving_average_series",
    "regression_slope",
]
