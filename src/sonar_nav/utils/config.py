"""
Centralized configuration for the obstacle sonar navigation core.

This module provides all configuration constants for:
- Hazard filtering (confidence floor, geometric artifact suppression)
- Single-target tracking (IoU matching, loss budget)
- Temporal stabilization (window, hysteresis, slope gating)
- Proximity reporting (distance heuristic, stability gate, cooldown)
- Navigation guidance zones
- Detection event logging and upload
- Sonar haptic cadence

The Config class contains all constants as class attributes, making them
accessible throughout the application without instantiation. Every value can
be overridden from the environment; invalid values fall back to the default
with a warning.

Usage:
    from sonar_nav.utils.config import Config

    threshold = Config.OBSTACLE_THRESHOLD
    if Config.DETECTION_LOG_URL:
        # Enable detection log upload
"""

import logging
import math
import os
from typing import Optional

log = logging.getLogger(__name__)

_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


def env_float(
    name: str,
    default: float,
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
) -> float:
    """Read a float from the environment, falling back to ``default`` when invalid."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        log.warning("Invalid float for %s=%r, using default %s", name, raw, default)
        return default
    if not math.isfinite(value):
        log.warning("Non-finite value for %s=%r, using default %s", name, raw, default)
        return default
    if (minimum is not None and value < minimum) or (maximum is not None and value > maximum):
        log.warning("Out of range %s=%r (expected %s..%s), using default %s", name, raw, minimum, maximum, default)
        return default
    return value


def env_int(
    name: str,
    default: int,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
    clamp: bool = False,
) -> int:
    """Read an int from the environment.

    With ``clamp`` an out-of-range value is clamped into range instead of
    being replaced by the default (used for window sizes).
    """
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        log.warning("Invalid int for %s=%r, using default %s", name, raw, default)
        return default
    if minimum is not None and value < minimum:
        if clamp:
            return minimum
        log.warning("Out of range %s=%r, using default %s", name, raw, default)
        return default
    if maximum is not None and value > maximum:
        if clamp:
            return maximum
        log.warning("Out of range %s=%r, using default %s", name, raw, default)
        return default
    return value


def env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    log.warning("Invalid bool for %s=%r, using default %s", name, raw, default)
    return default


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()


class Config:
    """System configuration constants for the obstacle sonar core."""

    # ==========================================================================
    # TEMPORAL STABILIZER: Sliding window & hysteresis
    # ==========================================================================

    OBSTACLE_FRAMES = env_int("OBSTACLE_FRAMES", 5, minimum=2, maximum=30, clamp=True)
    OBSTACLE_THRESHOLD = env_float("OBSTACLE_THRESHOLD", 0.35, 0.0, 1.0)
    OBSTACLE_HYSTERESIS = env_float("OBSTACLE_HYSTERESIS", 0.05, 0.0, 1.0)
    OBSTACLE_MIN_SLOPE = env_float("OBSTACLE_MIN_SLOPE", 0.002, 0.0)
    OBSTACLE_SUDDEN_DELTA = env_float("OBSTACLE_SUDDEN_DELTA", 0.08, 0.0)
    OBSTACLE_SMOOTHING_WINDOW = env_int("OBSTACLE_SMOOTHING_WINDOW", 3, minimum=1)
    OBSTACLE_ALLOW_SIZE_ONLY = env_bool("OBSTACLE_ALLOW_SIZE_ONLY", True)

    # ==========================================================================
    # HAZARD FILTER: Confidence floor & geometric artifact suppression
    # ==========================================================================

    OBSTACLE_MIN_CONFIDENCE = env_float("OBSTACLE_MIN_CONFIDENCE", 0.25, 0.0, 1.0)
    HAZARD_MIN_AREA = env_float("HAZARD_MIN_AREA", 0.002, 0.0, 1.0)
    HAZARD_MAX_AREA = env_float("HAZARD_MAX_AREA", 0.9, 0.0, 1.0)      # Stalled-engine full-frame boxes
    HAZARD_CENTER_X_MIN = env_float("HAZARD_CENTER_X_MIN", 0.1, 0.0, 1.0)
    HAZARD_CENTER_X_MAX = env_float("HAZARD_CENTER_X_MAX", 0.9, 0.0, 1.0)
    HAZARD_MIN_BOTTOM = env_float("HAZARD_MIN_BOTTOM", 0.3, 0.0, 1.0)  # ymax must reach below this
    HAZARD_MAX_ASPECT_RATIO = env_float("HAZARD_MAX_ASPECT_RATIO", 5.0, 0.0)

    # Center-path policy (alternative hazard filter)
    CENTER_PATH_TOLERANCE = env_float("CENTER_PATH_TOLERANCE", 0.3, 0.0, 0.5)
    CENTER_PATH_MIN_HEIGHT = env_float("CENTER_PATH_MIN_HEIGHT", 0.35, 0.0, 1.0)
    CENTER_PATH_MIN_WIDTH = env_float("CENTER_PATH_MIN_WIDTH", 0.15, 0.0, 1.0)

    # ==========================================================================
    # TRACKER: IoU matching
    # ==========================================================================

    TRACKER_IOU_THRESHOLD = env_float("TRACKER_IOU_THRESHOLD", 0.3, 0.0, 1.0)
    TRACKER_LOSS_FRAMES = env_int("TRACKER_LOSS_FRAMES", 30, minimum=0)

    # ==========================================================================
    # PROXIMITY REPORTER: Distance heuristic & gating
    # ==========================================================================

    DETECTION_COOLDOWN_MS = env_int("DETECTION_COOLDOWN_MS", 150, minimum=0)
    STABILITY_EPSILON = env_float("STABILITY_EPSILON", 0.1, 0.0)            # ~10 cm
    MEANINGFUL_CHANGE_THRESHOLD = env_float("MEANINGFUL_CHANGE_THRESHOLD", 0.2, 0.0)  # ~20 cm
    STABLE_FRAMES_REQUIRED = env_int("STABLE_FRAMES_REQUIRED", 3, minimum=1)
    DISTANCE_MIN = env_float("DISTANCE_MIN", 0.3, 0.0)
    DISTANCE_OFFSET = env_float("DISTANCE_OFFSET", 2.0, 0.0)
    DISTANCE_SCALE = env_float("DISTANCE_SCALE", 1.5, 0.0)

    # ==========================================================================
    # NAVIGATION GUIDANCE: Zones
    # ==========================================================================

    NAVIGATION_LEFT_BOUNDARY = env_float("NAVIGATION_LEFT_BOUNDARY", 0.35, 0.0, 1.0)
    NAVIGATION_RIGHT_BOUNDARY = env_float("NAVIGATION_RIGHT_BOUNDARY", 0.65, 0.0, 1.0)
    NAVIGATION_BUFFER_SIZE = env_int("NAVIGATION_BUFFER_SIZE", 8, minimum=5, maximum=10, clamp=True)

    # ==========================================================================
    # DETECTION LOG: Bounded buffer & upload
    # ==========================================================================

    DETECTION_LOG_URL = env_str("DETECTION_LOG_URL")
    DETECTION_LOG_BATCH_SIZE = env_int("DETECTION_LOG_BATCH_SIZE", 20, minimum=1)
    DETECTION_LOG_MAX = env_int("DETECTION_LOG_MAX", 1000, minimum=1)
    DETECTION_LOG_SEND_IMMEDIATE = env_bool("DETECTION_LOG_SEND_IMMEDIATE", False)
    DETECTION_LOG_TIMEOUT = env_float("DETECTION_LOG_TIMEOUT", 2.0, 0.0)

    # ==========================================================================
    # SONAR CADENCE: Haptic pulse mapping
    # ==========================================================================

    SONAR_MIN_INTERVAL_MS = env_int("SONAR_MIN_INTERVAL_MS", 200, minimum=0)
    SONAR_MAX_INTERVAL_MS = env_int("SONAR_MAX_INTERVAL_MS", 1000, minimum=0)
    SONAR_HEIGHT_FLOOR = env_float("SONAR_HEIGHT_FLOOR", 0.25, 0.0, 1.0)
    SONAR_CHANGE_THRESHOLD_MS = env_int("SONAR_CHANGE_THRESHOLD_MS", 50, minimum=0)

    # ==========================================================================
    # LOGGING
    # ==========================================================================

    NAVIGATION_LOG_DIR = env_str("SONAR_NAV_LOG_DIR")
