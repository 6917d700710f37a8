"""
Typed configuration sections for the obstacle sonar core.

This module provides strongly-typed configuration sections so each stage
receives its thresholds explicitly instead of reading ``Config`` directly.

Benefits:
- Type safety: IDE autocomplete and type checking
- Discoverability: All config options visible in one place
- Default values: Centralized and documented
- Better testing: Stages can be built from hand-written sections
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class StabilizerConfig:
    """Configuration for the temporal stabilizer (hysteresis + trend)."""

    # Sliding window length (frames), clamped to 2..30
    frames: int = 5

    # Enter threshold on normalized height; exit = threshold - hysteresis
    threshold: float = 0.35
    hysteresis: float = 0.05

    # Trend gating
    min_slope: float = 0.002  # Per-frame slope required to enter (unless allow_size_only)
    sudden_delta: float = 0.08  # Jump between consecutive smoothed values that forces entry

    # Moving average window, clamped to 1..frames
    smoothing_window: int = 3

    # Enter on size alone, without a rising trend
    allow_size_only: bool = True

    def __post_init__(self) -> None:
        self.frames = max(2, min(30, int(self.frames)))
        self.smoothing_window = max(1, min(int(self.smoothing_window), self.frames))
        self.hysteresis = max(0.0, float(self.hysteresis))


@dataclass
class HazardFilterConfig:
    """Configuration for the geometric/confidence hazard predicate."""

    min_confidence: float = 0.25
    min_area: float = 0.002  # Noise floor
    max_area: float = 0.9  # Near-full-frame artifact ceiling
    center_x_min: float = 0.1
    center_x_max: float = 0.9
    min_bottom: float = 0.3  # ymax must be strictly below (deeper than) this
    max_aspect_ratio: float = 5.0

    # Center-path policy
    center_tolerance: float = 0.3  # ±30% around the frame center
    center_min_height: float = 0.35
    center_min_width: float = 0.15


@dataclass
class TrackerConfig:
    """Configuration for single-target tracking across frames."""

    # IoU must be strictly above this to match the current target
    iou_match_threshold: float = 0.3

    # Frames without a match before the target is dropped
    target_loss_frames: int = 30


@dataclass
class ProximityConfig:
    """Configuration for distance estimation, stability gating and cooldown."""

    cooldown_ms: int = 150
    stability_epsilon: float = 0.1  # ~10 cm
    meaningful_change_threshold: float = 0.2  # ~20 cm
    required_stable_frames: int = 3

    # distance = max(min_distance, distance_offset - distance_scale * height)
    min_distance: float = 0.3
    distance_offset: float = 2.0
    distance_scale: float = 1.5


@dataclass
class NavigationGuidanceConfig:
    """Configuration for zone-based steering guidance."""

    left_boundary: float = 0.35
    right_boundary: float = 0.65

    # Recent detections kept for guidance (5..10)
    buffer_size: int = 8

    def __post_init__(self) -> None:
        self.buffer_size = max(5, min(10, int(self.buffer_size)))


@dataclass
class EventLogConfig:
    """Configuration for the detection event logger."""

    # Upload endpoint; logging is enabled by default only when set
    sink_url: Optional[str] = None
    enabled: bool = False

    batch_size: int = 20
    max_entries: int = 1000
    send_immediate: bool = False

    # HTTP timeout (seconds)
    timeout: float = 2.0


@dataclass
class SonarConfig:
    """Configuration for sonar haptic cadence mapping."""

    min_interval_ms: int = 200  # Closest obstacle
    max_interval_ms: int = 1000  # Obstacle at the height floor
    height_floor: float = 0.25
    change_threshold_ms: int = 50  # Re-issue cadence only above this change


def load_stabilizer_config() -> StabilizerConfig:
    """
    Load stabilizer configuration from Config with fallback defaults.

    Returns:
        StabilizerConfig with values from Config or defaults
    """
    from sonar_nav.utils.config import Config

    return StabilizerConfig(
        frames=getattr(Config, "OBSTACLE_FRAMES", 5),
        threshold=getattr(Config, "OBSTACLE_THRESHOLD", 0.35),
        hysteresis=getattr(Config, "OBSTACLE_HYSTERESIS", 0.05),
        min_slope=getattr(Config, "OBSTACLE_MIN_SLOPE", 0.002),
        sudden_delta=getattr(Config, "OBSTACLE_SUDDEN_DELTA", 0.08),
        smoothing_window=getattr(Config, "OBSTACLE_SMOOTHING_WINDOW", 3),
        allow_size_only=getattr(Config, "OBSTACLE_ALLOW_SIZE_ONLY", True),
    )


def load_hazard_filter_config() -> HazardFilterConfig:
    """
    Load hazard filter configuration from Config with fallback defaults.

    Returns:
        HazardFilterConfig with values from Config or defaults
    """
    from sonar_nav.utils.config import Config

    return HazardFilterConfig(
        min_confidence=getattr(Config, "OBSTACLE_MIN_CONFIDENCE", 0.25),
        min_area=getattr(Config, "HAZARD_MIN_AREA", 0.002),
        max_area=getattr(Config, "HAZARD_MAX_AREA", 0.9),
        center_x_min=getattr(Config, "HAZARD_CENTER_X_MIN", 0.1),
        center_x_max=getattr(Config, "HAZARD_CENTER_X_MAX", 0.9),
        min_bottom=getattr(Config, "HAZARD_MIN_BOTTOM", 0.3),
        max_aspect_ratio=getattr(Config, "HAZARD_MAX_ASPECT_RATIO", 5.0),
        center_tolerance=getattr(Config, "CENTER_PATH_TOLERANCE", 0.3),
        center_min_height=getattr(Config, "CENTER_PATH_MIN_HEIGHT", 0.35),
        center_min_width=getattr(Config, "CENTER_PATH_MIN_WIDTH", 0.15),
    )


def load_tracker_config() -> TrackerConfig:
    """
    Load tracker configuration from Config with fallback defaults.

    Returns:
        TrackerConfig with values from Config or defaults
    """
    from sonar_nav.utils.config import Config

    return TrackerConfig(
        iou_match_threshold=getattr(Config, "TRACKER_IOU_THRESHOLD", 0.3),
        target_loss_frames=getattr(Config, "TRACKER_LOSS_FRAMES", 30),
    )


def load_proximity_config() -> ProximityConfig:
    """
    Load proximity reporter configuration from Config with fallback defaults.

    Returns:
        ProximityConfig with values from Config or defaults
    """
    from sonar_nav.utils.config import Config

    return ProximityConfig(
        cooldown_ms=getattr(Config, "DETECTION_COOLDOWN_MS", 150),
        stability_epsilon=getattr(Config, "STABILITY_EPSILON", 0.1),
        meaningful_change_threshold=getattr(Config, "MEANINGFUL_CHANGE_THRESHOLD", 0.2),
        required_stable_frames=getattr(Config, "STABLE_FRAMES_REQUIRED", 3),
        min_distance=getattr(Config, "DISTANCE_MIN", 0.3),
        distance_offset=getattr(Config, "DISTANCE_OFFSET", 2.0),
        distance_scale=getattr(Config, "DISTANCE_SCALE", 1.5),
    )


def load_navigation_guidance_config() -> NavigationGuidanceConfig:
    """
    Load navigation guidance configuration from Config with fallback defaults.

    Returns:
        NavigationGuidanceConfig with values from Config or defaults
    """
    from sonar_nav.utils.config import Config

    return NavigationGuidanceConfig(
        left_boundary=getattr(Config, "NAVIGATION_LEFT_BOUNDARY", 0.35),
        right_boundary=getattr(Config, "NAVIGATION_RIGHT_BOUNDARY", 0.65),
        buffer_size=getattr(Config, "NAVIGATION_BUFFER_SIZE", 8),
    )


def load_event_log_config() -> EventLogConfig:
    """
    Load event log configuration from Config with fallback defaults.

    Returns:
        EventLogConfig with values from Config or defaults
    """
    from sonar_nav.utils.config import Config

    sink_url = getattr(Config, "DETECTION_LOG_URL", None)
    return EventLogConfig(
        sink_url=sink_url,
        enabled=bool(sink_url),
        batch_size=getattr(Config, "DETECTION_LOG_BATCH_SIZE", 20),
        max_entries=getattr(Config, "DETECTION_LOG_MAX", 1000),
        send_immediate=getattr(Config, "DETECTION_LOG_SEND_IMMEDIATE", False),
        timeout=getattr(Config, "DETECTION_LOG_TIMEOUT", 2.0),
    )


def load_sonar_config() -> SonarConfig:
    """
    Load sonar cadence configuration from Config with fallback defaults.

    Returns:
        SonarConfig with values from Config or defaults
    """
    from sonar_nav.utils.config import Config

    return SonarConfig(
        min_interval_ms=getattr(Config, "SONAR_MIN_INTERVAL_MS", 200),
        max_interval_ms=getattr(Config, "SONAR_MAX_INTERVAL_MS", 1000),
        height_floor=getattr(Config, "SONAR_HEIGHT_FLOOR", 0.25),
        change_threshold_ms=getattr(Config, "SONAR_CHANGE_THRESHOLD_MS", 50),
    )
