"""
Zone-based navigation guidance from recent hazard detections.

The frame is split into three vertical zones by ``center_x``:
left (< 0.35), center (0.35 - 0.65) and right (> 0.65). Guidance looks at the
last few frames of hazard-filtered detections and recommends the side with
fewer obstacles whenever the center is blocked.

Decision table:
    center empty                        -> straight
    left empty, right occupied          -> left
    right empty, left occupied          -> right
    left < right                        -> left
    right < left                        -> right
    equal (including both sides empty)  -> stop
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterable, List, Optional, Sequence

from sonar_nav.core.telemetry.loggers.navigation_logger import get_navigation_logger
from sonar_nav.core.vision.detected_object import Detection
from sonar_nav.utils.config_sections import NavigationGuidanceConfig

STRAIGHT = "straight"
LEFT = "left"
RIGHT = "right"
STOP = "stop"

GUIDANCE_LOG_EVERY = 30


@dataclass(frozen=True)
class NavigationResult:
    """Recommended direction plus per-zone counts."""
    direction: str
    path_clear: bool
    obstacle_count: int
    left_count: int
    center_count: int
    right_count: int
    avg_confidence: float


def zone_for(center_x: float, config: NavigationGuidanceConfig) -> str:
    if center_x < config.left_boundary:
        return LEFT
    if center_x > config.right_boundary:
        return RIGHT
    return "center"


def analyze_detections(
    detections: Sequence[Detection],
    config: Optional[NavigationGuidanceConfig] = None,
) -> NavigationResult:
    """Stateless direction decision over a set of detections."""
    config = config or NavigationGuidanceConfig()
    left = center = right = 0
    for det in detections:
        zone = zone_for(det.center_x, config)
        if zone == LEFT:
            left += 1
        elif zone == RIGHT:
            right += 1
        else:
            center += 1

    if center == 0:
        direction = STRAIGHT
    elif left == 0 and right > 0:
        direction = LEFT
    elif right == 0 and left > 0:
        direction = RIGHT
    elif left < right:
        direction = LEFT
    elif right < left:
        direction = RIGHT
    else:
        direction = STOP

    count = len(detections)
    avg_confidence = sum(det.confidence for det in detections) / count if count else 0.0
    return NavigationResult(
        direction=direction,
        path_clear=center == 0,
        obstacle_count=count,
        left_count=left,
        center_count=center,
        right_count=right,
        avg_confidence=avg_confidence,
    )


class RecentDetectionBuffer:
    """Ring buffer of the most recent hazard detections."""

    def __init__(self, config: Optional[NavigationGuidanceConfig] = None) -> None:
        self.config = config or NavigationGuidanceConfig()
        self._items: Deque[Detection] = deque(maxlen=self.config.buffer_size)
        self._analyses = 0

    def extend(self, detections: Iterable[Detection]) -> None:
        self._items.extend(detections)

    def items(self) -> List[Detection]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def analyze(self) -> NavigationResult:
        result = analyze_detections(self._items, self.config)
        self._analyses += 1
        if self._analyses % GUIDANCE_LOG_EVERY == 0:
            get_navigation_logger().guidance.debug(
                f"direction={result.direction} L/C/R={result.left_count}/{result.center_count}/{result.right_count} "
                f"n={result.obstacle_count} conf={result.avg_confidence:.2f}"
            )
        return result

    def apply_config(self, config: NavigationGuidanceConfig) -> None:
        self.config = config
        self._items = deque(self._items, maxlen=config.buffer_size)

    def clear(self) -> None:
        self._items.clear()


__all__ = [
    "LEFT",
    "NavigationResult",
    "RIGHT",
    "RecentDetectionBuffer",
    "STOP",
    "STRAIGHT",
    "analyze_detections",
    "zone_for",
]
