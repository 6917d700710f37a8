"""Single-target obstacle tracker using IoU matching across frames."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Protocol, Sequence

from sonar_nav.core.telemetry.loggers.navigation_logger import get_navigation_logger
from sonar_nav.core.vision.detected_object import Box, Detection, TrackedTarget
from sonar_nav.utils.config_sections import TrackerConfig

ACQUIRED = "acquired"
MATCHED = "matched"
STALE = "stale"
LOST = "lost"
IDLE = "idle"


@dataclass(frozen=True)
class TrackerUpdate:
    """Outcome of one tracker step."""
    target: Optional[TrackedTarget]
    event: str


class TargetTracker(Protocol):
    """Policy interface: follow zero or one obstacle across frames."""

    @property
    def target(self) -> Optional[TrackedTarget]:
        ...

    def update(self, detections: Sequence[Detection], frame_index: Optional[int] = None) -> TrackerUpdate:
        ...

    def reset(self) -> None:
        ...


def calculate_iou(box1: Box, box2: Box) -> float:
    """
    Calculate Intersection over Union (IoU) between two boxes.

    Args:
        box1, box2: (ymin, xmin, ymax, xmax) format

    Returns:
        IoU score (0.0 to 1.0)
    """
    y0a, x0a, y1a, x1a = box1
    y0b, x0b, y1b, x1b = box2

    # Calculate intersection
    inter_y0 = max(y0a, y0b)
    inter_x0 = max(x0a, x0b)
    inter_y1 = min(y1a, y1b)
    inter_x1 = min(x1a, x1b)

    if inter_x1 <= inter_x0 or inter_y1 <= inter_y0:
        return 0.0

    inter_area = (inter_y1 - inter_y0) * (inter_x1 - inter_x0)

    # Calculate union
    area_a = (y1a - y0a) * (x1a - x0a)
    area_b = (y1b - y0b) * (x1b - x0b)
    union_area = area_a + area_b - inter_area

    if union_area <= 0:
        return 0.0

    return inter_area / union_area


class ObjectTracker:
    """
    Single-target tracker using IoU matching.

    States:
        - NoTarget: waiting for any hazard; acquires the tallest detection
          (closest obstacle) and assigns a fresh tracking id.
        - Tracked: matches the best-overlapping detection above the IoU
          threshold; otherwise keeps the last-known state until the loss
          budget is exhausted.

    Example:
        - frame 0: chair acquired as target_0
        - frames 1-4: chair drifts slightly, IoU 0.7 -> still target_0
        - frames 5-40: detector misses the chair; target_0 persists stale,
          then is dropped once more than 30 frames pass without a match
    """

    def __init__(self, config: Optional[TrackerConfig] = None):
        """
        Initialize object tracker.

        Args:
            config: IoU match threshold (default 0.3) and loss budget in
                frames (default 30)
        """
        self.config = config or TrackerConfig()
        self._target: Optional[TrackedTarget] = None
        self.next_id = 0
        self.frames_processed = 0
        self.targets_lost = 0

    @property
    def target(self) -> Optional[TrackedTarget]:
        return self._target

    def update(self, detections: Sequence[Detection], frame_index: Optional[int] = None) -> TrackerUpdate:
        """
        Advance the tracker by one frame.

        Args:
            detections: Hazard-filtered detections for this frame
            frame_index: Detector frame index (internal counter when omitted)

        Returns:
            TrackerUpdate with the current target (or None) and the transition
        """
        self.frames_processed += 1
        if frame_index is None:
            frame_index = self.frames_processed
        logger = get_navigation_logger().tracker

        if self._target is None:
            if not detections:
                return TrackerUpdate(target=None, event=IDLE)
            return TrackerUpdate(target=self._acquire(detections, frame_index), event=ACQUIRED)

        match = self._best_match(self._target.box, detections)
        if match is not None:
            self._target = self._target.matched(match, frame_index)
            return TrackerUpdate(target=self._target, event=MATCHED)

        aged = self._target.aged()
        if aged.frames_since_seen > self.config.target_loss_frames:
            logger.info(
                f"Target {aged.tracking_id} lost after {aged.frames_since_seen} frames without a match"
            )
            self._target = None
            self.targets_lost += 1
            return TrackerUpdate(target=None, event=LOST)

        self._target = aged
        logger.debug(f"Target {aged.tracking_id} stale ({aged.frames_since_seen}/{self.config.target_loss_frames})")
        return TrackerUpdate(target=self._target, event=STALE)

    def reset(self) -> None:
        self._target = None

    def _acquire(self, detections: Sequence[Detection], frame_index: int) -> TrackedTarget:
        # Tallest box is the closest obstacle; first one wins ties
        closest = detections[0]
        for det in detections[1:]:
            if det.height > closest.height:
                closest = det

        self._target = TrackedTarget(
            detection=closest,
            tracking_id=self.next_id,
            last_seen_frame=frame_index,
        )
        self.next_id += 1
        get_navigation_logger().tracker.info(
            f"Acquired target {self._target.tracking_id}: h={closest.height:.2f} cx={closest.center_x:.2f} conf={closest.confidence:.2f}"
        )
        return self._target

    def _best_match(self, box: Box, detections: Sequence[Detection]) -> Optional[Detection]:
        best_iou = self.config.iou_match_threshold
        best: Optional[Detection] = None
        for det in detections:
            iou = calculate_iou(box, det.box)
            if iou > best_iou:
                best_iou = iou
                best = det
        return best

    def get_stats(self) -> Dict:
        """Get tracker statistics for debugging."""
        return {
            "has_target": self._target is not None,
            "tracking_id": self._target.tracking_id if self._target else None,
            "frames_since_seen": self._target.frames_since_seen if self._target else None,
            "next_id": self.next_id,
            "targets_lost": self.targets_lost,
        }


class ClosestObstacleTracker:
    """Follow whichever detection is tallest in the current frame, with no persistence."""

    def __init__(self) -> None:
        self._target: Optional[TrackedTarget] = None
        self.next_id = 0
        self.frames_processed = 0

    @property
    def target(self) -> Optional[TrackedTarget]:
        return self._target

    def update(self, detections: Sequence[Detection], frame_index: Optional[int] = None) -> TrackerUpdate:
        self.frames_processed += 1
        if frame_index is None:
            frame_index = self.frames_processed

        if not detections:
            had_target = self._target is not None
            self._target = None
            return TrackerUpdate(target=None, event=LOST if had_target else IDLE)

        closest = max(detections, key=lambda det: det.height)
        if self._target is None:
            self._target = TrackedTarget(detection=closest, tracking_id=self.next_id, last_seen_frame=frame_index)
            self.next_id += 1
            return TrackerUpdate(target=self._target, event=ACQUIRED)

        self._target = self._target.matched(closest, frame_index)
        return TrackerUpdate(target=self._target, event=MATCHED)

    def reset(self) -> None:
        self._target = None


__all__ = [
    "ACQUIRED",
    "ClosestObstacleTracker",
    "IDLE",
    "LOST",
    "MATCHED",
    "ObjectTracker",
    "STALE",
    "TargetTracker",
    "TrackerUpdate",
    "calculate_iou",
]
