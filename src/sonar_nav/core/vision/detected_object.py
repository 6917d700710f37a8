"""
Detection data structures for normalized detector output.

This module defines the Detection dataclass, which stores one candidate box
with its confidence and derived geometry, and TrackedTarget, the single
obstacle followed across frames by the tracker.

All coordinates are normalized to the frame (0-1) in the detector's native
``(ymin, xmin, ymax, xmax)`` order.

Usage:
    det = Detection.from_box((0.4, 0.3, 0.9, 0.6), confidence=0.82)
    det.height      # 0.5
    det.center_x    # 0.45
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Dict, Optional, Sequence, Tuple

Box = Tuple[float, float, float, float]


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class Detection:
    """
    A normalized candidate detection.

    Attributes:
        box: Bounding box (ymin, xmin, ymax, xmax), normalized
        confidence: Detection confidence score (0-1)
        height: ymax - ymin, clamped to 0-1 (proxy for proximity)
        width: xmax - xmin, clamped to 0-1
        area: height * width
        center_x: Horizontal center, clamped to 0-1
        center_y: Vertical center, clamped to 0-1
        class_id: Detector class id, carried but unused by the core
    """
    box: Box
    confidence: float
    height: float
    width: float
    area: float
    center_x: float
    center_y: float
    class_id: Optional[int] = None

    @classmethod
    def from_box(
        cls,
        box: Sequence[float],
        confidence: float,
        class_id: Optional[int] = None,
    ) -> Optional["Detection"]:
        """Build a detection, or return None when any value is not finite."""
        if box is None or len(box) < 4:
            return None
        try:
            y0, x0, y1, x1 = (float(v) for v in box[:4])
            conf = float(confidence)
        except (TypeError, ValueError):
            return None
        if not all(math.isfinite(v) for v in (y0, x0, y1, x1, conf)):
            return None

        height = _clamp01(y1 - y0)
        width = _clamp01(x1 - x0)
        return cls(
            box=(y0, x0, y1, x1),
            confidence=_clamp01(conf),
            height=height,
            width=width,
            area=_clamp01(height * width),
            center_x=_clamp01((x0 + x1) / 2),
            center_y=_clamp01((y0 + y1) / 2),
            class_id=class_id,
        )

    @property
    def aspect_ratio(self) -> float:
        if self.height <= 0:
            return math.inf
        return self.width / self.height

    @property
    def bounding_box(self) -> Dict[str, float]:
        """Box in ``{x, y, w, h}`` form for output consumers."""
        y0, x0, _, _ = self.box
        return {"x": x0, "y": y0, "w": self.width, "h": self.height}


@dataclass(frozen=True)
class TrackedTarget:
    """The single obstacle followed across frames."""
    detection: Detection
    tracking_id: int
    last_seen_frame: int
    frames_since_seen: int = 0

    @property
    def box(self) -> Box:
        return self.detection.box

    @property
    def height(self) -> float:
        return self.detection.height

    @property
    def confidence(self) -> float:
        return self.detection.confidence

    @property
    def center_x(self) -> float:
        return self.detection.center_x

    @property
    def is_stale(self) -> bool:
        return self.frames_since_seen > 0

    def matched(self, detection: Detection, frame_index: int) -> "TrackedTarget":
        return replace(self, detection=detection, last_seen_frame=frame_index, frames_since_seen=0)

    def aged(self) -> "TrackedTarget":
        return replace(self, frames_since_seen=self.frames_since_seen + 1)
