"""Hazard filtering policies: which detections count as walking obstacles."""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Protocol, Sequence

from sonar_nav.core.vision.detected_object import Detection
from sonar_nav.utils.config_sections import HazardFilterConfig

log = logging.getLogger(__name__)


class HazardFilter(Protocol):
    """Policy interface: keep only detections that represent real obstacles."""

    def filter(self, detections: Sequence[Detection]) -> List[Detection]:
        ...


class GeometricHazardFilter:
    """Trust the detector's confidence, suppress known geometric artifacts.

    Rejects low-confidence and noise-sized boxes, near-full-frame boxes (a
    stalled inference engine keeps emitting them), objects in the far
    periphery, boxes that never reach ground level and extremely wide
    slivers.
    """

    def __init__(self, config: Optional[HazardFilterConfig] = None) -> None:
        self.config = config or HazardFilterConfig()

    def is_hazard(self, box: Sequence[float], confidence: float) -> bool:
        cfg = self.config
        try:
            y0, x0, y1, x1 = (float(v) for v in box[:4])
            confidence = float(confidence)
        except (TypeError, ValueError):
            return False
        if not all(math.isfinite(v) for v in (y0, x0, y1, x1, confidence)):
            return False

        height = y1 - y0
        width = x1 - x0
        area = height * width
        center_x = (x0 + x1) / 2

        if confidence < cfg.min_confidence:
            return False
        if area < cfg.min_area or area > cfg.max_area:
            return False
        if center_x < cfg.center_x_min or center_x > cfg.center_x_max:
            return False
        if y1 <= cfg.min_bottom:
            return False
        if height <= 0 or width / height > cfg.max_aspect_ratio:
            return False
        return True

    def filter(self, detections: Sequence[Detection]) -> List[Detection]:
        return [det for det in detections if self.is_hazard(det.box, det.confidence)]


class CenterPathHazardFilter:
    """Keep only large, confident obstacles in the walking corridor.

    The confidence floor adapts to scene clutter: half the configured minimum
    in quiet scenes, rising to 70% with more than 3 and 80% with more than 5
    candidates above the base floor.
    """

    def __init__(self, config: Optional[HazardFilterConfig] = None) -> None:
        self.config = config or HazardFilterConfig()

    def adaptive_threshold(self, detections: Sequence[Detection]) -> float:
        base = self.config.min_confidence * 0.5
        busy = sum(1 for det in detections if det.confidence > base)
        if busy > 5:
            return self.config.min_confidence * 0.8
        if busy > 3:
            return self.config.min_confidence * 0.7
        return base

    def filter(self, detections: Sequence[Detection]) -> List[Detection]:
        cfg = self.config
        threshold = self.adaptive_threshold(detections)
        kept: List[Detection] = []
        for det in detections:
            if det.confidence <= threshold:
                continue
            if abs(det.center_x - 0.5) > cfg.center_tolerance:
                continue
            if det.height <= cfg.center_min_height or det.width <= cfg.center_min_width:
                continue
            kept.append(det)
        if len(kept) < len(detections):
            log.debug("Center-path filter kept %d/%d (threshold=%.2f)", len(kept), len(detections), threshold)
        return kept


__all__ = ["CenterPathHazardFilter", "GeometricHazardFilter", "HazardFilter"]
