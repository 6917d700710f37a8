"""
Normalization of raw detector tensors into ``(box, score)`` candidates.

Detector runtimes hand back their outputs in several layouts depending on
the model export and the binding: a flat ``[4K]`` box array, a nested
``[K, 4]`` array, or a batched ``[1, K, 4]`` array, with scores as ``[K]`` or
``[1, K]``. This module resolves those layouts into a uniform list of boxes
and an aligned score list.

Nothing in this module raises on malformed input: unparseable data yields an
empty :class:`NormalizedOutput`, which the pipeline treats as a frame with no
detections.

Usage:
    raw = RawModelOutput(boxes=flat_boxes, scores=scores, frame_index=42)
    normalized = decode_model_output(raw)
    detections = build_detections(normalized)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from sonar_nav.core.vision.detected_object import Detection

log = logging.getLogger(__name__)

# SSD MobileNet export used on device emits at most 25 candidates per frame
MAX_SSD_DETECTIONS = 25


@dataclass
class RawModelOutput:
    """Raw per-frame detector output, as produced by the inference runtime."""

    boxes: Any
    scores: Any
    class_ids: Any = None
    frame_index: int = 0
    num_detections: Optional[float] = None
    timestamp: Optional[float] = None

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "RawModelOutput":
        """Build from a JSON-style payload (camelCase or snake_case keys)."""
        if not isinstance(payload, dict):
            return cls(boxes=None, scores=None)

        def pick(*names: str) -> Any:
            for name in names:
                if name in payload:
                    return payload[name]
            return None

        frame_index = pick("frameIndex", "frame_index")
        try:
            frame_index = int(frame_index) if frame_index is not None else 0
        except (TypeError, ValueError, OverflowError):
            frame_index = 0
        timestamp = pick("timestamp", "ts")
        try:
            timestamp = float(timestamp) if timestamp is not None else None
        except (TypeError, ValueError, OverflowError):
            timestamp = None
        if timestamp is not None and not math.isfinite(timestamp):
            timestamp = None

        return cls(
            boxes=pick("boxes"),
            scores=pick("scores", "confidenceScores", "confidences"),
            class_ids=pick("classIds", "class_ids"),
            frame_index=frame_index,
            num_detections=pick("numDetections", "num_detections"),
            timestamp=timestamp,
        )


@dataclass
class NormalizedOutput:
    """Uniform decoder result: boxes as ``[y0, x0, y1, x1]`` plus aligned scores."""

    boxes: List[List[float]] = field(default_factory=list)
    scores: Optional[List[float]] = None
    class_ids: Optional[List[int]] = None

    @property
    def is_empty(self) -> bool:
        return not self.boxes


@dataclass
class ParsedDetection:
    """Single best candidate summary for simple consumers."""

    height: Optional[float] = None
    confidence: Optional[float] = None
    center_x: Optional[float] = None


# ----------------------------------------------------------------------
# shape helpers
# ----------------------------------------------------------------------

def _as_array(candidate: Any) -> Optional[np.ndarray]:
    if candidate is None or isinstance(candidate, (str, bytes, dict)):
        return None
    try:
        arr = np.asarray(candidate, dtype=float)
    except (TypeError, ValueError):
        # Ragged nesting or non-numeric content
        return None
    if arr.ndim == 0 or arr.size == 0:
        return None
    return arr


def extract_boxes(candidate: Any) -> Optional[np.ndarray]:
    """Return a ``(K, 4)`` array for flat, ``[K,4]`` or ``[1,K,4]`` input."""
    arr = _as_array(candidate)
    if arr is None:
        return None
    if arr.ndim == 1:
        if arr.size % 4 == 0:
            return arr.reshape(-1, 4)
        return None
    if arr.ndim == 2 and arr.shape[1] == 4:
        return arr
    if arr.ndim == 3 and arr.shape[2] == 4:
        return arr[0]
    return None


def extract_scores(candidate: Any) -> Optional[np.ndarray]:
    """Return a ``(K,)`` array for flat ``[K]`` or batched ``[1,K]`` input."""
    arr = _as_array(candidate)
    if arr is None:
        return None
    if arr.ndim == 1:
        return arr
    if arr.ndim == 2:
        return arr[0]
    return None


def _nested_boxes(candidate: Any) -> Optional[np.ndarray]:
    arr = _as_array(candidate)
    if arr is None or arr.ndim < 2:
        return None
    return extract_boxes(arr[0])


# ----------------------------------------------------------------------
# public API
# ----------------------------------------------------------------------

def normalize_outputs(outputs: Sequence[Any]) -> NormalizedOutput:
    """Resolve an ordered list of raw output tensors into boxes and scores.

    The first entry that parses as boxes wins; the first other entry that
    parses as scores is the score candidate. When no entry parses directly,
    a second pass looks one level into nested entries. A score candidate
    whose length disagrees with the box count is replaced by the first
    remaining entry of matching length, or dropped.
    """
    try:
        return _normalize_outputs(outputs)
    except Exception as err:
        log.debug("Unparseable detector output: %s", err)
        return NormalizedOutput()


def _normalize_outputs(outputs: Sequence[Any]) -> NormalizedOutput:
    if outputs is None or isinstance(outputs, (str, bytes, dict)):
        return NormalizedOutput()
    entries = list(outputs)
    if not entries:
        return NormalizedOutput()

    boxes: Optional[np.ndarray] = None
    scores: Optional[np.ndarray] = None
    box_source: Optional[int] = None

    for index, entry in enumerate(entries):
        if boxes is None:
            boxes = extract_boxes(entry)
            if boxes is not None:
                box_source = index
                continue
        if scores is None:
            scores = extract_scores(entry)

    if boxes is None:
        for index, entry in enumerate(entries):
            boxes = _nested_boxes(entry)
            if boxes is not None:
                box_source = index
                break

    if boxes is None or len(boxes) == 0:
        return NormalizedOutput()

    count = len(boxes)
    if scores is not None and len(scores) != count:
        alternate = None
        for index, entry in enumerate(entries):
            if index == box_source:
                continue
            candidate = extract_scores(entry)
            if candidate is not None and len(candidate) == count:
                alternate = candidate
                break
        if alternate is None:
            log.debug("Score count does not match %d boxes, dropping scores", count)
        scores = alternate

    return NormalizedOutput(
        boxes=boxes.tolist(),
        scores=scores.tolist() if scores is not None else None,
    )


def decode_model_output(raw: RawModelOutput, max_detections: int = MAX_SSD_DETECTIONS) -> NormalizedOutput:
    """Decode a :class:`RawModelOutput`.

    Applies the ``num_detections`` clamp (when provided) and converts
    logit-looking confidences (outside ``[0, 1]``) with a sigmoid.
    """
    try:
        normalized = normalize_outputs([raw.boxes, raw.scores])
        if normalized.is_empty:
            return normalized

        count = _valid_count(raw.num_detections, len(normalized.boxes), max_detections)
        boxes = normalized.boxes[:count]
        scores = normalized.scores[:count] if normalized.scores is not None else None
        if scores is not None:
            scores = [_to_probability(s) for s in scores]

        class_ids = _decode_class_ids(raw.class_ids, len(boxes))
        return NormalizedOutput(boxes=boxes, scores=scores, class_ids=class_ids)
    except Exception as err:
        log.debug("Failed to decode model output: %s", err)
        return NormalizedOutput()


def _valid_count(num_detections: Any, available: int, max_detections: int) -> int:
    if num_detections is None:
        return available
    arr = _as_array(num_detections)
    if arr is not None:
        value = float(arr.reshape(-1)[0])
    else:
        try:
            value = float(num_detections)
        except (TypeError, ValueError):
            return available
    if not math.isfinite(value):
        return available
    return min(available, max_detections, max(0, int(math.floor(value))))


def _to_probability(score: float) -> float:
    if not math.isfinite(score):
        return score
    if score < 0.0 or score > 1.0:
        return 1.0 / (1.0 + math.exp(-score)) if score > -700 else 0.0
    return score


def _decode_class_ids(class_ids: Any, count: int) -> Optional[List[int]]:
    arr = extract_scores(class_ids)
    if arr is None or len(arr) < count:
        return None
    out: List[int] = []
    for value in arr[:count]:
        out.append(int(value) if math.isfinite(value) else -1)
    return out


def select_best_index(scores: Optional[Sequence[float]], count: int) -> int:
    """Index of the maximum score among the first ``count``; ties go to the lowest index."""
    if not scores or count <= 0:
        return 0
    values = np.asarray(list(scores)[:count], dtype=float)
    if values.size == 0:
        return 0
    values[~np.isfinite(values)] = -np.inf
    return int(np.argmax(values))


def build_detections(normalized: NormalizedOutput) -> List[Detection]:
    """Turn a normalized output into detections, discarding non-finite candidates."""
    detections: List[Detection] = []
    for index, box in enumerate(normalized.boxes):
        confidence = 0.0
        if normalized.scores is not None and index < len(normalized.scores):
            confidence = normalized.scores[index]
        class_id = None
        if normalized.class_ids is not None and index < len(normalized.class_ids):
            class_id = normalized.class_ids[index]
        detection = Detection.from_box(box, confidence, class_id=class_id)
        if detection is not None:
            detections.append(detection)
    return detections


def parse_best_detection(outputs: Sequence[Any]) -> ParsedDetection:
    """Height, confidence and center of the highest-scoring candidate."""
    normalized = normalize_outputs(outputs)
    if normalized.is_empty:
        return ParsedDetection()

    index = select_best_index(normalized.scores, len(normalized.boxes))
    box = normalized.boxes[index]
    y0, x0, y1, x1 = box
    if not all(math.isfinite(v) for v in box):
        return ParsedDetection()

    confidence = None
    if normalized.scores is not None:
        confidence = normalized.scores[index]
    return ParsedDetection(
        height=max(0.0, min(1.0, y1 - y0)),
        confidence=confidence,
        center_x=max(0.0, min(1.0, (x0 + x1) / 2)),
    )


__all__ = [
    "MAX_SSD_DETECTIONS",
    "NormalizedOutput",
    "ParsedDetection",
    "RawModelOutput",
    "build_detections",
    "decode_model_output",
    "extract_boxes",
    "extract_scores",
    "normalize_outputs",
    "parse_best_detection",
    "select_best_index",
]
