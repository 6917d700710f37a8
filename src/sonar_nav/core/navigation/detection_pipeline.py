"""
Obstacle detection pipeline: raw detector output in, stable events out.

Stages run in strict data-flow order on every frame:

    decode -> build detections -> hazard filter -> tracker -> stabilizer
                                       |                          |
                           navigation buffer              event log + proximity
                                       |                          |
                               navigation guidance      on_detection / fallback

Navigation guidance sees every hazard-filtered detection, including those the
stability and cooldown gates later suppress.

All state lives in the stage objects owned by the pipeline; ``process`` and
``reset`` serialize on one re-entrant lock so a reset from another thread
never interleaves with a half-processed frame.

Usage:
    pipeline = ObstacleDetectionPipeline(
        DetectionSettings.from_defaults(),
        on_detection=lambda h, c, bbox: speak(h),
        on_fallback_detection=lambda h, c: None,
    )
    result = pipeline.process(RawModelOutput(boxes=boxes, scores=scores, frame_index=7))
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sonar_nav.core.audio.sonar_cadence import SonarCadence, SonarCadenceTracker
from sonar_nav.core.navigation.navigation_guidance import NavigationResult, RecentDetectionBuffer
from sonar_nav.core.navigation.proximity_reporter import (
    DetectionCallback,
    FallbackCallback,
    ProximityReporter,
    ReportOutcome,
)
from sonar_nav.core.navigation.temporal_stabilizer import StabilizerResult, TemporalStabilizer
from sonar_nav.core.processing.pause_control import MANUAL, PauseController
from sonar_nav.core.telemetry.event_logger import EventLogger, LogEvent
from sonar_nav.core.vision.detected_object import Detection, TrackedTarget
from sonar_nav.core.vision.detection_parser import RawModelOutput, build_detections, decode_model_output
from sonar_nav.core.vision.hazard_filter import GeometricHazardFilter, HazardFilter
from sonar_nav.core.vision.object_tracker import IDLE, LOST, STALE, ObjectTracker, TargetTracker
from sonar_nav.utils.settings import DetectionSettings, SettingsStore

log = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Everything one frame produced."""
    frame_index: int
    skipped: bool = False
    detections: List[Detection] = field(default_factory=list)
    hazards: List[Detection] = field(default_factory=list)
    target: Optional[TrackedTarget] = None
    tracker_event: str = IDLE
    stabilizer: Optional[StabilizerResult] = None
    report: Optional[ReportOutcome] = None
    navigation: Optional[NavigationResult] = None
    cadence: Optional[SonarCadence] = None


class ObstacleDetectionPipeline:
    """
    Per-frame orchestration of the obstacle signal.

    Args:
        settings: Configuration for every stage (``DetectionSettings.from_defaults()``
            when omitted)
        on_detection: Primary event callback ``(height, confidence, bounding_box)``
        on_fallback_detection: Suppressed-event callback ``(height, confidence)``
        hazard_filter: Hazard policy (geometric filter by default)
        tracker: Tracking policy (IoU tracker by default)
        event_logger: Event log (built from ``settings.event_log`` by default)
        settings_store: Live settings source; updates apply on the next frame
        pause_controller: Shared pause state (a private one by default)
        clock: Wall-clock source in seconds
    """

    def __init__(
        self,
        settings: Optional[DetectionSettings] = None,
        on_detection: Optional[DetectionCallback] = None,
        on_fallback_detection: Optional[FallbackCallback] = None,
        hazard_filter: Optional[HazardFilter] = None,
        tracker: Optional[TargetTracker] = None,
        event_logger: Optional[EventLogger] = None,
        settings_store: Optional[SettingsStore] = None,
        pause_controller: Optional[PauseController] = None,
        clock: Callable[[], float] = time.time,
    ):
        if settings is None:
            settings = settings_store.settings if settings_store is not None else DetectionSettings.from_defaults()
        self.settings = settings
        self.clock = clock

        self.hazard_filter = hazard_filter if hazard_filter is not None else GeometricHazardFilter(settings.hazard)
        self.tracker = tracker if tracker is not None else ObjectTracker(settings.tracker)
        self.stabilizer = TemporalStabilizer(settings.stabilizer)
        self.proximity = ProximityReporter(
            settings.proximity,
            on_detection=on_detection,
            on_fallback_detection=on_fallback_detection,
            clock=clock,
        )
        self.navigation_buffer = RecentDetectionBuffer(settings.navigation)
        # EventLogger defines __len__, so an empty one is falsy
        self.event_logger = event_logger if event_logger is not None else EventLogger(settings.event_log)
        self.sonar = SonarCadenceTracker(settings.sonar)
        self.pause = pause_controller if pause_controller is not None else PauseController()

        self._lock = threading.RLock()
        self._pending_lock = threading.Lock()
        self._pending_settings: Optional[DetectionSettings] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        if settings_store is not None:
            self._unsubscribe = settings_store.subscribe(self.stage_settings)

        self.frames_processed = 0
        self.frames_skipped = 0

    # ------------------------------------------------------------------
    # control
    # ------------------------------------------------------------------

    def set_paused(self, paused: bool, reason: str = MANUAL) -> bool:
        return self.pause.set_paused(paused, reason)

    @property
    def paused(self) -> bool:
        return self.pause.paused

    def stage_settings(self, settings: DetectionSettings) -> None:
        """Queue new settings; they take effect at the start of the next frame."""
        with self._pending_lock:
            self._pending_settings = settings

    def reset(self) -> None:
        """Clear tracker, stabilizer, proximity memory and the navigation buffer together."""
        with self._lock:
            self.tracker.reset()
            self.stabilizer.reset()
            self.proximity.reset()
            self.navigation_buffer.clear()
            self.sonar.reset()
        log.info("Obstacle pipeline reset")

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.event_logger.shutdown(wait=False)

    # ------------------------------------------------------------------
    # processing
    # ------------------------------------------------------------------

    def process(self, raw: RawModelOutput) -> PipelineResult:
        """Run one frame through every stage."""
        with self._lock:
            if self.pause.paused:
                self.frames_skipped += 1
                return PipelineResult(frame_index=raw.frame_index, skipped=True)

            self._apply_pending_settings()
            self.frames_processed += 1

            detections = build_detections(decode_model_output(raw))
            hazards = self.hazard_filter.filter(detections)
            self.navigation_buffer.extend(hazards)

            update = self.tracker.update(hazards, raw.frame_index)
            if update.event == LOST:
                self.proximity.reset()
                self.stabilizer.reset()

            result = PipelineResult(
                frame_index=raw.frame_index,
                detections=detections,
                hazards=hazards,
                target=update.target,
                tracker_event=update.event,
            )

            target = update.target
            if target is None:
                result.cadence = self.sonar.update(False, None, None)
            elif update.event != STALE:
                # A stale target repeats its last-known state; only fresh readings count
                stab = self.stabilizer.update(target.height, target.confidence)
                if stab is not None:
                    now = self.clock()
                    self._record_event(raw.timestamp if raw.timestamp is not None else now, target, stab)
                    result.stabilizer = stab
                    result.report = self.proximity.report(
                        target.height,
                        target.confidence,
                        target.detection.bounding_box,
                        detected=stab.detected,
                        now=now,
                    )
                    result.cadence = self.sonar.update(stab.detected, stab.smoothed, stab.avg_confidence)

            result.navigation = self.navigation_buffer.analyze()
            return result

    def _record_event(self, timestamp: float, target: TrackedTarget, stab: StabilizerResult) -> None:
        if not self.event_logger.enabled:
            return
        self.event_logger.append(
            LogEvent(
                timestamp=timestamp,
                height=target.height,
                confidence=target.confidence,
                center_x=target.center_x,
                smoothed=stab.smoothed,
                slope=stab.slope,
                detected=stab.detected,
            )
        )

    def _apply_pending_settings(self) -> None:
        with self._pending_lock:
            pending = self._pending_settings
            self._pending_settings = None
        if pending is None:
            return

        self.settings = pending
        self.stabilizer.apply_config(pending.stabilizer)
        self.proximity.apply_config(pending.proximity)
        self.navigation_buffer.apply_config(pending.navigation)
        self.event_logger.apply_config(pending.event_log)
        self.sonar.config = pending.sonar
        # Custom policies may not carry a config
        if hasattr(self.hazard_filter, "config"):
            self.hazard_filter.config = pending.hazard
        if hasattr(self.tracker, "config"):
            self.tracker.config = pending.tracker
        log.info("Applied updated detection settings")

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            stats: Dict[str, Any] = {
                "frames_processed": self.frames_processed,
                "frames_skipped": self.frames_skipped,
                "obstacle_detected": self.stabilizer.obstacle_detected,
                "primary_events": self.proximity.primary_count,
                "fallback_events": self.proximity.fallback_count,
                "queued_log_events": len(self.event_logger),
            }
            if hasattr(self.tracker, "get_stats"):
                stats["tracker"] = self.tracker.get_stats()
            return stats


__all__ = ["ObstacleDetectionPipeline", "PipelineResult"]
