"""Tests for the end-to-end obstacle pipeline."""

from __future__ import annotations

import pytest

from sonar_nav.core.navigation.detection_pipeline import ObstacleDetectionPipeline, PipelineResult
from sonar_nav.core.navigation.navigation_guidance import LEFT, STRAIGHT
from sonar_nav.core.processing.pause_control import PauseController
from sonar_nav.core.telemetry.event_logger import EventLogger
from sonar_nav.core.vision.detection_parser import RawModelOutput
from sonar_nav.core.vision.object_tracker import ACQUIRED, LOST, MATCHED, STALE, ClosestObstacleTracker
from sonar_nav.utils.config_sections import EventLogConfig
from sonar_nav.utils.settings import DetectionSettings, SettingsStore

OBSTACLE = [0.3, 0.4, 0.9, 0.6]  # h=0.6, centered
LEFT_POLE = [0.3, 0.1, 0.9, 0.2]
FULL_FRAME = [0.0, 0.0, 1.0, 1.0]


class Callbacks:
    def __init__(self):
        self.primary = []
        self.fallback = []

    def on_detection(self, height, confidence, bounding_box):
        self.primary.append((height, confidence, bounding_box))

    def on_fallback(self, height, confidence):
        self.fallback.append((height, confidence))


class FakeSink:
    def __init__(self):
        self.batches = []

    def send(self, events):
        self.batches.append(list(events))
        return True


@pytest.fixture()
def clock():
    return {"value": 100.0}


@pytest.fixture()
def callbacks() -> Callbacks:
    return Callbacks()


def make_pipeline(callbacks: Callbacks, clock, settings: DetectionSettings = None, **kwargs) -> ObstacleDetectionPipeline:
    return ObstacleDetectionPipeline(
        settings or DetectionSettings(),
        on_detection=callbacks.on_detection,
        on_fallback_detection=callbacks.on_fallback,
        clock=lambda: clock["value"],
        **kwargs,
    )


def frame(index: int, *boxes, scores=None) -> RawModelOutput:
    flat = [v for box in boxes for v in box]
    if scores is None:
        scores = [0.8] * len(boxes)
    return RawModelOutput(boxes=flat, scores=scores, frame_index=index)


def run(pipeline: ObstacleDetectionPipeline, clock, frames, step: float = 0.033):
    results = []
    for raw in frames:
        clock["value"] += step
        results.append(pipeline.process(raw))
    return results


def test_stable_obstacle_emits_single_primary_event(callbacks: Callbacks, clock) -> None:
    pipeline = make_pipeline(callbacks, clock)

    results = run(pipeline, clock, [frame(i, OBSTACLE) for i in range(10)])

    assert results[0].tracker_event == ACQUIRED
    assert all(r.tracker_event == MATCHED for r in results[1:])
    assert all(r.stabilizer.detected for r in results)
    assert len(callbacks.primary) == 1
    height, confidence, bbox = callbacks.primary[0]
    assert height == pytest.approx(0.6)
    assert confidence == pytest.approx(0.8)
    assert bbox == {"x": 0.4, "y": 0.3, "w": pytest.approx(0.2), "h": pytest.approx(0.6)}
    assert results[2].report.channel == "primary"


def test_full_frame_artifacts_never_trigger(callbacks: Callbacks, clock) -> None:
    pipeline = make_pipeline(callbacks, clock)

    results = run(pipeline, clock, [frame(i, FULL_FRAME, scores=[0.99]) for i in range(20)])

    assert all(r.target is None for r in results)
    assert callbacks.primary == []
    assert callbacks.fallback == []


def test_missing_scores_are_rejected(callbacks: Callbacks, clock) -> None:
    pipeline = make_pipeline(callbacks, clock)

    result = pipeline.process(RawModelOutput(boxes=OBSTACLE, scores=None, frame_index=1))

    assert len(result.detections) == 1
    assert result.hazards == []


@pytest.mark.parametrize(
    "raw",
    [
        RawModelOutput(boxes="garbage", scores=None),
        RawModelOutput(boxes=[0.1, 0.2, 0.3], scores=[0.9]),
        RawModelOutput(boxes=[[0.1, 0.2], [0.3]], scores=[0.9, 0.9]),
        RawModelOutput(boxes=[float("nan")] * 4, scores=[0.9]),
    ],
)
def test_malformed_frames_are_treated_as_empty(callbacks: Callbacks, clock, raw: RawModelOutput) -> None:
    pipeline = make_pipeline(callbacks, clock)

    result = pipeline.process(raw)

    assert isinstance(result, PipelineResult)
    assert result.hazards == []
    assert result.navigation.direction == STRAIGHT


def test_paused_pipeline_does_not_mutate_state(callbacks: Callbacks, clock) -> None:
    pipeline = make_pipeline(callbacks, clock)
    pipeline.set_paused(True, "app_state")

    results = run(pipeline, clock, [frame(i, OBSTACLE) for i in range(5)])

    assert all(r.skipped for r in results)
    assert pipeline.tracker.target is None
    assert len(pipeline.stabilizer.heights) == 0
    assert len(pipeline.navigation_buffer) == 0
    assert pipeline.frames_processed == 0
    assert callbacks.primary == []

    pipeline.set_paused(False, "app_state")
    assert not pipeline.process(frame(6, OBSTACLE)).skipped


def test_reset_clears_every_stage(callbacks: Callbacks, clock) -> None:
    pipeline = make_pipeline(callbacks, clock)
    run(pipeline, clock, [frame(i, OBSTACLE) for i in range(5)])

    pipeline.reset()

    assert pipeline.tracker.target is None
    assert len(pipeline.stabilizer.heights) == 0
    assert pipeline.stabilizer.obstacle_detected is False
    assert pipeline.proximity.last_reported_distance is None
    assert pipeline.proximity.consecutive_stable_frames == 0
    assert len(pipeline.navigation_buffer) == 0


def test_tracking_loss_resets_proximity_and_stabilizer(callbacks: Callbacks, clock) -> None:
    settings = DetectionSettings().with_overrides("tracker", target_loss_frames=2)
    pipeline = make_pipeline(callbacks, clock, settings)
    run(pipeline, clock, [frame(i, OBSTACLE) for i in range(4)])
    assert pipeline.proximity.last_reported_distance is not None

    results = run(pipeline, clock, [frame(10 + i) for i in range(3)])

    assert [r.tracker_event for r in results] == ["stale", "stale", LOST]
    assert pipeline.stabilizer.obstacle_detected is False
    assert len(pipeline.stabilizer.heights) == 0
    assert pipeline.proximity.last_reported_distance is None


def test_single_frame_blip_never_reports(callbacks: Callbacks, clock) -> None:
    pipeline = make_pipeline(callbacks, clock)

    results = run(pipeline, clock, [frame(0, OBSTACLE, scores=[0.9])] + [frame(i) for i in range(1, 6)], step=0.1)

    assert results[0].tracker_event == ACQUIRED
    assert [r.tracker_event for r in results[1:]] == [STALE] * 5
    assert all(r.target is not None for r in results[1:])
    assert all(r.report is None and r.stabilizer is None for r in results[1:])
    assert len(pipeline.stabilizer.heights) == 1
    assert pipeline.proximity.consecutive_stable_frames == 1
    assert callbacks.primary == []
    assert callbacks.fallback == []


def test_stale_gap_does_not_advance_stability(callbacks: Callbacks, clock) -> None:
    pipeline = make_pipeline(callbacks, clock)

    results = run(pipeline, clock, [frame(0, OBSTACLE), frame(1), frame(2), frame(3, OBSTACLE)])

    assert [r.tracker_event for r in results] == [ACQUIRED, STALE, STALE, MATCHED]
    assert results[3].report.reason == "unstable"
    assert callbacks.primary == []


def test_injected_collaborators_are_kept(callbacks: Callbacks, clock) -> None:
    event_logger = EventLogger(EventLogConfig(), sink=FakeSink())
    tracker = ClosestObstacleTracker()
    pause = PauseController()

    pipeline = make_pipeline(callbacks, clock, event_logger=event_logger, tracker=tracker, pause_controller=pause)

    assert len(event_logger) == 0
    assert pipeline.event_logger is event_logger
    assert pipeline.event_logger.enabled is True
    assert pipeline.tracker is tracker
    assert pipeline.pause is pause


def test_navigation_sees_detections_suppressed_by_gates(callbacks: Callbacks, clock) -> None:
    pipeline = make_pipeline(callbacks, clock)

    results = run(pipeline, clock, [frame(0, OBSTACLE, LEFT_POLE)])

    # Single frame: stability gate suppresses any event, guidance still steers
    assert callbacks.primary == []
    assert results[0].navigation.center_count == 1
    assert results[0].navigation.left_count == 1
    assert results[0].navigation.direction == "right"


def test_guidance_steers_left_when_right_is_free(callbacks: Callbacks, clock) -> None:
    pipeline = make_pipeline(callbacks, clock)
    right_pole = [0.3, 0.8, 0.9, 0.88]

    result = pipeline.process(frame(0, OBSTACLE, right_pole))

    assert result.navigation.direction == LEFT


def test_settings_update_applies_on_next_frame(callbacks: Callbacks, clock) -> None:
    store = SettingsStore(DetectionSettings())
    pipeline = make_pipeline(callbacks, clock, store.settings, settings_store=store)

    store.update("stabilizer", threshold=0.9)
    assert pipeline.stabilizer.config.threshold == pytest.approx(0.35)

    pipeline.process(frame(0, OBSTACLE))

    assert pipeline.stabilizer.config.threshold == pytest.approx(0.9)
    assert pipeline.settings.stabilizer.threshold == pytest.approx(0.9)
    pipeline.close()


def test_settings_not_applied_while_paused(callbacks: Callbacks, clock) -> None:
    store = SettingsStore(DetectionSettings())
    pipeline = make_pipeline(callbacks, clock, store.settings, settings_store=store)
    pipeline.set_paused(True)

    store.update("proximity", cooldown_ms=500)
    pipeline.process(frame(0, OBSTACLE))

    assert pipeline.proximity.config.cooldown_ms == 150
    pipeline.close()


def test_stabilizer_updates_reach_event_log(callbacks: Callbacks, clock) -> None:
    sink = FakeSink()
    event_logger = EventLogger(EventLogConfig(batch_size=100), sink=sink)
    pipeline = make_pipeline(callbacks, clock, event_logger=event_logger)
    assert pipeline.event_logger is event_logger

    run(pipeline, clock, [frame(i, OBSTACLE) for i in range(3)])

    events = event_logger.recent()
    assert len(events) == 3
    assert all(e.detected for e in events)
    assert events[0].center_x == pytest.approx(0.5)
    assert event_logger.flush() is True
    assert len(sink.batches[0]) == 3


def test_callback_failure_does_not_break_processing(clock) -> None:
    def broken(height, confidence, bounding_box):
        raise RuntimeError("tts crashed")

    pipeline = ObstacleDetectionPipeline(DetectionSettings(), on_detection=broken, clock=lambda: clock["value"])

    results = run(pipeline, clock, [frame(i, OBSTACLE) for i in range(5)])

    assert results[2].report.channel == "primary"
    assert pipeline.frames_processed == 5


def test_cadence_follows_detection(callbacks: Callbacks, clock) -> None:
    pipeline = make_pipeline(callbacks, clock)

    results = run(pipeline, clock, [frame(0, OBSTACLE), frame(1, OBSTACLE)])

    assert results[0].cadence is not None
    assert results[1].cadence is None
    assert pipeline.sonar.running


def test_stats(callbacks: Callbacks, clock) -> None:
    pipeline = make_pipeline(callbacks, clock)
    pipeline.set_paused(True)
    pipeline.process(frame(0, OBSTACLE))
    pipeline.set_paused(False)
    run(pipeline, clock, [frame(i, OBSTACLE) for i in range(3)])

    stats = pipeline.get_stats()

    assert stats["frames_processed"] == 3
    assert stats["frames_skipped"] == 1
    assert stats["primary_events"] == 1
    assert stats["tracker"]["has_target"] is True
