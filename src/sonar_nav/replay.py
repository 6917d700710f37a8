"""
Replay recorded detector output through the obstacle pipeline.

Input is JSON lines, one raw detector output per line:

    {"frameIndex": 12, "timestamp": 1712.4, "boxes": [...], "scores": [...]}

Each frame runs through the full pipeline; primary and fallback events are
printed as they fire, followed by a session summary. Recorded timestamps
drive the cooldown clock so a replay behaves like the live session; frames
without a timestamp are spaced at the nominal frame rate.

Usage:
    sonar-nav-replay session.jsonl
    sonar-nav-replay session.jsonl --threshold 0.4 --tracker closest --verbose
    cat session.jsonl | sonar-nav-replay -
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections import Counter
from typing import Iterable, Iterator, List, Optional, TextIO

from sonar_nav.core.navigation.detection_pipeline import ObstacleDetectionPipeline, PipelineResult
from sonar_nav.core.telemetry.event_logger import EventLogger
from sonar_nav.core.vision.detection_parser import RawModelOutput
from sonar_nav.core.vision.hazard_filter import CenterPathHazardFilter, GeometricHazardFilter
from sonar_nav.core.vision.object_tracker import ClosestObstacleTracker, ObjectTracker
from sonar_nav.utils.settings import DetectionSettings

log = logging.getLogger(__name__)

NOMINAL_FPS = 30.0


class ReplayClock:
    """Clock that reports the timestamp of the frame being replayed."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def read_frames(stream: TextIO) -> Iterator[RawModelOutput]:
    """Parse JSON lines; blank and malformed lines are skipped with a warning."""
    for line_no, line in enumerate(stream, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError as err:
            log.warning("Skipping line %d: %s", line_no, err)
            continue
        if not isinstance(payload, dict):
            log.warning("Skipping line %d: expected a JSON object", line_no)
            continue
        yield RawModelOutput.from_dict(payload)


def build_pipeline(args: argparse.Namespace, clock: ReplayClock, out: TextIO) -> ObstacleDetectionPipeline:
    settings = DetectionSettings.from_defaults()
    if args.threshold is not None:
        settings = settings.with_overrides("stabilizer", threshold=args.threshold)
    if args.frames is not None:
        settings = settings.with_overrides("stabilizer", frames=args.frames)
    if args.cooldown_ms is not None:
        settings = settings.with_overrides("proximity", cooldown_ms=args.cooldown_ms)

    def on_detection(height, confidence, bounding_box):
        print(f"[{clock.now:10.3f}] DETECTION  h={height:.2f} conf={confidence:.2f} bbox={bounding_box}", file=out)

    def on_fallback(height, confidence):
        if args.verbose:
            print(f"[{clock.now:10.3f}] fallback   h={height:.2f} conf={confidence:.2f}", file=out)

    hazard_filter = (
        CenterPathHazardFilter(settings.hazard) if args.hazard_filter == "center-path"
        else GeometricHazardFilter(settings.hazard)
    )
    tracker = ClosestObstacleTracker() if args.tracker == "closest" else ObjectTracker(settings.tracker)

    # Replays never upload unless asked to
    settings = settings.with_overrides("event_log", sink_url=args.log_url, enabled=bool(args.log_url))
    event_log_config = settings.event_log

    return ObstacleDetectionPipeline(
        settings,
        on_detection=on_detection,
        on_fallback_detection=on_fallback,
        hazard_filter=hazard_filter,
        tracker=tracker,
        event_logger=EventLogger(event_log_config),
        clock=clock,
    )


def replay(frames: Iterable[RawModelOutput], pipeline: ObstacleDetectionPipeline, clock: ReplayClock,
           out: TextIO, verbose: bool = False) -> List[PipelineResult]:
    results: List[PipelineResult] = []
    for position, raw in enumerate(frames):
        clock.now = raw.timestamp if raw.timestamp is not None else position / NOMINAL_FPS
        result = pipeline.process(raw)
        results.append(result)
        if verbose and result.navigation is not None:
            nav = result.navigation
            stab = result.stabilizer
            smoothed = f"{stab.smoothed:.3f}" if stab is not None else "-"
            print(
                f"[{clock.now:10.3f}] frame={raw.frame_index} hazards={len(result.hazards)} "
                f"tracker={result.tracker_event} smoothed={smoothed} nav={nav.direction}",
                file=out,
            )
    return results


def print_summary(results: List[PipelineResult], pipeline: ObstacleDetectionPipeline, out: TextIO) -> None:
    directions = Counter(r.navigation.direction for r in results if r.navigation is not None)
    detected_frames = sum(1 for r in results if r.stabilizer is not None and r.stabilizer.detected)
    stats = pipeline.get_stats()

    print(f"\n{'='*60}", file=out)
    print("REPLAY SUMMARY", file=out)
    print(f"{'='*60}", file=out)
    print(f"   Frames:            {len(results)}", file=out)
    print(f"   Obstacle frames:   {detected_frames}", file=out)
    print(f"   Primary events:    {stats['primary_events']}", file=out)
    print(f"   Fallback events:   {stats['fallback_events']}", file=out)
    tracker_stats = stats.get("tracker")
    if tracker_stats:
        print(f"   Targets acquired:  {tracker_stats['next_id']}", file=out)
        print(f"   Targets lost:      {tracker_stats['targets_lost']}", file=out)
    for direction, count in sorted(directions.items()):
        print(f"   Guidance {direction:<9} {count}", file=out)
    print(f"{'='*60}\n", file=out)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay recorded detector output through the obstacle pipeline")
    parser.add_argument('input', help="JSON-lines file with raw detector output ('-' for stdin)")
    parser.add_argument('--threshold', type=float, default=None, help='Stabilizer enter threshold')
    parser.add_argument('--frames', type=int, default=None, help='Stabilizer window size')
    parser.add_argument('--cooldown-ms', type=int, default=None, help='Minimum spacing of primary events')
    parser.add_argument('--hazard-filter', choices=('geometric', 'center-path'), default='geometric')
    parser.add_argument('--tracker', choices=('iou', 'closest'), default='iou')
    parser.add_argument('--log-url', default=None, help='Upload detection events to this endpoint')
    parser.add_argument('--verbose', '-v', action='store_true', help='Print every frame and fallback event')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')

    clock = ReplayClock()
    out = sys.stdout
    pipeline = build_pipeline(args, clock, out)
    try:
        if args.input == '-':
            results = replay(read_frames(sys.stdin), pipeline, clock, out, args.verbose)
        else:
            try:
                with open(args.input, encoding='utf-8') as stream:
                    results = replay(read_frames(stream), pipeline, clock, out, args.verbose)
            except OSError as err:
                print(f"Cannot read {args.input}: {err}", file=sys.stderr)
                return 1
        if args.log_url:
            pipeline.event_logger.flush()
        print_summary(results, pipeline, out)
    finally:
        pipeline.close()
    return 0


if __name__ == '__main__':
    sys.exit(main())
