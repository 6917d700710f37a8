"""
Latest-frame handoff between the detector and the obstacle pipeline.

The detector can produce results faster than the pipeline consumes them
(or stall and then burst). Only the newest result matters for navigation, so
the handoff is a single slot: a new result replaces an unconsumed one and
the replaced result is counted as superseded. Each result is tagged with the
reset generation it was submitted under, so a result taken before a reset is
dropped instead of leaking into post-reset state.

Usage:
    worker = PipelineWorker(pipeline, on_result=handle)
    worker.start()
    worker.submit(raw_output)   # from the detector thread
    ...
    worker.stop()
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, Optional, Tuple, TypeVar

from sonar_nav.core.navigation.detection_pipeline import ObstacleDetectionPipeline, PipelineResult
from sonar_nav.core.vision.detection_parser import RawModelOutput

log = logging.getLogger(__name__)

T = TypeVar("T")


class LatestSlot(Generic[T]):
    """Single-item mailbox where a newer item overwrites an older one."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._item: Optional[T] = None
        self._has_item = False
        self._closed = False
        self.superseded = 0

    def put(self, item: T) -> None:
        with self._cond:
            if self._has_item:
                self.superseded += 1
            self._item = item
            self._has_item = True
            self._cond.notify()

    def take(self, timeout: Optional[float] = None) -> Optional[T]:
        """Pop the item, waiting up to ``timeout`` seconds; None when nothing arrived."""
        with self._cond:
            if not self._has_item and not self._closed:
                self._cond.wait_for(lambda: self._has_item or self._closed, timeout=timeout)
            if not self._has_item:
                return None
            item = self._item
            self._item = None
            self._has_item = False
            return item

    def clear(self) -> bool:
        with self._cond:
            had_item = self._has_item
            self._item = None
            self._has_item = False
            return had_item

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def __len__(self) -> int:
        with self._cond:
            return 1 if self._has_item else 0


class PipelineWorker:
    """Runs the obstacle pipeline on a dedicated daemon thread."""

    def __init__(
        self,
        pipeline: ObstacleDetectionPipeline,
        on_result: Optional[Callable[[PipelineResult], None]] = None,
        poll_interval: float = 0.1,
    ):
        self.pipeline = pipeline
        self.on_result = on_result
        self.poll_interval = poll_interval
        self.slot: LatestSlot[Tuple[int, RawModelOutput]] = LatestSlot()

        self._stop = threading.Event()
        self._reset_lock = threading.Lock()
        self._generation = 0
        self._thread: Optional[threading.Thread] = None
        self.frames_processed = 0
        self.errors = 0
        self.dropped = 0

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        if self.slot.closed:
            self.slot = LatestSlot()
        self._thread = threading.Thread(target=self._run, daemon=True, name="ObstaclePipelineWorker")
        self._thread.start()
        log.info("Pipeline worker started")

    def submit(self, raw: RawModelOutput) -> None:
        """Hand over the newest detector output (never blocks)."""
        self.slot.put((self._generation, raw))

    @property
    def superseded(self) -> int:
        return self.slot.superseded

    def run_once(self, timeout: Optional[float] = 0.0) -> Optional[PipelineResult]:
        """Process the pending output, if any."""
        item = self.slot.take(timeout=timeout)
        if item is None:
            return None
        generation, raw = item
        with self._reset_lock:
            if generation != self._generation:
                self.dropped += 1
                log.debug("Dropped frame %s submitted before reset", raw.frame_index)
                return None
            try:
                result = self.pipeline.process(raw)
            except Exception:
                self.errors += 1
                log.exception("Pipeline failed on frame %s", raw.frame_index)
                return None
        self.frames_processed += 1
        if self.on_result is not None:
            try:
                self.on_result(result)
            except Exception:
                log.exception("Result callback failed")
        return result

    def _run(self) -> None:
        while not self._stop.is_set():
            self.run_once(timeout=self.poll_interval)

    def reset(self) -> None:
        """Drop pending and in-hand output, then clear pipeline state."""
        with self._reset_lock:
            self._generation += 1
            self.slot.clear()
            self.pipeline.reset()

    def stop(self, timeout: float = 1.0) -> None:
        self._stop.set()
        self.slot.close()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None
        log.info(f"Pipeline worker stopped ({self.frames_processed} frames, {self.superseded} superseded)")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


__all__ = ["LatestSlot", "PipelineWorker"]
