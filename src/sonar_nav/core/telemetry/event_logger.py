"""
Bounded detection event log with batched HTTP export.

Every stabilizer update can be recorded as a :class:`LogEvent`. Events sit in
a bounded FIFO (oldest dropped at the cap) and are shipped in batches to an
HTTP sink. A flush takes up to ``batch_size`` of the oldest entries and makes
one delivery attempt; on success exactly those entries are removed, on
failure they stay queued for the next attempt.

Flushes triggered from the processing path run on a single background worker
so the detection signal never waits on the network; at most one flush is in
flight at any time.

Usage:
    event_log = EventLogger(EventLogConfig(sink_url="http://host:8080/log", enabled=True))
    event_log.append(LogEvent(timestamp=time.time(), height=0.42, confidence=0.8,
                              center_x=0.5, smoothed=0.4, slope=0.01, detected=True))
    event_log.flush()
"""

from __future__ import annotations

import json
import logging
import threading
import urllib.error
import urllib.request
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional, Protocol, Sequence

from sonar_nav.core.telemetry.loggers.navigation_logger import get_navigation_logger
from sonar_nav.utils.config_sections import EventLogConfig

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogEvent:
    """One stabilizer observation."""
    timestamp: float
    height: float
    confidence: float
    center_x: float
    smoothed: float
    slope: float
    detected: bool

    def to_payload(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "height": self.height,
            "confidence": self.confidence,
            "centerX": self.center_x,
            "smoothed": self.smoothed,
            "slope": self.slope,
            "detected": self.detected,
        }


class LogSink(Protocol):
    """Delivery target; returns True only when the batch was accepted."""

    def send(self, events: Sequence[LogEvent]) -> bool:
        ...


class HttpLogSink:
    """POST ``{"events": [...]}`` as JSON; any 2xx response counts as delivered."""

    def __init__(self, url: str, timeout: float = 2.0):
        self.url = url
        self.timeout = timeout

    def send(self, events: Sequence[LogEvent]) -> bool:
        body = json.dumps({"events": [event.to_payload() for event in events]}).encode("utf-8")
        request = urllib.request.Request(
            self.url,
            data=body,
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                status = getattr(response, "status", None) or response.getcode()
        except urllib.error.HTTPError as err:
            log.warning("Event log upload rejected by %s: HTTP %s", self.url, err.code)
            return False
        except (urllib.error.URLError, OSError) as err:
            log.warning("Event log upload to %s failed: %s", self.url, err)
            return False
        if 200 <= status < 300:
            return True
        log.warning("Event log upload to %s returned HTTP %s", self.url, status)
        return False


class EventLogger:
    """
    Thread-safe bounded FIFO of detection events.

    Args:
        config: Batch size, cap, immediate mode and sink URL
        sink: Explicit sink (overrides ``config.sink_url``)
        executor: Executor for background flushes (a single-worker pool is
            created lazily when omitted)
    """

    def __init__(
        self,
        config: Optional[EventLogConfig] = None,
        sink: Optional[LogSink] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.config = config or EventLogConfig()
        if sink is None and self.config.sink_url:
            sink = HttpLogSink(self.config.sink_url, timeout=self.config.timeout)
        self.sink = sink
        self.enabled = bool(self.config.enabled or sink is not None)

        self._lock = threading.Lock()
        self._entries: Deque[LogEvent] = deque()
        self._in_flight = False
        self._executor = executor
        self._owns_executor = executor is None

        self.delivered_count = 0
        self.failed_flushes = 0

    def apply_config(self, config: EventLogConfig) -> None:
        """Swap limits and endpoint; queued events are kept (trimmed to the new cap)."""
        if not isinstance(self.sink, HttpLogSink) and self.sink is not None:
            sink = self.sink
        elif config.sink_url:
            sink = HttpLogSink(config.sink_url, timeout=config.timeout)
        else:
            sink = None
        with self._lock:
            self.config = config
            self.sink = sink
            self.enabled = bool(config.enabled or sink is not None)
            while len(self._entries) > config.max_entries:
                self._entries.popleft()

    # ------------------------------------------------------------------
    # buffer
    # ------------------------------------------------------------------

    def append(self, event: LogEvent) -> bool:
        """Queue an event; returns False when logging is disabled."""
        if not self.enabled:
            return False
        with self._lock:
            self._entries.append(event)
            while len(self._entries) > self.config.max_entries:
                self._entries.popleft()
            pending = len(self._entries)

        if self.config.send_immediate or pending >= self.config.batch_size:
            self.flush_async()
        return True

    def recent(self, n: int = 10) -> List[LogEvent]:
        """Newest ``n`` events, oldest first."""
        if n <= 0:
            return []
        with self._lock:
            return list(self._entries)[-n:]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------
    # delivery
    # ------------------------------------------------------------------

    def flush(self, url: Optional[str] = None) -> bool:
        """
        Deliver one batch synchronously.

        Args:
            url: Send to this endpoint instead of the configured sink

        Returns:
            True when a batch was delivered and removed from the buffer
        """
        sink = self._resolve_sink(url)
        if sink is None:
            return False
        batch = self._claim_batch()
        if batch is None:
            return False
        return self._deliver(batch, sink)

    def flush_async(self, url: Optional[str] = None) -> Optional[Future]:
        """Schedule a flush on the background worker; None when nothing was scheduled."""
        sink = self._resolve_sink(url)
        if sink is None:
            return None
        batch = self._claim_batch()
        if batch is None:
            return None
        try:
            return self._get_executor().submit(self._deliver, batch, sink)
        except RuntimeError as err:
            # Executor already shut down
            log.warning("Event log flush not scheduled: %s", err)
            with self._lock:
                self._in_flight = False
            return None

    @property
    def flush_in_flight(self) -> bool:
        with self._lock:
            return self._in_flight

    def _resolve_sink(self, url: Optional[str]) -> Optional[LogSink]:
        if url:
            return HttpLogSink(url, timeout=self.config.timeout)
        return self.sink

    def _claim_batch(self) -> Optional[List[LogEvent]]:
        with self._lock:
            if self._in_flight or not self._entries:
                return None
            batch = list(self._entries)[: self.config.batch_size]
            self._in_flight = True
            return batch

    def _deliver(self, batch: List[LogEvent], sink: LogSink) -> bool:
        try:
            ok = bool(sink.send(batch))
        except Exception:
            log.exception("Event log sink raised")
            ok = False

        with self._lock:
            self._in_flight = False
            if ok:
                # Entries evicted by the cap while in flight are already gone
                delivered = {id(event) for event in batch}
                self._entries = deque(e for e in self._entries if id(e) not in delivered)
                self.delivered_count += len(batch)
            else:
                self.failed_flushes += 1
            remaining = len(self._entries)

        if ok:
            get_navigation_logger().events.debug(f"Delivered {len(batch)} events ({remaining} queued)")
        else:
            log.warning("Event log flush failed; %d events kept for retry", remaining)
        return ok

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="event-log")
        return self._executor

    def shutdown(self, wait: bool = True) -> None:
        """Stop the background worker (only when this logger created it)."""
        if self._executor is not None and self._owns_executor:
            self._executor.shutdown(wait=wait)
            self._executor = None


__all__ = ["EventLogger", "HttpLogSink", "LogEvent", "LogSink"]
