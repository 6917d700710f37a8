"""Tests for the bounded event log and its batched export."""

from __future__ import annotations

import json
import logging
import threading
import urllib.error
from concurrent.futures import ThreadPoolExecutor

import pytest

from sonar_nav.core.telemetry import event_logger as event_logger_module
from sonar_nav.core.telemetry.event_logger import EventLogger, HttpLogSink, LogEvent
from sonar_nav.utils.config_sections import EventLogConfig


class FakeSink:
    def __init__(self, ok: bool = True):
        self.ok = ok
        self.batches = []

    def send(self, events):
        self.batches.append(list(events))
        return self.ok


class BlockingSink:
    """Holds the delivery until released, to observe the in-flight guard."""

    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def send(self, events):
        self.calls += 1
        self.started.set()
        self.release.wait(timeout=5)
        return True


def make_event(i: int) -> LogEvent:
    return LogEvent(
        timestamp=float(i),
        height=0.4,
        confidence=0.8,
        center_x=0.5,
        smoothed=0.38,
        slope=0.01,
        detected=True,
    )


@pytest.fixture()
def sink() -> FakeSink:
    return FakeSink()


def test_payload_uses_camel_case_center() -> None:
    payload = make_event(1).to_payload()

    assert set(payload) == {"timestamp", "height", "confidence", "centerX", "smoothed", "slope", "detected"}
    assert payload["centerX"] == 0.5


def test_disabled_logger_ignores_events() -> None:
    logger = EventLogger(EventLogConfig())

    assert logger.append(make_event(1)) is False
    assert len(logger) == 0


def test_buffer_drops_oldest_at_cap(sink: FakeSink) -> None:
    logger = EventLogger(EventLogConfig(max_entries=3, batch_size=100), sink=sink)

    for i in range(5):
        logger.append(make_event(i))

    assert [e.timestamp for e in logger.recent(10)] == [2.0, 3.0, 4.0]


def test_flush_removes_only_delivered_entries(sink: FakeSink) -> None:
    logger = EventLogger(EventLogConfig(batch_size=100, max_entries=100), sink=sink)
    for i in range(5):
        logger.append(make_event(i))
    logger.config.batch_size = 2

    assert logger.flush() is True

    assert [e.timestamp for e in sink.batches[0]] == [0.0, 1.0]
    assert [e.timestamp for e in logger.recent(10)] == [2.0, 3.0, 4.0]


def test_failed_flush_keeps_entries(caplog: pytest.LogCaptureFixture) -> None:
    failing = FakeSink(ok=False)
    logger = EventLogger(EventLogConfig(batch_size=10), sink=failing)
    logger.append(make_event(1))

    with caplog.at_level(logging.WARNING):
        assert logger.flush() is False

    assert len(logger) == 1
    assert logger.failed_flushes == 1
    assert "kept for retry" in caplog.text


def test_sink_exception_counts_as_failure() -> None:
    class ExplodingSink:
        def send(self, events):
            raise ConnectionError("boom")

    logger = EventLogger(EventLogConfig(batch_size=10), sink=ExplodingSink())
    logger.append(make_event(1))

    assert logger.flush() is False
    assert len(logger) == 1


def test_batch_size_triggers_background_flush(sink: FakeSink) -> None:
    executor = ThreadPoolExecutor(max_workers=1)
    logger = EventLogger(EventLogConfig(batch_size=3), sink=sink, executor=executor)

    for i in range(3):
        logger.append(make_event(i))
    executor.shutdown(wait=True)

    assert len(sink.batches) == 1
    assert len(sink.batches[0]) == 3
    assert len(logger) == 0


def test_immediate_mode_flushes_every_append(sink: FakeSink) -> None:
    executor = ThreadPoolExecutor(max_workers=1)
    logger = EventLogger(EventLogConfig(batch_size=20, send_immediate=True), sink=sink, executor=executor)

    logger.append(make_event(1))
    executor.shutdown(wait=True)

    assert len(sink.batches) == 1
    assert len(logger) == 0
    assert logger.flush_async() is None


def test_only_one_flush_in_flight() -> None:
    blocking = BlockingSink()
    logger = EventLogger(EventLogConfig(batch_size=100), sink=blocking)
    logger.append(make_event(1))

    first = logger.flush_async()
    assert blocking.started.wait(timeout=5)
    logger.append(make_event(2))

    assert logger.flush_in_flight
    assert logger.flush_async() is None
    assert logger.flush() is False

    blocking.release.set()
    assert first.result(timeout=5) is True
    logger.shutdown()

    assert blocking.calls == 1
    assert [e.timestamp for e in logger.recent()] == [2.0]


def test_entries_appended_during_flush_survive(sink: FakeSink) -> None:
    logger = EventLogger(EventLogConfig(batch_size=100), sink=sink)
    logger.append(make_event(1))
    batch = logger._claim_batch()
    logger.append(make_event(2))

    assert logger._deliver(batch, sink) is True
    assert [e.timestamp for e in logger.recent()] == [2.0]


def test_recent_clear_and_len(sink: FakeSink) -> None:
    logger = EventLogger(EventLogConfig(batch_size=100), sink=sink)
    for i in range(4):
        logger.append(make_event(i))

    assert [e.timestamp for e in logger.recent(2)] == [2.0, 3.0]
    assert logger.recent(0) == []
    assert len(logger) == 4

    logger.clear()

    assert len(logger) == 0


def test_flush_to_alternate_url(monkeypatch: pytest.MonkeyPatch, sink: FakeSink) -> None:
    sent = []

    def fake_send(self, events):
        sent.append((self.url, len(events)))
        return True

    monkeypatch.setattr(HttpLogSink, "send", fake_send)
    logger = EventLogger(EventLogConfig(batch_size=100), sink=sink)
    logger.append(make_event(1))

    assert logger.flush(url="http://backup:9000/log") is True
    assert sent == [("http://backup:9000/log", 1)]
    assert sink.batches == []


def test_config_url_builds_http_sink() -> None:
    logger = EventLogger(EventLogConfig(sink_url="http://host/log", enabled=True, timeout=1.5))

    assert isinstance(logger.sink, HttpLogSink)
    assert logger.sink.timeout == 1.5
    assert logger.enabled


class FakeResponse:
    def __init__(self, status: int):
        self.status = status

    def getcode(self):
        return self.status

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def test_http_sink_posts_json(monkeypatch: pytest.MonkeyPatch) -> None:
    captured = {}

    def fake_urlopen(request, timeout):
        captured["url"] = request.full_url
        captured["method"] = request.get_method()
        captured["content_type"] = request.get_header("Content-type")
        captured["body"] = json.loads(request.data.decode("utf-8"))
        captured["timeout"] = timeout
        return FakeResponse(204)

    monkeypatch.setattr(event_logger_module.urllib.request, "urlopen", fake_urlopen)

    assert HttpLogSink("http://host/log", timeout=3.0).send([make_event(1)]) is True
    assert captured["method"] == "POST"
    assert captured["content_type"] == "application/json"
    assert captured["timeout"] == 3.0
    assert captured["body"]["events"][0]["centerX"] == 0.5


def test_http_sink_non_2xx_is_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(event_logger_module.urllib.request, "urlopen", lambda request, timeout: FakeResponse(302))

    assert HttpLogSink("http://host/log").send([make_event(1)]) is False


def test_http_sink_transport_error_is_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def refuse(request, timeout):
        raise urllib.error.URLError("connection refused")

    monkeypatch.setattr(event_logger_module.urllib.request, "urlopen", refuse)

    assert HttpLogSink("http://host/log").send([make_event(1)]) is False
