"""Tests for sonar cadence mapping."""

from __future__ import annotations

import pytest

from sonar_nav.core.audio.sonar_cadence import (
    HEAVY,
    LIGHT,
    MEDIUM,
    SonarCadenceTracker,
    cadence_intensity,
    cadence_interval_ms,
)
from sonar_nav.utils.config_sections import SonarConfig


@pytest.mark.parametrize(
    "height, expected",
    [
        (0.0, 1000),
        (0.25, 1000),
        (0.625, 600),
        (1.0, 200),
        (1.5, 200),
    ],
)
def test_interval_mapping(height: float, expected: int) -> None:
    assert cadence_interval_ms(height) == expected


def test_interval_stays_in_bounds() -> None:
    config = SonarConfig()
    for step in range(0, 101):
        interval = cadence_interval_ms(step / 100, config)
        assert config.min_interval_ms <= interval <= config.max_interval_ms


@pytest.mark.parametrize(
    "confidence, expected",
    [(0.9, HEAVY), (0.61, HEAVY), (0.6, MEDIUM), (0.5, MEDIUM), (0.4, LIGHT), (0.1, LIGHT)],
)
def test_intensity_levels(confidence: float, expected: str) -> None:
    assert cadence_intensity(confidence) == expected


def test_tracker_reissues_only_on_meaningful_change() -> None:
    tracker = SonarCadenceTracker()

    first = tracker.update(True, 0.625, 0.7)
    small = tracker.update(True, 0.65, 0.7)  # 600 -> ~573ms
    large = tracker.update(True, 0.8, 0.7)  # 600 -> ~413ms

    assert first.interval_ms == 600
    assert first.intensity == HEAVY
    assert small is None
    assert large is not None
    assert tracker.active == large


def test_tracker_stops_without_obstacle() -> None:
    tracker = SonarCadenceTracker()
    tracker.update(True, 0.5, 0.5)

    assert tracker.update(False, None, None) is None
    assert not tracker.running

    restarted = tracker.update(True, 0.5, 0.5)
    assert restarted is not None
