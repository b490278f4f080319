from datetime import datetime, timedelta

import pytest

from conftest import SATURDAY_2PM, WEDNESDAY_2PM
from models import EventAnalysis, SafetyState
from scoring import classify, pre_jitter_score, safest_window, score

NO_JITTER = lambda: 0.0  # noqa: E731


def test_base_case_weekday_inside_safest_band():
    # 18 base + 3 (inside band) + 1 (weekday) + 10 (no stations) + 0 crime
    assert pre_jitter_score(0, 0, 6, 18, WEDNESDAY_2PM) == pytest.approx(32.0)


def test_outside_safest_band_adds_five():
    late = WEDNESDAY_2PM.replace(hour=22)
    assert pre_jitter_score(0, 5, 6, 18, late) == pytest.approx(18 + 5 + 1)


def test_approach_band_only_reached_inside_strict_band():
    # hour 5 is inside [start-2, end] but outside [start, end]: first branch wins
    early = WEDNESDAY_2PM.replace(hour=5)
    assert pre_jitter_score(0, 5, 6, 18, early) == pytest.approx(18 + 5 + 1)
    at_start = WEDNESDAY_2PM.replace(hour=6)
    assert pre_jitter_score(0, 5, 6, 18, at_start) == pytest.approx(18 + 3 + 1)


def test_weekend_adds_three():
    assert pre_jitter_score(0, 5, 6, 18, SATURDAY_2PM) == pytest.approx(18 + 3 + 3)


@pytest.mark.parametrize("stations,expected", [
    (0, 10.0), (1, 8.8), (2, 6.6), (3, 4.4), (4, 2.2), (5, 0.0), (12, 0.0),
])
def test_police_presence_adjustment(stations, expected):
    assert pre_jitter_score(0, stations, 6, 18, WEDNESDAY_2PM) == pytest.approx(22.0 + expected)


def test_crime_term_scaling():
    # 150 incidents normalizes to 1.0 → exactly +20
    assert pre_jitter_score(150, 5, 6, 18, WEDNESDAY_2PM) == pytest.approx(42.0)
    assert pre_jitter_score(75, 5, 6, 18, WEDNESDAY_2PM) == pytest.approx(22.0 + 0.5 ** 1.55 * 20)


def test_crime_heavy_scores_clamp_to_ceiling():
    assert pre_jitter_score(450, 0, 6, 18, SATURDAY_2PM) == 88.0
    assert pre_jitter_score(5000, 0, 6, 18, SATURDAY_2PM) == 88.0


def test_pre_jitter_bounds_hold_everywhere():
    start = datetime(2026, 10, 12)
    for hour_offset in range(0, 24 * 7, 5):
        now = start + timedelta(hours=hour_offset)
        for incidents in (0, 1, 75, 150, 449, 10_000):
            for stations in (0, 1, 3, 5, 40):
                for window in ((6, 18), (0, 23), (22, 3), (12, 12)):
                    value = pre_jitter_score(incidents, stations, window[0], window[1], now)
                    assert 15.0 <= value <= 88.0
                    final = score(incidents, stations, window[0], window[1], now)
                    assert 0.0 <= final <= 100.0


def test_monotonic_in_incident_count():
    previous = None
    for incidents in range(0, 600, 7):
        value = pre_jitter_score(incidents, 2, 6, 18, SATURDAY_2PM.replace(hour=23))
        if previous is not None:
            assert value >= previous
        previous = value


def test_score_rounds_to_one_decimal_and_applies_jitter():
    assert score(3, 3, 1, 2, WEDNESDAY_2PM, jitter=NO_JITTER) == 28.4
    assert score(3, 3, 1, 2, WEDNESDAY_2PM, jitter=lambda: 1.0) == 29.4
    assert score(3, 3, 1, 2, WEDNESDAY_2PM, jitter=lambda: -1.0) == 27.4


def test_default_jitter_stays_within_one_point():
    base = pre_jitter_score(40, 2, 6, 18, WEDNESDAY_2PM)
    for _ in range(200):
        assert abs(score(40, 2, 6, 18, WEDNESDAY_2PM) - base) <= 1.05


@pytest.mark.parametrize("value,state", [
    (60, SafetyState.safe),
    (60.1, SafetyState.moderate),
    (75, SafetyState.moderate),
    (75.1, SafetyState.danger),
    (0, SafetyState.danger),
    (0.5, SafetyState.danger),
    (1, SafetyState.safe),
    (100, SafetyState.danger),
])
def test_classify_boundaries(value, state):
    assert classify(value) is state


def test_safest_window_falls_back_without_analysis():
    assert safest_window(None) == (6, 18)
    empty = EventAnalysis(currentHour=3, eventCount=2)
    assert safest_window(empty) == (6, 18)


def test_safest_window_spans_safest_hours():
    analysis = EventAnalysis(safestHours=[9, 3, 14], currentHour=0, eventCount=10)
    assert safest_window(analysis) == (3, 14)
