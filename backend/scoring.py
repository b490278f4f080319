"""Haven Backend — Risk Scoring Logic"""

import logging
import random
from datetime import datetime
from typing import Callable, Optional

from config import DEFAULT_SAFEST_WINDOW
from models import EventAnalysis, SafetyState

logger = logging.getLogger("haven.scoring")

BASE_SCORE = 18.0
PRE_JITTER_FLOOR = 15.0
PRE_JITTER_CEILING = 88.0
JITTER_RANGE = 1.0
CRIME_NORMALIZER = 150.0
CRIME_NORMALIZED_CAP = 3.0
CRIME_EXPONENT = 1.55
CRIME_WEIGHT = 20.0


def _uniform_jitter() -> float:
    return random.uniform(-JITTER_RANGE, JITTER_RANGE)


def _time_of_day_adjustment(hour: int, start: int, end: int) -> float:
    if not (start <= hour <= end):
        return 5.0
    # Widened "approach" band. Every hour reaching this branch is already
    # inside [start, end], so in practice the whole safest band scores +3.
    # Kept as-is pending product clarification.
    elif start - 2 <= hour <= end:
        return 3.0
    return 0.0


def _day_of_week_adjustment(now: datetime) -> float:
    return 3.0 if now.weekday() >= 5 else 1.0


def _police_presence_adjustment(station_count: int) -> float:
    if station_count <= 0:
        return 10.0
    if station_count < 5:
        return (5 - station_count) * 2.2
    return 0.0


def _crime_adjustment(incident_count: int) -> float:
    normalized = min(max(incident_count, 0) / CRIME_NORMALIZER, CRIME_NORMALIZED_CAP)
    return normalized ** CRIME_EXPONENT * CRIME_WEIGHT


def pre_jitter_score(
    incident_count: int,
    station_count: int,
    safest_hour_start: int,
    safest_hour_end: int,
    now: datetime,
) -> float:
    """Deterministic part of the score, clamped to [15, 88]."""
    total = BASE_SCORE
    total += _time_of_day_adjustment(now.hour, safest_hour_start, safest_hour_end)
    total += _day_of_week_adjustment(now)
    total += _police_presence_adjustment(station_count)
    total += _crime_adjustment(incident_count)
    return min(max(total, PRE_JITTER_FLOOR), PRE_JITTER_CEILING)


def score(
    incident_count: int,
    station_count: int,
    safest_hour_start: int,
    safest_hour_end: int,
    now: datetime,
    jitter: Optional[Callable[[], float]] = None,
) -> float:
    """Compute the 0-100 risk score (higher is riskier).

    The only non-deterministic term is a uniform jitter in [-1, 1] added after
    the [15, 88] clamp, present for display variance. Pass `jitter` to
    override it, e.g. ``jitter=lambda: 0.0`` in tests.
    """
    base = pre_jitter_score(incident_count, station_count, safest_hour_start, safest_hour_end, now)
    noise = (jitter or _uniform_jitter)()
    return round(min(max(base + noise, 0.0), 100.0), 1)


def classify(score_value: float) -> SafetyState:
    """Map a score to a SafetyState.

    Mapping:
      1 - 60      → safe
      (60, 75]    → moderate
      otherwise   → danger (including anything below 1)
    """
    if 1 <= score_value <= 60:
        return SafetyState.safe
    elif 60 < score_value <= 75:
        return SafetyState.moderate
    else:
        return SafetyState.danger


def safest_window(analysis: Optional[EventAnalysis]) -> tuple[int, int]:
    """Safest-hour window spanned by the analysis, or DEFAULT_SAFEST_WINDOW."""
    if analysis is None or not analysis.safestHours:
        return DEFAULT_SAFEST_WINDOW
    return min(analysis.safestHours), max(analysis.safestHours)
