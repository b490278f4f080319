"""Haven Backend — Recent-incident time-of-day analysis"""

import logging
from collections import Counter
from datetime import datetime
from typing import Optional

from config import TREND_LOOKAHEAD_HOURS
from models import EventAnalysis, RecentEvent, RiskTrend

logger = logging.getLogger("haven.analysis")

_TIME_FORMAT = "%H:%M"


def parse_event_hour(time_str: str) -> Optional[int]:
    """Hour of an "HH:mm" time string, or None if it does not parse."""
    try:
        return datetime.strptime(time_str.strip(), _TIME_FORMAT).hour
    except (ValueError, AttributeError):
        return None


def primary_category(events: list[RecentEvent]) -> Optional[str]:
    """Most frequent category label; ties go to the label seen first."""
    counts = Counter(e.category for e in events if e.category)
    if not counts:
        return None
    top = max(counts.values())
    # Counter keeps first-insertion order, so this is the first label to reach `top`
    return next(label for label, n in counts.items() if n == top)


def hourly_histogram(events: list[RecentEvent]) -> dict[int, int]:
    counts: Counter = Counter()
    skipped = 0
    for e in events:
        hour = parse_event_hour(e.time)
        if hour is None:
            skipped += 1
            continue
        counts[hour] += 1
    if skipped:
        logger.debug(f"Skipped {skipped} events with unparsable times")
    return dict(counts)


def safest_hours(histogram: dict[int, int], n: int = 3) -> list[int]:
    ranked = sorted(histogram.items(), key=lambda hc: (hc[1], hc[0]))
    return [hour for hour, _ in ranked[:n]]


def riskiest_hours(histogram: dict[int, int], n: int = 3) -> list[int]:
    ranked = sorted(histogram.items(), key=lambda hc: (-hc[1], hc[0]))
    return [hour for hour, _ in ranked[:n]]


def _scan_ahead(histogram: dict[int, int], current_hour: int, better) -> Optional[int]:
    """First hour 1..N ahead (wrapping) present in the histogram whose count satisfies `better`."""
    current = histogram.get(current_hour, 0)
    for offset in range(1, TREND_LOOKAHEAD_HOURS + 1):
        hour = (current_hour + offset) % 24
        if hour not in histogram:
            continue
        if better(histogram[hour], current):
            return hour
    return None


def next_safer_hour(histogram: dict[int, int], current_hour: int) -> Optional[int]:
    return _scan_ahead(histogram, current_hour, lambda count, current: count < current)


def next_riskier_hour(histogram: dict[int, int], current_hour: int) -> Optional[int]:
    return _scan_ahead(histogram, current_hour, lambda count, current: count > current)


def risk_trend(current_hour: int, safer: Optional[int], riskier: Optional[int]) -> RiskTrend:
    if safer is not None and riskier is not None:
        safer_offset = (safer - current_hour) % 24
        riskier_offset = (riskier - current_hour) % 24
        return RiskTrend.saferSoon if safer_offset < riskier_offset else RiskTrend.riskierSoon
    if safer is not None:
        return RiskTrend.saferSoon
    if riskier is not None:
        return RiskTrend.riskierSoon
    return RiskTrend.stable


def analyze_events(events: list[RecentEvent], now: Optional[datetime] = None) -> Optional[EventAnalysis]:
    """Summarize an incident list's time-of-day distribution relative to `now`.

    Returns None for an empty list. Events whose time does not parse are left
    out of the histogram but still count toward the category mode.
    """
    if not events:
        return None

    current_hour = (now or datetime.now()).hour
    histogram = hourly_histogram(events)
    safer = next_safer_hour(histogram, current_hour)
    riskier = next_riskier_hour(histogram, current_hour)

    return EventAnalysis(
        primaryCategory=primary_category(events),
        hourlyHistogram=histogram,
        safestHours=safest_hours(histogram),
        riskiestHours=riskiest_hours(histogram),
        nextSaferHour=safer,
        nextRiskierHour=riskier,
        trend=risk_trend(current_hour, safer, riskier),
        currentHour=current_hour,
        eventCount=len(events),
    )
