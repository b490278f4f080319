from datetime import datetime

from event_analysis import (
    analyze_events, hourly_histogram, next_riskier_hour, next_safer_hour,
    parse_event_hour, primary_category, risk_trend, riskiest_hours, safest_hours,
)
from models import RiskTrend


def at_hour(hour: int) -> datetime:
    return datetime(2026, 10, 14, hour, 30)


def test_empty_event_list_has_no_analysis():
    assert analyze_events([], at_hour(12)) is None


def test_parse_event_hour():
    assert parse_event_hour("00:05") == 0
    assert parse_event_hour("23:59") == 23
    assert parse_event_hour("7:15") == 7
    assert parse_event_hour("24:00") is None
    assert parse_event_hour("noon") is None
    assert parse_event_hour("") is None


def test_histogram_skips_unparsable_times_and_omits_empty_hours(event):
    events = [event("01:00"), event("01:45"), event("bad"), event("13:10")]
    assert hourly_histogram(events) == {1: 2, 13: 1}


def test_safest_and_riskiest_hours():
    histogram = {1: 3, 2: 2, 3: 1}
    assert safest_hours(histogram) == [3, 2, 1]
    assert riskiest_hours(histogram) == [1, 2, 3]


def test_hour_ties_break_by_hour_ascending():
    histogram = {22: 1, 4: 1, 9: 5, 17: 5, 11: 1, 2: 5, 6: 3}
    assert safest_hours(histogram) == [4, 11, 22]
    assert riskiest_hours(histogram) == [2, 9, 17]


def test_fewer_than_three_hours():
    assert safest_hours({8: 2}) == [8]
    assert riskiest_hours({8: 2, 9: 4}) == [9, 8]


def test_category_mode_prefers_first_seen_on_tie(event):
    events = [
        event(category="VANDALISM"),
        event(category="ASSAULT"),
        event(category=None),
        event(category="ASSAULT"),
        event(category="VANDALISM"),
        event(category=""),
    ]
    assert primary_category(events) == "VANDALISM"


def test_category_mode_ignores_unlabeled(event):
    assert primary_category([event(category=None), event(category=None)]) is None
    assert primary_category([event(category=None), event(category="ROBBERY")]) == "ROBBERY"


def test_next_safer_hour_none_when_nothing_lower_in_window():
    histogram = {1: 3, 2: 2, 3: 1, 5: 4}
    assert next_safer_hour(histogram, 3) is None
    assert next_riskier_hour(histogram, 3) == 5


def test_absent_hours_are_skipped_not_treated_as_zero():
    # current hour 10 has 2 incidents; hours 11-15 are absent, 16 has 1
    histogram = {10: 2, 16: 1, 17: 0}
    assert next_safer_hour(histogram, 10) == 16


def test_lookahead_is_six_hours():
    histogram = {10: 2, 17: 1}
    assert next_safer_hour(histogram, 10) is None


def test_scan_wraps_past_midnight():
    histogram = {22: 4, 1: 1, 2: 9}
    assert next_safer_hour(histogram, 22) == 1
    assert next_riskier_hour(histogram, 22) == 2


def test_current_hour_absent_counts_as_zero():
    histogram = {4: 2}
    assert next_safer_hour(histogram, 3) is None
    assert next_riskier_hour(histogram, 3) == 4


def test_trend_earliest_direction_wins():
    assert risk_trend(10, 12, 14) is RiskTrend.saferSoon
    assert risk_trend(10, 14, 12) is RiskTrend.riskierSoon
    assert risk_trend(22, 1, 23) is RiskTrend.riskierSoon
    assert risk_trend(22, 23, 1) is RiskTrend.saferSoon
    assert risk_trend(10, 11, None) is RiskTrend.saferSoon
    assert risk_trend(10, None, 11) is RiskTrend.riskierSoon
    assert risk_trend(10, None, None) is RiskTrend.stable


def test_analyze_events_end_to_end(event):
    events = [event(t) for t in ("01:00", "01:10", "01:20", "02:00", "02:30", "03:00")]
    events.append(event("05:05", category="ASSAULT"))
    events.append(event("unknown", category="ASSAULT"))

    analysis = analyze_events(events, at_hour(3))

    assert analysis.hourlyHistogram == {1: 3, 2: 2, 3: 1, 5: 1}
    assert analysis.primaryCategory == "LARCENY/THEFT"
    assert analysis.safestHours == [3, 5, 2]
    assert analysis.riskiestHours == [1, 2, 3]
    assert analysis.nextSaferHour is None
    assert analysis.nextRiskierHour is None
    assert analysis.trend is RiskTrend.stable
    assert analysis.currentHour == 3
    assert analysis.eventCount == 8


def test_analysis_with_only_unparsable_times(event):
    analysis = analyze_events([event("??"), event("later")], at_hour(9))
    assert analysis is not None
    assert analysis.hourlyHistogram == {}
    assert analysis.safestHours == []
    assert analysis.trend is RiskTrend.stable
