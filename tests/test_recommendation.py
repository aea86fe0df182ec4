"""Tests for the recommendation engine."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from conftest import EST, FixedClock, at, entry
from cadence.models import JobData, UserData
from cadence.services import recommendation as recommendation_module
from cadence.services.history import HistoricalAnalyzer
from cadence.services.patterns import INDUSTRY_PATTERNS, IndustryPattern
from cadence.services.recommendation import (
    RecommendationEngine,
    adjust_for_timezone,
    calculate_confidence,
)


def _engine(now, analyzer=None) -> RecommendationEngine:
    return RecommendationEngine(analyzer, clock=FixedClock(now))


def _kinds(recommendation, attr="type"):
    return [getattr(item, attr) for item in recommendation.warnings]


def test_finance_friday_moves_to_tuesday_morning():
    now = at(2025, 10, 17, 15)  # Friday
    rec = _engine(now).generate(JobData(industry="Finance", company_size="51-200"), UserData())

    assert rec.day_of_week == "Tuesday"
    assert rec.hour_of_day == 9
    assert rec.recommended_time == at(2025, 10, 21, 9)
    assert "late_friday" in _kinds(rec)
    assert rec.confidence == 60
    assert rec.reasoning.startswith("Apply on Tuesday at 9:00 AM for best results.")
    descriptions = [f.description for f in rec.factors]
    assert "51-200 companies typically respond within 5 days" in descriptions


def test_recommendation_is_always_in_the_future():
    now = at(2025, 10, 21, 15)  # Tuesday afternoon, after the 9:00 slot
    rec = _engine(now).generate()

    assert rec.recommended_time > now
    assert rec.recommended_time == at(2025, 10, 28, 9)


def test_weekend_start_jumps_to_monday():
    now = at(2025, 10, 18, 10)  # Saturday
    rec = _engine(now).generate()

    assert rec.day_of_week == "Monday"
    assert rec.recommended_time == at(2025, 10, 20, 9)
    day_factor = next(f for f in rec.factors if f.factor == "day_of_week")
    assert day_factor.impact == "neutral"


def test_holidays_are_skipped_with_high_warnings():
    now = at(2025, 11, 27, 8, tz=EST)  # Thanksgiving
    rec = _engine(now).generate()

    holiday_warnings = [w for w in rec.warnings if w.type == "holiday"]
    assert len(holiday_warnings) == 2
    assert all(w.severity == "high" for w in holiday_warnings)
    assert rec.recommended_time.date().isoformat() == "2025-12-01"
    assert rec.confidence == 30


def test_quarter_end_warns_without_moving_the_day():
    now = at(2025, 12, 18, 7, tz=EST)  # Thursday, 13 days before year end
    rec = _engine(now).generate(JobData(industry="Finance"))

    assert rec.recommended_time == at(2025, 12, 18, 9, tz=EST)
    assert _kinds(rec) == ["fiscal_quarter_end"]
    assert rec.confidence == 60


def test_unknown_inputs_fall_back_to_defaults():
    rec = _engine(at(2025, 10, 14, 7)).generate(JobData(industry="Underwater Basketry", company_size="?"))

    assert rec.day_of_week == "Tuesday"
    assert rec.hour_of_day == 9


def test_remote_job_shifts_by_zone_offset():
    now = at(2025, 10, 17, 15)
    rec = _engine(now).generate(
        JobData(industry="Finance", company_size="51-200", timezone="PST", is_remote=True),
        UserData(user_timezone="EST"),
    )

    assert rec.hour_of_day == 6
    tz_factor = next(f for f in rec.factors if f.factor == "timezone")
    assert tz_factor.weight == 6
    assert "PST to EST" in tz_factor.description


def test_onsite_job_ignores_timezone_difference():
    rec = _engine(at(2025, 10, 17, 15)).generate(
        JobData(industry="Finance", company_size="51-200", timezone="PST"), UserData(user_timezone="EST")
    )
    assert rec.hour_of_day == 9
    assert all(f.factor != "timezone" for f in rec.factors)


def test_adjust_for_timezone_unknown_abbreviation_counts_as_zero():
    moment = at(2025, 10, 21, 9)
    assert adjust_for_timezone(moment, "EST", "EST") == moment
    assert adjust_for_timezone(moment, "XYZ", "EST").hour == 14
    assert adjust_for_timezone(moment, "", "PST") == moment


def test_history_drives_hour_and_confidence(db, make_record):
    make_record(
        industry="Finance",
        submission_history=[
            entry(at(2025, 9, 10, 14), response_type="positive", response_hours=30),
            entry(at(2025, 9, 17, 14), response_type="positive", response_hours=12),
            entry(at(2025, 9, 18, 10), response_type="negative", response_hours=50),
        ],
    )
    engine = _engine(at(2025, 10, 17, 15), analyzer=HistoricalAnalyzer(db))
    rec = engine.generate(JobData(industry="Finance", company_size="51-200"), UserData(user_id="user-1"))

    assert rec.hour_of_day == 14
    assert any(f.factor == "historical_success" and f.weight == 9 for f in rec.factors)
    # 50 + 2 positive factors + 15 history - 10 late_friday
    assert rec.confidence == 75
    assert "Your historical success rate: 66.7%." in rec.reasoning


def test_exhausted_day_scan_falls_back_with_low_warning(monkeypatch):
    closed = IndustryPattern(
        best_days=(),
        best_hours=(10,),
        avoid_days=("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"),
        quarter_end_months=(),
        high_season=(),
        low_season=(),
    )
    monkeypatch.setattr(recommendation_module, "get_industry_pattern", lambda industry: closed)
    now = at(2025, 10, 14, 8)
    rec = _engine(now).generate(JobData(industry="Closed"))

    assert rec.recommended_time > now
    assert any(w.type == "bad_timing" and w.severity == "low" for w in rec.warnings)
    assert any(f.factor == "day_of_week" and f.impact == "neutral" for f in rec.factors)


@pytest.mark.parametrize(
    ("positives", "history", "penalties", "expected"),
    [(0, False, [], 50), (2, True, ["medium"], 75), (1, False, ["high"] * 5, 0), (9, True, [], 100)],
)
def test_confidence_is_clamped(positives, history, penalties, expected):
    from cadence.models import Factor, TimingWarning
    from cadence.services.history import HistoricalAnalysis, PatternSummary

    factors = [Factor(factor="time_of_day", impact="positive", weight=7)] * positives
    warnings = [TimingWarning(type="holiday", severity=s, message="x") for s in penalties]
    analysis = HistoricalAnalysis(user_patterns=PatternSummary(success_rate=50.0)) if history else None
    assert calculate_confidence(factors, warnings, analysis) == expected


_SWEEP_WEEKS = {
    "mid_october": date(2025, 10, 13),
    "thanksgiving": date(2025, 11, 24),
    "quarter_end": date(2025, 12, 15),
    "christmas": date(2025, 12, 22),
}


@pytest.mark.parametrize("industry", sorted(INDUSTRY_PATTERNS))
@pytest.mark.parametrize("week", sorted(_SWEEP_WEEKS))
@pytest.mark.parametrize("offset", range(7))
def test_never_lands_on_avoid_day_or_weekend(industry, week, offset):
    start = _SWEEP_WEEKS[week] + timedelta(days=offset)
    now = at(start.year, start.month, start.day, 15, tz=EST)
    rec = _engine(now).generate(JobData(industry=industry), UserData())

    assert rec.day_of_week not in INDUSTRY_PATTERNS[industry].avoid_days
    assert rec.day_of_week not in ("Saturday", "Sunday")
    assert rec.recommended_time > now
