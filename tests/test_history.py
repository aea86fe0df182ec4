"""Tests for historical pattern analysis and aggregate reports."""

from __future__ import annotations

from conftest import at, entry
from cadence.models import TimingMetrics, TimingRecord
from cadence.services.history import HistoricalAnalyzer, summarize_records


def test_summary_of_empty_history_has_no_best_values():
    summary = summarize_records([])
    assert summary.best_day is None
    assert summary.best_hour is None
    assert summary.success_rate == 0.0


def test_ties_go_to_first_seen_value():
    record = TimingRecord(
        user_id="u",
        job_id="j",
        submission_history=[
            entry(at(2025, 9, 11, 10), response_type="positive"),  # Thursday 10:00
            entry(at(2025, 9, 9, 14), response_type="positive"),  # Tuesday 14:00
        ],
    )
    summary = summarize_records([record])
    assert summary.best_day == "Thursday"
    assert summary.best_hour == 10
    assert summary.success_rate == 100.0


def test_only_positive_responses_count_towards_best_slot():
    record = TimingRecord(
        user_id="u",
        job_id="j",
        submission_history=[
            entry(at(2025, 9, 8, 8), response_type="negative"),
            entry(at(2025, 9, 8, 8), response_type="neutral"),
            entry(at(2025, 9, 10, 11), response_type="positive"),
            entry(at(2025, 9, 12, 16)),
        ],
    )
    summary = summarize_records([record])
    assert summary.best_day == "Wednesday"
    assert summary.best_hour == 11
    assert summary.success_rate == 25.0


def test_analyze_separates_user_and_industry(db, make_record):
    make_record("alice", "j1", industry="Technology", submission_history=[entry(at(2025, 9, 9, 9), response_type="positive")])
    make_record("bob", "j2", industry="Technology", submission_history=[entry(at(2025, 9, 10, 15), response_type="positive")])
    make_record("bob", "j3", industry="Technology", submission_history=[entry(at(2025, 9, 10, 15), response_type="positive")])

    analysis = HistoricalAnalyzer(db).analyze("alice", "Technology")
    assert analysis.user_patterns.best_hour == 9
    assert analysis.industry_patterns.best_hour == 15
    assert analysis.industry_patterns.best_day == "Wednesday"


def test_industry_and_company_size_stats(db, make_record):
    make_record(
        "u1",
        "j1",
        industry="Retail",
        company_size="11-50",
        metrics=TimingMetrics(response_rate=50.0),
        submission_history=[entry(at(2025, 9, 8, 14), response_type="positive")],
    )
    make_record("u2", "j2", industry="Retail", company_size="11-50", metrics=TimingMetrics(response_rate=0.0))
    make_record("u3", "j3", industry="Retail", company_size="11-50", metrics=TimingMetrics(response_rate=100.0))

    analyzer = HistoricalAnalyzer(db)
    assert analyzer.industry_stats("Retail") == {"day_stats": {"Monday": 1}, "hour_stats": {"14": 1}}
    assert analyzer.company_size_stats("11-50") == {"average_response_rate": 75.0, "sample_size": 2}
    assert analyzer.company_size_stats("10000+") == {"average_response_rate": 0.0, "sample_size": 0}


def test_ab_test_results_group_by_assignment(db, make_record):
    make_record(
        "u1",
        "j1",
        ab_test_group="optimal_time",
        submission_history=[
            entry(at(2025, 9, 9, 9), response_type="positive"),
            entry(at(2025, 9, 10, 9)),
        ],
    )
    make_record("u1", "j2", submission_history=[entry(at(2025, 9, 11, 9), response_type="negative")])

    results = HistoricalAnalyzer(db).ab_test_results("u1")
    assert results["optimal_time"] == {"submissions": 2, "responses": 1, "rate": 50.0}
    assert results["user_choice"] == {"submissions": 1, "responses": 0, "rate": 0.0}
    assert results["control"] == {"submissions": 0, "responses": 0, "rate": 0.0}


def test_correlations_by_dimension(db, make_record):
    make_record(
        "u1",
        "j1",
        industry="Finance",
        company_size="51-200",
        submission_history=[
            entry(at(2025, 9, 9, 9), response_type="positive"),
            entry(at(2025, 9, 16, 9)),
        ],
    )
    make_record("u1", "j2", submission_history=[entry(at(2025, 9, 12, 16), response_type="positive")])

    result = HistoricalAnalyzer(db).correlations("u1")
    assert result["by_day_of_week"]["Tuesday"] == {"total": 2, "responses": 1, "rate": 50.0}
    assert result["by_hour_of_day"][16] == {"total": 1, "responses": 1, "rate": 100.0}
    assert result["by_industry"]["Unknown"]["total"] == 1
    assert result["by_company_size"]["51-200"]["responses"] == 1


def test_correlations_without_history_are_empty(db):
    assert HistoricalAnalyzer(db).correlations("nobody") == {
        "by_day_of_week": {},
        "by_hour_of_day": {},
        "by_industry": {},
        "by_company_size": {},
    }
