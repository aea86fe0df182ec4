"""Frequency-based analysis of past submission outcomes."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

import pandas as pd

from ..db import DatabaseManager
from ..models import SubmissionEntry, TimingRecord

logger = logging.getLogger(__name__)

AB_TEST_GROUPS: tuple[str, ...] = ("optimal_time", "random_time", "user_choice", "control")
_CORRELATION_DIMENSIONS: dict[str, str] = {
    "by_day_of_week": "day_of_week",
    "by_hour_of_day": "hour_of_day",
    "by_industry": "industry",
    "by_company_size": "company_size",
}


@dataclass(frozen=True, slots=True)
class PatternSummary:
    best_day: Optional[str] = None
    best_hour: Optional[int] = None
    success_rate: float = 0.0


@dataclass(frozen=True, slots=True)
class HistoricalAnalysis:
    user_patterns: PatternSummary = field(default_factory=PatternSummary)
    industry_patterns: PatternSummary = field(default_factory=PatternSummary)


def _is_positive(entry: SubmissionEntry) -> bool:
    return entry.response_received and entry.response_type == "positive"


def summarize_records(records: Iterable[TimingRecord]) -> PatternSummary:
    """Tally positive responses by day and hour across ``records``.

    The most frequent day and hour win. Ties go to whichever value was seen
    first while walking records in order and each history front to back.
    """
    day_counts: Counter[str] = Counter()
    hour_counts: Counter[int] = Counter()
    positives = 0
    submissions = 0
    for record in records:
        submissions += len(record.submission_history)
        for entry in record.submission_history:
            if not _is_positive(entry):
                continue
            positives += 1
            day_counts[entry.day_of_week] += 1
            hour_counts[entry.hour_of_day] += 1

    return PatternSummary(
        best_day=day_counts.most_common(1)[0][0] if day_counts else None,
        best_hour=hour_counts.most_common(1)[0][0] if hour_counts else None,
        success_rate=(positives / submissions) * 100 if submissions else 0.0,
    )


class HistoricalAnalyzer:
    """Read-only aggregation over persisted timing records."""

    def __init__(self, db: DatabaseManager) -> None:
        self.db = db

    def analyze(self, user_id: str, industry: Optional[str] = None) -> HistoricalAnalysis:
        user_summary = summarize_records(self.db.find_by_user(user_id))
        industry_summary = summarize_records(self.db.find_by_industry(industry)) if industry else PatternSummary()
        logger.debug(
            "History for user=%s: best_day=%s best_hour=%s success=%.1f%%",
            user_id,
            user_summary.best_day,
            user_summary.best_hour,
            user_summary.success_rate,
        )
        return HistoricalAnalysis(user_patterns=user_summary, industry_patterns=industry_summary)

    def industry_stats(self, industry: str) -> dict[str, dict[str, int]]:
        """Positive-response counts per day of week and per hour for an industry."""
        day_stats: Counter[str] = Counter()
        hour_stats: Counter[int] = Counter()
        for record in self.db.find_by_industry(industry):
            for entry in record.submission_history:
                if _is_positive(entry):
                    day_stats[entry.day_of_week] += 1
                    hour_stats[entry.hour_of_day] += 1
        return {
            "day_stats": dict(day_stats),
            "hour_stats": {str(hour): count for hour, count in hour_stats.items()},
        }

    def company_size_stats(self, company_size: str) -> dict[str, float | int]:
        rates = [
            record.metrics.response_rate
            for record in self.db.find_by_company_size(company_size)
            if record.metrics.response_rate > 0
        ]
        return {
            "average_response_rate": sum(rates) / len(rates) if rates else 0.0,
            "sample_size": len(rates),
        }

    def ab_test_results(self, user_id: str) -> dict[str, dict[str, float | int]]:
        """Submissions, positive responses, and rate per A/B group."""
        results: dict[str, dict[str, float | int]] = {
            group: {"submissions": 0, "responses": 0, "rate": 0.0} for group in AB_TEST_GROUPS
        }
        for record in self.db.find_by_user(user_id):
            bucket = results[record.ab_test_group]
            bucket["submissions"] += len(record.submission_history)
            bucket["responses"] += sum(1 for entry in record.submission_history if _is_positive(entry))
        for bucket in results.values():
            if bucket["submissions"]:
                bucket["rate"] = bucket["responses"] / bucket["submissions"] * 100
        return results

    def correlations(self, user_id: str) -> dict[str, dict[Any, dict[str, float | int]]]:
        """Response rate by day, hour, industry, and company size for one user."""
        rows = [
            {
                "day_of_week": entry.day_of_week,
                "hour_of_day": entry.hour_of_day,
                "industry": record.industry or "Unknown",
                "company_size": record.company_size or "Unknown",
                "positive": int(_is_positive(entry)),
            }
            for record in self.db.find_by_user(user_id)
            for entry in record.submission_history
        ]
        if not rows:
            return {name: {} for name in _CORRELATION_DIMENSIONS}

        frame = pd.DataFrame(rows)
        correlations: dict[str, dict[Any, dict[str, float | int]]] = {}
        for name, column in _CORRELATION_DIMENSIONS.items():
            grouped = frame.groupby(column, sort=False)["positive"].agg(["count", "sum"])
            correlations[name] = {
                (int(key) if column == "hour_of_day" else str(key)): {
                    "total": int(stats["count"]),
                    "responses": int(stats["sum"]),
                    "rate": float(stats["sum"]) / float(stats["count"]) * 100,
                }
                for key, stats in grouped.iterrows()
            }
        return correlations
