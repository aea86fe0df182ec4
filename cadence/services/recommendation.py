"""Heuristic engine choosing the best day and hour to submit an application.

The engine blends three signals: the static industry and company-size
catalog, the user's own response history, and calendar risks such as US
holidays and fiscal quarter ends. It never raises on missing optional input;
absent fields fall back to the ``default`` catalog entries.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Final, Mapping, Optional

from ..models import Factor, JobData, Recommendation, TimingWarning, UserData
from ..utils.dates import Clock, day_name, format_clock_time, local_now
from .history import HistoricalAnalysis, HistoricalAnalyzer
from .patterns import (
    DEFAULT_KEY,
    days_until_quarter_end,
    get_company_size_pattern,
    get_industry_pattern,
    holiday_name,
)

logger = logging.getLogger(__name__)

MAX_DAY_SCAN: Final[int] = 14
WEEKEND: Final[frozenset[str]] = frozenset({"Saturday", "Sunday"})

# Fixed standard/daylight offsets; no DST awareness, so shifts stay stable year round.
TIMEZONE_OFFSETS: Final[Mapping[str, int]] = {
    "EST": -5,
    "EDT": -4,
    "CST": -6,
    "CDT": -5,
    "MST": -7,
    "MDT": -6,
    "PST": -8,
    "PDT": -7,
    "AKST": -9,
    "AKDT": -8,
    "HST": -10,
}

SEVERITY_PENALTY: Final[Mapping[str, int]] = {"high": 15, "medium": 10, "low": 5}


def adjust_for_timezone(moment: datetime, job_timezone: str, user_timezone: str) -> datetime:
    """Shift ``moment`` by the offset difference between two US zone abbreviations."""
    if not job_timezone or not user_timezone or job_timezone == user_timezone:
        return moment
    difference = TIMEZONE_OFFSETS.get(job_timezone, 0) - TIMEZONE_OFFSETS.get(user_timezone, 0)
    return moment + timedelta(hours=difference)


def calculate_confidence(
    factors: list[Factor],
    warnings: list[TimingWarning],
    analysis: Optional[HistoricalAnalysis],
) -> int:
    confidence = 50 + 10 * sum(1 for f in factors if f.impact == "positive")
    if analysis is not None and analysis.user_patterns.success_rate > 0:
        confidence += 15
    confidence -= sum(SEVERITY_PENALTY[w.severity] for w in warnings)
    return max(0, min(100, confidence))


def build_reasoning(
    day: str,
    time_label: str,
    factors: list[Factor],
    analysis: Optional[HistoricalAnalysis],
) -> str:
    parts = [f"Apply on {day} at {time_label} for best results."]
    top = sorted((f for f in factors if f.impact == "positive"), key=lambda f: f.weight, reverse=True)[:2]
    if top:
        parts.append(". ".join(f.description for f in top))
    if analysis is not None and analysis.user_patterns.success_rate > 0:
        parts.append(f"Your historical success rate: {analysis.user_patterns.success_rate:.1f}%.")
    return " ".join(parts)


class RecommendationEngine:
    """Combines the pattern catalog and historical analysis into one recommendation."""

    def __init__(self, analyzer: Optional[HistoricalAnalyzer] = None, clock: Clock = local_now) -> None:
        self.analyzer = analyzer
        self.clock = clock

    def generate(self, job: Optional[JobData] = None, user: Optional[UserData] = None) -> Recommendation:
        job = job or JobData()
        user = user or UserData()
        industry = job.industry or DEFAULT_KEY
        company_size = job.company_size or DEFAULT_KEY
        industry_pattern = get_industry_pattern(industry)
        size_pattern = get_company_size_pattern(company_size)

        analysis: Optional[HistoricalAnalysis] = None
        if user.user_id and self.analyzer is not None:
            analysis = self.analyzer.analyze(user.user_id, industry)

        now = self.clock()
        factors: list[Factor] = []
        warnings: list[TimingWarning] = []

        candidate = now
        if candidate.weekday() >= 5:
            candidate += timedelta(days=7 - candidate.weekday())

        accepted = False
        for _ in range(MAX_DAY_SCAN):
            name = day_name(candidate)
            holiday = holiday_name(candidate.date())
            if holiday:
                warnings.append(
                    TimingWarning(
                        type="holiday",
                        severity="high",
                        message=f"Avoid applying on {holiday}. Offices are typically closed.",
                    )
                )
                candidate += timedelta(days=1)
                continue

            if days_until_quarter_end(candidate.date(), industry_pattern.quarter_end_months) is not None:
                warnings.append(
                    TimingWarning(
                        type="fiscal_quarter_end",
                        severity="medium",
                        message="End of fiscal quarter approaching. Hiring may be slower than usual.",
                    )
                )

            if name in industry_pattern.best_days:
                factors.append(
                    Factor(
                        factor="day_of_week",
                        impact="positive",
                        weight=8,
                        description=f"{name} is an optimal day for {industry} applications",
                    )
                )
                accepted = True
                break
            if name in industry_pattern.avoid_days:
                if name == "Friday":
                    warnings.append(
                        TimingWarning(
                            type="late_friday",
                            severity="medium",
                            message="Applications submitted on Friday may be overlooked until Monday",
                        )
                    )
                candidate += timedelta(days=1)
                continue
            if name in WEEKEND:
                candidate += timedelta(days=1)
                continue

            factors.append(
                Factor(
                    factor="day_of_week",
                    impact="neutral",
                    weight=5,
                    description=f"{name} is an acceptable day for applications",
                )
            )
            accepted = True
            break

        if not accepted:
            # Every day in the window was disqualified: take the last examined day as is.
            logger.warning("No acceptable day within %d days for industry=%s", MAX_DAY_SCAN, industry)
            warnings.append(
                TimingWarning(
                    type="bad_timing",
                    severity="low",
                    message=f"No ideal submission day found in the next {MAX_DAY_SCAN} days.",
                )
            )
            factors.append(
                Factor(
                    factor="day_of_week",
                    impact="neutral",
                    weight=5,
                    description=f"{day_name(candidate)} is the earliest available day",
                )
            )

        if analysis is not None and analysis.user_patterns.best_hour is not None:
            hour = analysis.user_patterns.best_hour
            factors.append(
                Factor(
                    factor="historical_success",
                    impact="positive",
                    weight=9,
                    description=f"Based on your history, {hour}:00 has the best response rate",
                )
            )
        else:
            preferred = size_pattern.preferred_times[0] if size_pattern.preferred_times else None
            index = industry_pattern.best_hours.index(preferred) if preferred in industry_pattern.best_hours else 0
            hour = industry_pattern.best_hours[index]
            factors.append(
                Factor(
                    factor="time_of_day",
                    impact="positive",
                    weight=7,
                    description=f"{hour}:00 is optimal for {industry} industry",
                )
            )

        candidate = candidate.replace(hour=hour, minute=0, second=0, microsecond=0)

        if job.is_remote and job.timezone != user.user_timezone:
            original_hour = candidate.hour
            candidate = adjust_for_timezone(candidate, job.timezone, user.user_timezone)
            factors.append(
                Factor(
                    factor="timezone",
                    impact="neutral",
                    weight=6,
                    description=(
                        f"Time adjusted from {job.timezone} to {user.user_timezone} "
                        f"({original_hour}:00 → {candidate.hour}:00)"
                    ),
                )
            )

        factors.append(
            Factor(
                factor="company_size",
                impact="neutral",
                weight=5,
                description=(
                    f"{company_size} companies typically respond within "
                    f"{round(size_pattern.response_time_hours / 24)} days"
                ),
            )
        )

        if candidate <= now:
            candidate += timedelta(days=7)

        final_day = day_name(candidate)
        recommendation = Recommendation(
            recommended_time=candidate,
            day_of_week=final_day,
            hour_of_day=candidate.hour,
            confidence=calculate_confidence(factors, warnings, analysis),
            reasoning=build_reasoning(final_day, format_clock_time(candidate), factors, analysis),
            factors=factors,
            warnings=warnings,
        )
        logger.info(
            "Recommended %s %s (confidence=%d, industry=%s, size=%s)",
            final_day,
            format_clock_time(candidate),
            recommendation.confidence,
            industry,
            company_size,
        )
        return recommendation
