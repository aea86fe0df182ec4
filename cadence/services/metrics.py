"""Derived timing metrics; always recomputed from submission history."""

from __future__ import annotations

from typing import Sequence

from ..models import SubmissionEntry, TimingMetrics


def _percent(numerator: int, denominator: int) -> float:
    return (numerator / denominator) * 100 if denominator else 0.0


def _is_positive(entry: SubmissionEntry) -> bool:
    return entry.response_received and entry.response_type == "positive"


def recompute_metrics(history: Sequence[SubmissionEntry]) -> TimingMetrics:
    """Return metrics for ``history``. Zero denominators yield 0, never NaN."""
    responded = [entry for entry in history if entry.response_received]
    response_times = [entry.response_time for entry in responded if entry.response_time is not None]
    followed = [entry for entry in history if entry.followed_recommendation]
    not_followed = [entry for entry in history if not entry.followed_recommendation]

    return TimingMetrics(
        total_submissions=len(history),
        response_rate=_percent(len(responded), len(history)),
        average_response_time=sum(response_times) / len(response_times) if response_times else 0.0,
        optimal_time_success_rate=_percent(sum(1 for e in followed if _is_positive(e)), len(followed)),
        non_optimal_time_success_rate=_percent(sum(1 for e in not_followed if _is_positive(e)), len(not_followed)),
    )
