"""Tests for the submit-now / wait / schedule advisor."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import FixedClock, at
from cadence.models import JobData, Recommendation
from cadence.services.advisor import RealtimeAdvisor, classify, describe_days_ahead
from cadence.services.recommendation import RecommendationEngine

NOW = at(2025, 10, 20, 8)


def _recommendation(delta: timedelta) -> Recommendation:
    moment = NOW + delta
    return Recommendation(
        recommended_time=moment,
        day_of_week="Tuesday",
        hour_of_day=moment.hour,
        reasoning="",
    )


def test_under_an_hour_means_submit_now():
    advisory = classify(_recommendation(timedelta(minutes=40)), NOW)
    assert advisory.action == "submit_now"
    assert advisory.hours_until_optimal == 1
    assert advisory.message == "This is an optimal time to submit your application!"


def test_same_day_wait_states_rounded_hours_and_time():
    advisory = classify(_recommendation(timedelta(hours=2, minutes=30)), NOW)
    assert advisory.action == "wait_briefly"
    assert advisory.hours_until_optimal == 3
    assert advisory.message == "Wait 3 hours for optimal timing (Tuesday at 10:30 AM)"


def test_exactly_one_hour_is_singular():
    advisory = classify(_recommendation(timedelta(hours=1)), NOW)
    assert advisory.action == "wait_briefly"
    assert advisory.message.startswith("Wait 1 hour for")


@pytest.mark.parametrize(
    ("delta", "hours", "phrase"),
    [
        (timedelta(hours=25), 25, "tomorrow"),
        (timedelta(hours=47, minutes=45), 48, "tomorrow"),
        (timedelta(days=5, hours=1), 121, "in 5 days"),
    ],
)
def test_schedule_day_count_is_floored_independently(delta, hours, phrase):
    advisory = classify(_recommendation(delta), NOW)
    assert advisory.action == "schedule"
    assert advisory.hours_until_optimal == hours
    assert advisory.message == f"Schedule for Tuesday ({phrase}) for best results"


def test_describe_days_ahead():
    assert describe_days_ahead(0) == "later today"
    assert describe_days_ahead(1) == "tomorrow"
    assert describe_days_ahead(3) == "in 3 days"


def test_advisor_uses_engine_clock():
    clock = FixedClock(at(2025, 10, 17, 15))  # Friday
    advisor = RealtimeAdvisor(RecommendationEngine(clock=clock))
    advisory = advisor.advise(JobData(industry="Finance", company_size="51-200"))
    assert advisory.action == "schedule"
    assert advisory.recommendation.day_of_week == "Tuesday"
    # Friday 15:00 to Tuesday 09:00 is 90 hours
    assert advisory.hours_until_optimal == 90
    assert "(in 3 days)" in advisory.message
