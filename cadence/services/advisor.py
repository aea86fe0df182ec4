"""Submit-now / wait / schedule classification on top of a fresh recommendation."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel

from ..models import JobData, Recommendation, UserData
from ..utils.dates import Clock, format_clock_time, local_now
from .recommendation import RecommendationEngine

AdvisoryAction = Literal["submit_now", "wait_briefly", "schedule"]

_HOUR_SECONDS = 3600.0
_DAY_SECONDS = 86400.0


class RealtimeAdvisory(BaseModel):
    action: AdvisoryAction
    message: str
    recommendation: Recommendation
    hours_until_optimal: int


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def describe_days_ahead(days: int) -> str:
    if days == 0:
        return "later today"
    if days == 1:
        return "tomorrow"
    return f"in {days} days"


def classify(recommendation: Recommendation, now: datetime) -> RealtimeAdvisory:
    """Classify how urgent submitting is relative to ``recommendation``.

    The day count in the ``schedule`` message is floored from the raw delta,
    independently of the rounded hour count, so the two can disagree.
    """
    delta_seconds = (recommendation.recommended_time - now).total_seconds()
    hours_until = delta_seconds / _HOUR_SECONDS

    if hours_until < 1:
        action: AdvisoryAction = "submit_now"
        message = "This is an optimal time to submit your application!"
    elif hours_until < 24:
        action = "wait_briefly"
        hours = _round_half_up(hours_until)
        message = (
            f"Wait {hours} hour{'s' if hours != 1 else ''} for optimal timing "
            f"({recommendation.day_of_week} at {format_clock_time(recommendation.recommended_time)})"
        )
    else:
        action = "schedule"
        days = math.floor(delta_seconds / _DAY_SECONDS)
        message = f"Schedule for {recommendation.day_of_week} ({describe_days_ahead(days)}) for best results"

    return RealtimeAdvisory(
        action=action,
        message=message,
        recommendation=recommendation,
        hours_until_optimal=_round_half_up(hours_until),
    )


class RealtimeAdvisor:
    def __init__(self, engine: RecommendationEngine, clock: Optional[Clock] = None) -> None:
        self.engine = engine
        self.clock = clock or engine.clock or local_now

    def advise(self, job: Optional[JobData] = None, user: Optional[UserData] = None) -> RealtimeAdvisory:
        recommendation = self.engine.generate(job, user)
        return classify(recommendation, self.clock())
