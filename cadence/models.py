"""Domain models for timing recommendations, schedules, and submission history."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

DayName = Literal["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
FactorKind = Literal[
    "day_of_week",
    "time_of_day",
    "timezone",
    "industry_pattern",
    "company_size",
    "holiday",
    "fiscal_period",
    "historical_success",
    "response_time_pattern",
]
Impact = Literal["positive", "negative", "neutral"]
WarningKind = Literal["bad_timing", "holiday", "weekend", "fiscal_quarter_end", "late_friday", "early_monday"]
Severity = Literal["low", "medium", "high"]
ScheduleStatus = Literal["scheduled", "submitted", "reminded", "cancelled", "failed"]
ResponseType = Literal["positive", "negative", "neutral", "no_response"]
ABTestGroup = Literal["optimal_time", "random_time", "user_choice", "control"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"submitted", "reminded", "cancelled", "failed"})
RESPONSE_TYPES: tuple[str, ...] = ("positive", "negative", "neutral", "no_response")


class Factor(BaseModel):
    """A named signal contributing to a recommendation's confidence."""

    model_config = ConfigDict(frozen=True)

    factor: FactorKind
    impact: Impact
    weight: int = Field(default=5, ge=0, le=10)
    description: str = ""


class TimingWarning(BaseModel):
    """A flagged timing risk surfaced to the user."""

    model_config = ConfigDict(frozen=True)

    type: WarningKind
    severity: Severity = "medium"
    message: str


class Recommendation(BaseModel):
    """Computed submission suggestion with its supporting factors and warnings."""

    recommended_time: datetime
    day_of_week: DayName
    hour_of_day: int = Field(ge=0, le=23)
    confidence: int = Field(default=50, ge=0, le=100)
    reasoning: str
    factors: list[Factor] = Field(default_factory=list)
    warnings: list[TimingWarning] = Field(default_factory=list)


class ScheduledSubmission(BaseModel):
    scheduled_time: datetime
    status: ScheduleStatus = "scheduled"
    submitted_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    reminder_sent: bool = False
    auto_submit: bool = False


class SubmissionEntry(BaseModel):
    """One historical application submission and, later, its response."""

    submitted_at: datetime
    day_of_week: str
    hour_of_day: int = Field(ge=0, le=23)
    response_received: bool = False
    response_time: Optional[float] = None  # hours until response
    response_type: ResponseType = "no_response"
    was_scheduled: bool = False
    followed_recommendation: bool = False


class TimingMetrics(BaseModel):
    total_submissions: int = 0
    response_rate: float = 0.0
    average_response_time: float = 0.0
    optimal_time_success_rate: float = 0.0
    non_optimal_time_success_rate: float = 0.0


class TimingRecord(BaseModel):
    """Persisted per-(user, job) entity holding recommendation, schedule, and history."""

    id: Optional[int] = None
    version: int = 0
    user_id: str
    job_id: str
    industry: str = ""
    company_size: str = ""
    location: str = ""
    timezone: str = ""
    is_remote: bool = False
    current_recommendation: Optional[Recommendation] = None
    last_calculated: Optional[datetime] = None
    scheduled_submission: Optional[ScheduledSubmission] = None
    submission_history: list[SubmissionEntry] = Field(default_factory=list)
    ab_test_group: ABTestGroup = "user_choice"
    metrics: TimingMetrics = Field(default_factory=TimingMetrics)

    @property
    def schedule_status(self) -> Optional[str]:
        if self.scheduled_submission is None:
            return None
        return self.scheduled_submission.status

    @property
    def has_pending_schedule(self) -> bool:
        return self.schedule_status == "scheduled"


class JobData(BaseModel):
    """Recommendation input describing the target job."""

    industry: str = "default"
    company_size: str = "default"
    location: str = ""
    timezone: str = "EST"
    is_remote: bool = False


class UserData(BaseModel):
    user_id: Optional[str] = None
    user_timezone: str = "EST"


class Job(BaseModel):
    """Job entity owned by the surrounding tracker; read and updated on auto-submit."""

    id: str
    user_id: str
    title: str = ""
    company: str = ""
    industry: str = ""
    company_size: str = ""
    location: str = ""
    timezone: str = ""
    work_mode: str = ""
    application_url: str = ""
    status: str = "Interested"
    application_date: Optional[datetime] = None

    @property
    def is_remote(self) -> bool:
        return self.work_mode in ("Remote", "Hybrid")

    def to_job_data(self, default_timezone: str = "EST") -> JobData:
        return JobData(
            industry=self.industry or "default",
            company_size=self.company_size or "default",
            location=self.location,
            timezone=self.timezone or default_timezone,
            is_remote=self.is_remote,
        )


class User(BaseModel):
    id: str
    email: str = ""
    name: str = ""
