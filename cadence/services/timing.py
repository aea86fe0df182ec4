"""Timing operations exposed to the tracker: recommend, schedule, record outcomes."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from pydantic import BaseModel

from ..db import DatabaseManager
from ..exceptions import NotFoundError, StateConflictError, SubmissionIndexError, TimingValidationError
from ..models import (
    RESPONSE_TYPES,
    Job,
    Recommendation,
    ScheduledSubmission,
    SubmissionEntry,
    TimingRecord,
    UserData,
)
from ..utils.dates import Clock, day_name, ensure_aware, local_now
from .advisor import RealtimeAdvisory, classify
from .history import HistoricalAnalyzer
from .metrics import recompute_metrics
from .recommendation import RecommendationEngine

logger = logging.getLogger(__name__)

FOLLOWED_RECOMMENDATION_WINDOW = timedelta(hours=1)
_MAX_CONFLICT_RETRIES = 3


class SubmissionInput(BaseModel):
    """Caller-supplied details of a manual submission; gaps are derived."""

    submitted_at: Optional[datetime] = None
    day_of_week: Optional[str] = None
    hour_of_day: Optional[int] = None
    was_scheduled: Optional[bool] = None
    followed_recommendation: Optional[bool] = None


def parse_scheduled_time(value: datetime | str | None, now: datetime) -> datetime:
    """Validate a requested schedule moment; it must exist, parse, and lie in the future."""
    if value is None or value == "":
        raise TimingValidationError("Scheduled time is required")
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise TimingValidationError(f"Scheduled time {value!r} is not a valid ISO-8601 timestamp") from exc
    if not isinstance(value, datetime):
        raise TimingValidationError(f"Scheduled time must be a datetime, got {type(value).__name__}")
    value = ensure_aware(value)
    if value <= now:
        raise TimingValidationError("Scheduled time must be in the future")
    return value


def follows_recommendation(record: TimingRecord, moment: datetime) -> bool:
    recommendation = record.current_recommendation
    if recommendation is None:
        return False
    return abs(moment - recommendation.recommended_time) < FOLLOWED_RECOMMENDATION_WINDOW


def new_history_entry(submitted_at: datetime, *, was_scheduled: bool, followed_recommendation: bool) -> SubmissionEntry:
    return SubmissionEntry(
        submitted_at=submitted_at,
        day_of_week=day_name(submitted_at),
        hour_of_day=submitted_at.hour,
        was_scheduled=was_scheduled,
        followed_recommendation=followed_recommendation,
    )


def append_submission(record: TimingRecord, entry: SubmissionEntry) -> TimingRecord:
    """Return a copy of ``record`` with ``entry`` appended and metrics recomputed."""
    history = [*record.submission_history, entry]
    return record.model_copy(update={"submission_history": history, "metrics": recompute_metrics(history)})


def with_schedule(record: TimingRecord, **changes: Any) -> TimingRecord:
    if record.scheduled_submission is None:
        raise StateConflictError(f"Timing record {record.id} has no scheduled submission")
    schedule = record.scheduled_submission.model_copy(update=changes)
    return record.model_copy(update={"scheduled_submission": schedule})


class TimingService:
    """Facade over the engine, analyzer, and timing-record store."""

    def __init__(
        self,
        db: DatabaseManager,
        engine: Optional[RecommendationEngine] = None,
        clock: Clock = local_now,
        default_timezone: str = "EST",
    ) -> None:
        self.db = db
        self.analyzer = HistoricalAnalyzer(db)
        self.engine = engine or RecommendationEngine(self.analyzer, clock=clock)
        self.clock = clock
        self.default_timezone = default_timezone

    # ------------------------------------------------------------------ #
    # Record lookup
    # ------------------------------------------------------------------ #

    def _require_job(self, user_id: str, job_id: str) -> Job:
        job = self.db.get_job(job_id, user_id=user_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found for user {user_id}")
        return job

    def get_record(self, user_id: str, job_id: str) -> TimingRecord:
        record = self.db.get_timing_record(user_id, job_id)
        if record is None:
            raise NotFoundError(f"Timing record not found for job {job_id}")
        return record

    def ensure_record(self, user_id: str, job_id: str) -> TimingRecord:
        """Load the (user, job) record, creating it from the tracker's job on first use."""
        record = self.db.get_timing_record(user_id, job_id)
        if record is not None:
            return record
        job = self._require_job(user_id, job_id)
        job_data = job.to_job_data(self.default_timezone)
        return self.db.create_timing_record(
            TimingRecord(
                user_id=user_id,
                job_id=job_id,
                industry=job_data.industry,
                company_size=job_data.company_size,
                location=job_data.location,
                timezone=job_data.timezone,
                is_remote=job_data.is_remote,
            )
        )

    def _save_with_retry(self, user_id: str, job_id: str, mutate: Callable[[TimingRecord], TimingRecord]) -> TimingRecord:
        """Re-read and re-apply ``mutate`` when a concurrent writer bumps the version."""
        for attempt in range(1, _MAX_CONFLICT_RETRIES):
            try:
                return self.db.save_timing_record(mutate(self.ensure_record(user_id, job_id)))
            except StateConflictError:
                logger.debug("Version conflict on %s/%s; retrying (%d)", user_id, job_id, attempt)
        return self.db.save_timing_record(mutate(self.ensure_record(user_id, job_id)))

    # ------------------------------------------------------------------ #
    # Recommendations
    # ------------------------------------------------------------------ #

    def _user_data(self, user_id: str, user_timezone: Optional[str]) -> UserData:
        return UserData(user_id=user_id, user_timezone=(user_timezone or self.default_timezone).upper())

    def compute_recommendation(self, user_id: str, job_id: str, user_timezone: Optional[str] = None) -> Recommendation:
        """Generate a recommendation and store it on the (user, job) record."""
        job = self._require_job(user_id, job_id)
        job_data = job.to_job_data(self.default_timezone)
        recommendation = self.engine.generate(job_data, self._user_data(user_id, user_timezone))

        def refresh(record: TimingRecord) -> TimingRecord:
            return record.model_copy(
                update={
                    "industry": job_data.industry,
                    "company_size": job_data.company_size,
                    "location": job_data.location,
                    "timezone": job_data.timezone,
                    "is_remote": job_data.is_remote,
                    "current_recommendation": recommendation,
                    "last_calculated": self.clock(),
                }
            )

        self._save_with_retry(user_id, job_id, refresh)
        return recommendation

    def compute_realtime_advisory(
        self, user_id: str, job_id: str, user_timezone: Optional[str] = None
    ) -> RealtimeAdvisory:
        job = self._require_job(user_id, job_id)
        recommendation = self.engine.generate(
            job.to_job_data(self.default_timezone), self._user_data(user_id, user_timezone)
        )
        return classify(recommendation, self.clock())

    # ------------------------------------------------------------------ #
    # Scheduling
    # ------------------------------------------------------------------ #

    def schedule_submission(
        self, record: TimingRecord, scheduled_time: datetime | str | None, auto_submit: bool = False
    ) -> TimingRecord:
        """Schedule (or reschedule) a future auto-submit or reminder for ``record``."""
        when = parse_scheduled_time(scheduled_time, self.clock())
        updated = self.db.save_timing_record(
            record.model_copy(
                update={
                    "scheduled_submission": ScheduledSubmission(
                        scheduled_time=when,
                        status="scheduled",
                        auto_submit=auto_submit,
                        reminder_sent=False,
                    )
                }
            )
        )
        self.db.log_event(updated.id, "scheduled", {"scheduled_time": when.isoformat(), "auto_submit": auto_submit})
        logger.info("Scheduled record %s for %s (auto_submit=%s)", updated.id, when.isoformat(), auto_submit)
        return updated

    def cancel_scheduled_submission(self, record: TimingRecord, reason: str = "User cancelled") -> TimingRecord:
        if not record.has_pending_schedule:
            raise StateConflictError(
                f"No active scheduled submission for record {record.id} (status={record.schedule_status})"
            )
        updated = self.db.save_timing_record(
            with_schedule(record, status="cancelled", cancelled_at=self.clock(), failure_reason=reason),
            expected_status="scheduled",
        )
        self.db.log_event(updated.id, "cancelled", {"reason": reason})
        return updated

    def list_scheduled_submissions(self, user_id: str) -> list[dict[str, Any]]:
        """Pending schedules for a user, soonest first, with job title and company."""
        scheduled = []
        for record in self.db.find_scheduled_for_user(user_id):
            job = self.db.get_job(record.job_id)
            schedule = record.scheduled_submission
            scheduled.append(
                {
                    "job_id": record.job_id,
                    "job_title": job.title if job else "",
                    "job_company": job.company if job else "",
                    "scheduled_time": schedule.scheduled_time,
                    "auto_submit": schedule.auto_submit,
                    "reminder_sent": schedule.reminder_sent,
                }
            )
        return scheduled

    # ------------------------------------------------------------------ #
    # Outcomes
    # ------------------------------------------------------------------ #

    def record_submission(
        self, record: TimingRecord, data: SubmissionInput | dict[str, Any] | None = None
    ) -> TimingRecord:
        """Append a manual submission; a pending schedule becomes ``submitted``."""
        data = SubmissionInput.model_validate(data or {})
        submitted_at = ensure_aware(data.submitted_at) if data.submitted_at else self.clock()
        pending = record.has_pending_schedule
        entry = SubmissionEntry(
            submitted_at=submitted_at,
            day_of_week=data.day_of_week or day_name(submitted_at),
            hour_of_day=data.hour_of_day if data.hour_of_day is not None else submitted_at.hour,
            was_scheduled=data.was_scheduled if data.was_scheduled is not None else pending,
            followed_recommendation=(
                data.followed_recommendation
                if data.followed_recommendation is not None
                else follows_recommendation(record, submitted_at)
            ),
        )
        updated = append_submission(record, entry)
        if pending:
            updated = with_schedule(updated, status="submitted", submitted_at=submitted_at)
        saved = self.db.save_timing_record(updated, expected_status="scheduled" if pending else None)
        if pending:
            self.db.log_event(saved.id, "submitted", {"source": "manual"})
        return saved

    def record_response(
        self,
        record: TimingRecord,
        index: int,
        response_type: str,
        responded_at: datetime | None = None,
    ) -> TimingRecord:
        """Attach the employer's response to history entry ``index`` (once)."""
        if not 0 <= index < len(record.submission_history):
            raise SubmissionIndexError(
                f"Submission index {index} out of range (history has {len(record.submission_history)} entries)"
            )
        if response_type not in RESPONSE_TYPES:
            raise TimingValidationError(f"Unknown response type {response_type!r}")
        entry = record.submission_history[index]
        if entry.response_received:
            raise StateConflictError(f"Submission {index} of record {record.id} already has a response")

        responded_at = ensure_aware(responded_at) if responded_at else self.clock()
        hours = (responded_at - entry.submitted_at).total_seconds() / 3600
        history = list(record.submission_history)
        history[index] = entry.model_copy(
            update={"response_received": True, "response_type": response_type, "response_time": hours}
        )
        return self.db.save_timing_record(
            record.model_copy(update={"submission_history": history, "metrics": recompute_metrics(history)})
        )

    # ------------------------------------------------------------------ #
    # Reporting
    # ------------------------------------------------------------------ #

    def get_timing_metrics(self, user_id: str, job_id: str) -> Optional[dict[str, Any]]:
        record = self.db.get_timing_record(user_id, job_id)
        if record is None:
            return None
        return {
            "metrics": record.metrics.model_dump(),
            "submission_history": [entry.model_dump(mode="json") for entry in record.submission_history],
            "scheduled_submission": (
                record.scheduled_submission.model_dump(mode="json") if record.scheduled_submission else None
            ),
        }

    def get_timing_stats(self, industry: Optional[str] = None, company_size: Optional[str] = None) -> dict[str, Any]:
        stats: dict[str, Any] = {}
        if industry:
            stats["industry_stats"] = self.analyzer.industry_stats(industry)
        if company_size:
            stats["company_size_stats"] = self.analyzer.company_size_stats(company_size)
        return stats

    def ab_test_results(self, user_id: str) -> dict[str, dict[str, float | int]]:
        return self.analyzer.ab_test_results(user_id)

    def correlations(self, user_id: str) -> dict[str, dict[Any, dict[str, float | int]]]:
        return self.analyzer.correlations(user_id)
