"""Poll cycle that turns due scheduled submissions into submissions or reminders."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Optional

from ..db import DatabaseManager
from ..exceptions import PersistenceError, StateConflictError
from ..logging_utils import log_event
from ..models import Job, TimingRecord, User
from ..utils.dates import Clock, local_now
from .notifications import NotificationSender, notify_safely, submission_confirmation, submission_reminder
from .timing import append_submission, new_history_entry, with_schedule

logger = logging.getLogger(__name__)

Outcome = Literal["submitted", "reminded", "skipped", "conflict", "failed"]


@dataclass(slots=True)
class PollSummary:
    """Counts of what a single poll cycle did."""

    started_at: datetime
    due: int = 0
    submitted: int = 0
    reminded: int = 0
    skipped: int = 0
    conflicts: int = 0
    failed: int = 0
    overlapped: bool = False
    errors: list[str] = field(default_factory=list)

    def count(self, outcome: Outcome) -> None:
        if outcome == "submitted":
            self.submitted += 1
        elif outcome == "reminded":
            self.reminded += 1
        elif outcome == "skipped":
            self.skipped += 1
        elif outcome == "conflict":
            self.conflicts += 1
        else:
            self.failed += 1

    def as_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "due": self.due,
            "submitted": self.submitted,
            "reminded": self.reminded,
            "skipped": self.skipped,
            "conflicts": self.conflicts,
            "failed": self.failed,
            "overlapped": self.overlapped,
            "errors": list(self.errors),
        }


class SubmissionPoller:
    """Processes due ``scheduled`` records; at most one cycle runs at a time.

    Every transition is a compare-and-set on the record's version and its
    ``scheduled`` status, so a record that was cancelled, manually submitted,
    or handled by another cycle in the meantime is left alone. Notifications
    are sent only after the transition is committed and are never retried by
    a later cycle.
    """

    def __init__(
        self,
        db: DatabaseManager,
        notifier: NotificationSender,
        *,
        clock: Clock = local_now,
        max_workers: int = 4,
    ) -> None:
        self.db = db
        self.notifier = notifier
        self.clock = clock
        self.max_workers = max(1, max_workers)
        self._cycle_lock = threading.Lock()

    def run_poll_once(self) -> PollSummary:
        now = self.clock()
        summary = PollSummary(started_at=now)
        if not self._cycle_lock.acquire(blocking=False):
            summary.overlapped = True
            log_event(logger, logging.WARNING, "poll.overlap_skipped")
            return summary

        try:
            try:
                due = self.db.find_due_scheduled(now)
            except PersistenceError as exc:
                # Abandon the cycle; the next tick queries again.
                summary.errors.append(str(exc))
                log_event(logger, logging.ERROR, "poll.query_failed", error=str(exc))
                return summary

            summary.due = len(due)
            if not due:
                log_event(logger, logging.DEBUG, "poll.nothing_due")
                return summary

            workers = min(self.max_workers, len(due))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="cadence-poll") as pool:
                outcomes = list(pool.map(lambda record: self._process(record, now), due))
            for outcome in outcomes:
                summary.count(outcome)
            log_event(logger, logging.INFO, "poll.completed", **summary.as_dict())
            return summary
        finally:
            self._cycle_lock.release()

    # ------------------------------------------------------------------ #
    # Per-record processing
    # ------------------------------------------------------------------ #

    def _process(self, record: TimingRecord, now: datetime) -> Outcome:
        try:
            job = self.db.get_job(record.job_id, user_id=record.user_id)
            user = self.db.get_user(record.user_id)
            if job is None or user is None:
                log_event(
                    logger,
                    logging.WARNING,
                    "poll.record_skipped",
                    record_id=record.id,
                    job_found=job is not None,
                    user_found=user is not None,
                )
                return "skipped"

            if record.scheduled_submission and record.scheduled_submission.auto_submit:
                return self._auto_submit(record, job, user, now)
            return self._remind(record, job, user, now)
        except StateConflictError:
            log_event(logger, logging.INFO, "poll.record_conflict", record_id=record.id)
            return "conflict"
        except Exception as exc:
            logger.exception("Scheduled submission %s failed", record.id)
            self._mark_failed(record, str(exc) or type(exc).__name__)
            return "failed"
        finally:
            self.db.close()

    def _auto_submit(self, record: TimingRecord, job: Job, user: User, now: datetime) -> Outcome:
        entry = new_history_entry(now, was_scheduled=True, followed_recommendation=True)
        updated = with_schedule(append_submission(record, entry), status="submitted", submitted_at=now)
        saved = self.db.submit_scheduled(updated, job.id, now)
        self._audit(saved.id, "submitted", {"source": "scheduler", "at": now.isoformat()})
        log_event(logger, logging.INFO, "poll.auto_submitted", record_id=saved.id, job_id=job.id)

        subject, body = submission_confirmation(job, user, now)
        notify_safely(self.notifier, user.email, subject, body)
        return "submitted"

    def _remind(self, record: TimingRecord, job: Job, user: User, now: datetime) -> Outcome:
        schedule = record.scheduled_submission
        already_reminded = bool(schedule and schedule.reminder_sent)
        updated = with_schedule(record, status="reminded", submitted_at=now, reminder_sent=True)
        saved = self.db.save_timing_record(updated, expected_status="scheduled")
        self._audit(saved.id, "reminded", {"at": now.isoformat()})
        log_event(logger, logging.INFO, "poll.reminded", record_id=saved.id, job_id=job.id)

        if not already_reminded:
            subject, body = submission_reminder(job, user, schedule.scheduled_time)
            notify_safely(self.notifier, user.email, subject, body)
        return "reminded"

    def _audit(self, record_id: Optional[int], event: str, detail: dict[str, Any]) -> None:
        """Append to the schedule audit trail once the transition is committed."""
        try:
            self.db.log_event(record_id, event, detail)
        except PersistenceError as exc:
            log_event(logger, logging.WARNING, "poll.audit_failed", record_id=record_id, event_name=event, error=str(exc))

    def _mark_failed(self, record: TimingRecord, reason: str) -> None:
        try:
            current: Optional[TimingRecord] = (
                self.db.get_timing_record_by_id(record.id) if record.id is not None else None
            )
            if current is None or not current.has_pending_schedule:
                return
            self.db.save_timing_record(
                with_schedule(current, status="failed", failure_reason=reason),
                expected_status="scheduled",
            )
            self.db.log_event(current.id, "failed", {"reason": reason})
        except Exception:
            # The record stays ``scheduled`` and is retried on the next tick.
            logger.exception("Could not mark scheduled submission %s as failed", record.id)
