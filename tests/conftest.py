"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cadence.config import AppConfig
from cadence.db import DatabaseManager
from cadence.models import Job, SubmissionEntry, TimingRecord, User
from cadence.utils.dates import day_name

EDT = timezone(timedelta(hours=-4), "EDT")
EST = timezone(timedelta(hours=-5), "EST")


class FixedClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingSender:
    """Notification sender that keeps every message instead of sending it."""

    def __init__(self, result: bool = True, error: Exception | None = None) -> None:
        self.result = result
        self.error = error
        self.sent: list[tuple[str, str, str]] = []

    def send(self, to: str, subject: str, body: str) -> bool:
        self.sent.append((to, subject, body))
        if self.error is not None:
            raise self.error
        return self.result


def at(year: int, month: int, day: int, hour: int = 0, minute: int = 0, tz=EDT) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=tz)


def entry(
    submitted_at: datetime,
    *,
    response_type: str | None = None,
    response_hours: float | None = None,
    followed: bool = False,
) -> SubmissionEntry:
    return SubmissionEntry(
        submitted_at=submitted_at,
        day_of_week=day_name(submitted_at),
        hour_of_day=submitted_at.hour,
        response_received=response_type is not None,
        response_type=response_type or "no_response",
        response_time=response_hours,
        followed_recommendation=followed,
    )


@pytest.fixture()
def config(tmp_path, monkeypatch):
    """Config pointing at a throwaway database and log directory."""
    monkeypatch.chdir(tmp_path)
    return AppConfig(
        database_path=tmp_path / "cadence.db",
        log_path=tmp_path / "logs" / "cadence.log",
        run_on_startup=False,
        poll_workers=2,
    )


@pytest.fixture()
def db(config):
    manager = DatabaseManager(config)
    yield manager
    manager.close()


@pytest.fixture()
def clock():
    # Friday 17 October 2025, 15:00 EDT
    return FixedClock(at(2025, 10, 17, 15))


@pytest.fixture()
def sender():
    return RecordingSender()


@pytest.fixture()
def seed(db):
    """Insert a user and job; returns a factory so tests can add more."""

    def _seed(
        job_id: str = "job-1",
        user_id: str = "user-1",
        *,
        email: str = "ada@example.com",
        **job_fields,
    ) -> tuple[Job, User]:
        user = User(id=user_id, email=email, name="Ada")
        job = Job(
            id=job_id,
            user_id=user_id,
            title=job_fields.pop("title", "Data Analyst"),
            company=job_fields.pop("company", "Northwind Capital"),
            industry=job_fields.pop("industry", "Finance"),
            company_size=job_fields.pop("company_size", "51-200"),
            **job_fields,
        )
        db.upsert_user(user)
        db.upsert_job(job)
        return job, user

    return _seed


@pytest.fixture()
def make_record(db):
    def _make(user_id: str = "user-1", job_id: str = "job-1", **fields) -> TimingRecord:
        return db.create_timing_record(TimingRecord(user_id=user_id, job_id=job_id, **fields))

    return _make
