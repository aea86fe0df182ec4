"""SQLite persistence for timing records, tracker collaborators, and health tracking."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Literal, Optional

from .config import AppConfig
from .exceptions import PersistenceError, StateConflictError
from .models import Job, TimingRecord, User
from .utils.dates import to_utc_iso

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS timing_records (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    job_id TEXT NOT NULL,
    industry TEXT NOT NULL DEFAULT '',
    company_size TEXT NOT NULL DEFAULT '',
    location TEXT NOT NULL DEFAULT '',
    timezone TEXT NOT NULL DEFAULT '',
    is_remote INTEGER NOT NULL DEFAULT 0,
    ab_test_group TEXT NOT NULL DEFAULT 'user_choice',
    current_recommendation TEXT,
    last_calculated TEXT,
    schedule_status TEXT,
    scheduled_time TEXT,
    scheduled_submission TEXT,
    submission_history TEXT NOT NULL DEFAULT '[]',
    metrics TEXT NOT NULL DEFAULT '{}',
    version INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE(user_id, job_id)
);
CREATE INDEX IF NOT EXISTS idx_timing_schedule ON timing_records(schedule_status, scheduled_time);
CREATE INDEX IF NOT EXISTS idx_timing_industry ON timing_records(industry, company_size);
CREATE INDEX IF NOT EXISTS idx_timing_user ON timing_records(user_id);

CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    status TEXT NOT NULL,
    application_date TEXT,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL DEFAULT '',
    name TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS schedule_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp TEXT NOT NULL,
    record_id INTEGER NOT NULL,
    event TEXT NOT NULL,
    detail TEXT
);
CREATE INDEX IF NOT EXISTS idx_schedule_events_record ON schedule_events(record_id);

CREATE TABLE IF NOT EXISTS job_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id TEXT NOT NULL,
    status TEXT NOT NULL,
    started_at TEXT NOT NULL,
    duration_ms REAL NOT NULL,
    error TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_job_runs_job_id ON job_runs(job_id);
CREATE TABLE IF NOT EXISTS health_checks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    component TEXT NOT NULL,
    status TEXT NOT NULL,
    detail TEXT,
    observed_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_health_component ON health_checks(component);
"""

_RECORD_COLUMNS = (
    "user_id, job_id, industry, company_size, location, timezone, is_remote, ab_test_group, "
    "current_recommendation, last_calculated, schedule_status, scheduled_time, "
    "scheduled_submission, submission_history, metrics"
)


class DatabaseManager:
    """Thread-safe SQLite manager for timing records and their collaborators."""

    def __init__(self, config: AppConfig) -> None:
        self.path = Path(config.database_path)
        self._local = threading.local()
        self._init_schema_once()

    # ------------------------------------------------------------------ #
    # Connection handling
    # ------------------------------------------------------------------ #

    def _get_conn(self) -> sqlite3.Connection:
        """Return a per-thread connection to the database."""
        if not hasattr(self._local, "conn"):
            conn = sqlite3.connect(self.path, check_same_thread=False, isolation_level=None, timeout=30)
            conn.row_factory = sqlite3.Row
            self._local.conn = conn
            logger.debug("Opened thread-local DB connection at %s", self.path)
        return self._local.conn

    def _init_schema_once(self) -> None:
        """Ensure the schema exists once at startup."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(SCHEMA)
        conn.commit()
        conn.close()
        logger.debug("Database schema ensured at %s", self.path)

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    @contextmanager
    def cursor(self) -> Iterator[sqlite3.Cursor]:
        """Provide a safe transactional cursor."""
        conn = self._get_conn()
        cur = conn.cursor()
        try:
            yield cur
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            logger.exception("Database operation failed; rolled back transaction.")
            raise PersistenceError(str(exc)) from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            cur.close()

    # ------------------------------------------------------------------ #
    # Timing records
    # ------------------------------------------------------------------ #

    def get_timing_record(self, user_id: str, job_id: str) -> Optional[TimingRecord]:
        with self.cursor() as cur:
            cur.execute("SELECT * FROM timing_records WHERE user_id = ? AND job_id = ?", (user_id, job_id))
            row = cur.fetchone()
        return self._row_to_record(row) if row else None

    def get_timing_record_by_id(self, record_id: int) -> Optional[TimingRecord]:
        with self.cursor() as cur:
            cur.execute("SELECT * FROM timing_records WHERE id = ?", (record_id,))
            row = cur.fetchone()
        return self._row_to_record(row) if row else None

    def create_timing_record(self, record: TimingRecord) -> TimingRecord:
        """Insert ``record`` unless one exists for its (user, job); return the stored row."""
        with self.cursor() as cur:
            cur.execute(
                f"INSERT INTO timing_records({_RECORD_COLUMNS}) "
                "VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(user_id, job_id) DO NOTHING",
                self._record_values(record),
            )
            created = cur.rowcount == 1
        stored = self.get_timing_record(record.user_id, record.job_id)
        if stored is None:  # pragma: no cover - insert either succeeded or hit the unique key
            raise PersistenceError(f"Timing record for job {record.job_id} vanished after insert")
        if created:
            logger.info("Created timing record %s for user=%s job=%s", stored.id, stored.user_id, stored.job_id)
        return stored

    def save_timing_record(self, record: TimingRecord, *, expected_status: Optional[str] = None) -> TimingRecord:
        """Compare-and-set write of ``record``.

        The row must still carry ``record.version`` (and, when given,
        ``expected_status`` as its schedule status); otherwise another writer got
        there first and :class:`StateConflictError` is raised with nothing written.
        """
        with self.cursor() as cur:
            self._compare_and_set(cur, record, expected_status)
        return record.model_copy(update={"version": record.version + 1})

    def submit_scheduled(self, record: TimingRecord, job_id: str, applied_at: datetime) -> TimingRecord:
        """Commit an auto-submit: the record leaves ``scheduled`` and the job becomes ``Applied``.

        Both writes share one immediate transaction. A record that already left
        ``scheduled`` (or moved past ``record.version``) raises
        :class:`StateConflictError` and the job is left untouched.
        """
        with self.cursor() as cur:
            cur.execute("BEGIN IMMEDIATE")
            self._compare_and_set(cur, record, "scheduled")
            cur.execute(
                "UPDATE jobs SET status = 'Applied', application_date = ?, updated_at = datetime('now') "
                "WHERE id = ?",
                (applied_at.isoformat(), job_id),
            )
            if not cur.rowcount:
                raise PersistenceError(f"Job {job_id} disappeared before it could be marked applied")
        return record.model_copy(update={"version": record.version + 1})

    def _compare_and_set(self, cur: sqlite3.Cursor, record: TimingRecord, expected_status: Optional[str]) -> None:
        if record.id is None:
            raise PersistenceError("Cannot update a timing record that was never inserted")
        sql = (
            "UPDATE timing_records SET industry = ?, company_size = ?, location = ?, timezone = ?, "
            "is_remote = ?, ab_test_group = ?, current_recommendation = ?, last_calculated = ?, "
            "schedule_status = ?, scheduled_time = ?, scheduled_submission = ?, submission_history = ?, "
            "metrics = ?, version = version + 1, updated_at = datetime('now') "
            "WHERE id = ? AND version = ?"
        )
        params: list[Any] = list(self._record_values(record)[2:])
        params.extend([record.id, record.version])
        if expected_status is not None:
            sql += " AND schedule_status = ?"
            params.append(expected_status)
        cur.execute(sql, params)
        if not cur.rowcount:
            raise StateConflictError(
                f"Timing record {record.id} changed concurrently "
                f"(expected version={record.version}, status={expected_status})"
            )

    def find_due_scheduled(self, now: datetime) -> list[TimingRecord]:
        """Records whose schedule is still ``scheduled`` and due at or before ``now``."""
        with self.cursor() as cur:
            cur.execute(
                """
                SELECT * FROM timing_records
                WHERE schedule_status = 'scheduled' AND scheduled_time <= ?
                ORDER BY scheduled_time, id
                """,
                (to_utc_iso(now),),
            )
            rows = cur.fetchall()
        return [self._row_to_record(row) for row in rows]

    def find_scheduled_for_user(self, user_id: str) -> list[TimingRecord]:
        with self.cursor() as cur:
            cur.execute(
                "SELECT * FROM timing_records WHERE user_id = ? AND schedule_status = 'scheduled' "
                "ORDER BY scheduled_time, id",
                (user_id,),
            )
            rows = cur.fetchall()
        return [self._row_to_record(row) for row in rows]

    def find_by_user(self, user_id: str) -> list[TimingRecord]:
        return self._find_where("user_id = ?", (user_id,))

    def find_by_industry(self, industry: str) -> list[TimingRecord]:
        return self._find_where("industry = ?", (industry,))

    def find_by_company_size(self, company_size: str) -> list[TimingRecord]:
        return self._find_where("company_size = ?", (company_size,))

    def _find_where(self, clause: str, params: tuple[Any, ...]) -> list[TimingRecord]:
        with self.cursor() as cur:
            cur.execute(f"SELECT * FROM timing_records WHERE {clause} ORDER BY id", params)
            rows = cur.fetchall()
        return [self._row_to_record(row) for row in rows]

    # ------------------------------------------------------------------ #
    # Tracker collaborators
    # ------------------------------------------------------------------ #

    def upsert_job(self, job: Job) -> None:
        with self.cursor() as cur:
            cur.execute(
                """
                INSERT INTO jobs(id, user_id, payload, status, application_date)
                VALUES(?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    user_id = excluded.user_id,
                    payload = excluded.payload,
                    status = excluded.status,
                    application_date = excluded.application_date,
                    updated_at = datetime('now')
                """,
                (
                    job.id,
                    job.user_id,
                    job.model_dump_json(exclude={"status", "application_date"}),
                    job.status,
                    job.application_date.isoformat() if job.application_date else None,
                ),
            )

    def get_job(self, job_id: str, user_id: Optional[str] = None) -> Optional[Job]:
        with self.cursor() as cur:
            if user_id is None:
                cur.execute("SELECT * FROM jobs WHERE id = ?", (job_id,))
            else:
                cur.execute("SELECT * FROM jobs WHERE id = ? AND user_id = ?", (job_id, user_id))
            row = cur.fetchone()
        if row is None:
            return None
        payload = json.loads(row["payload"])
        payload.update(status=row["status"], application_date=row["application_date"])
        return Job.model_validate(payload)

    def upsert_user(self, user: User) -> None:
        with self.cursor() as cur:
            cur.execute(
                "INSERT INTO users(id, email, name) VALUES(?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET email = excluded.email, name = excluded.name",
                (user.id, user.email, user.name),
            )

    def get_user(self, user_id: str) -> Optional[User]:
        with self.cursor() as cur:
            cur.execute("SELECT id, email, name FROM users WHERE id = ?", (user_id,))
            row = cur.fetchone()
        return User(**dict(row)) if row else None

    # ------------------------------------------------------------------ #
    # Audit and health
    # ------------------------------------------------------------------ #

    def log_event(self, record_id: int, event: str, detail: Any | None = None) -> None:
        """Append a schedule lifecycle event for ``record_id``."""
        with self.cursor() as cur:
            cur.execute(
                "INSERT INTO schedule_events(timestamp, record_id, event, detail) "
                "VALUES(datetime('now'), ?, ?, ?)",
                (record_id, str(event), self._normalize_payload(detail)),
            )

    def schedule_events(self, record_id: int) -> list[dict[str, Any]]:
        with self.cursor() as cur:
            cur.execute(
                "SELECT event, detail, timestamp FROM schedule_events WHERE record_id = ? ORDER BY id",
                (record_id,),
            )
            return [dict(row) for row in cur.fetchall()]

    def record_job_run(
        self,
        *,
        job_id: str,
        status: Literal["success", "failure"],
        started_at: datetime,
        duration_ms: float,
        error: str | None = None,
    ) -> None:
        """Persist job execution metadata for analytics and health checks."""
        with self.cursor() as cur:
            cur.execute(
                """
                INSERT INTO job_runs(job_id, status, started_at, duration_ms, error)
                VALUES(?, ?, ?, ?, ?)
                """,
                (
                    job_id,
                    status,
                    started_at.astimezone(timezone.utc).isoformat().replace("+00:00", "Z"),
                    float(duration_ms),
                    error,
                ),
            )

    def record_health(
        self,
        *,
        component: str,
        status: Literal["pass", "warn", "fail"],
        detail: str | None = None,
    ) -> None:
        """Store health-check snapshots for external dashboards."""
        with self.cursor() as cur:
            cur.execute(
                "INSERT INTO health_checks(component, status, detail) VALUES(?, ?, ?)",
                (component, status, detail),
            )

    def latest_job_runs(self, job_id: str, limit: int = 10) -> list[dict[str, Any]]:
        with self.cursor() as cur:
            cur.execute(
                "SELECT status, started_at, duration_ms, error FROM job_runs WHERE job_id = ? "
                "ORDER BY id DESC LIMIT ?",
                (job_id, limit),
            )
            return [dict(row) for row in cur.fetchall()]

    def close(self) -> None:
        conn: Optional[sqlite3.Connection] = getattr(self._local, "conn", None)
        if conn:
            conn.close()
            del self._local.conn
            logger.debug("Thread-local database connection closed.")

    # ------------------------------------------------------------------ #
    # Utility
    # ------------------------------------------------------------------ #

    @staticmethod
    def _record_values(record: TimingRecord) -> tuple[Any, ...]:
        schedule = record.scheduled_submission
        return (
            record.user_id,
            record.job_id,
            record.industry,
            record.company_size,
            record.location,
            record.timezone,
            int(record.is_remote),
            record.ab_test_group,
            record.current_recommendation.model_dump_json() if record.current_recommendation else None,
            record.last_calculated.isoformat() if record.last_calculated else None,
            schedule.status if schedule else None,
            to_utc_iso(schedule.scheduled_time) if schedule else None,
            schedule.model_dump_json() if schedule else None,
            json.dumps([entry.model_dump(mode="json") for entry in record.submission_history]),
            record.metrics.model_dump_json(),
        )

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> TimingRecord:
        return TimingRecord.model_validate(
            {
                "id": row["id"],
                "version": row["version"],
                "user_id": row["user_id"],
                "job_id": row["job_id"],
                "industry": row["industry"],
                "company_size": row["company_size"],
                "location": row["location"],
                "timezone": row["timezone"],
                "is_remote": bool(row["is_remote"]),
                "ab_test_group": row["ab_test_group"],
                "current_recommendation": _load_json(row["current_recommendation"]),
                "last_calculated": row["last_calculated"],
                "scheduled_submission": _load_json(row["scheduled_submission"]),
                "submission_history": _load_json(row["submission_history"]) or [],
                "metrics": _load_json(row["metrics"]) or {},
            }
        )

    @staticmethod
    def _normalize_payload(payload: Any | None) -> str | None:
        if payload is None:
            return None
        if isinstance(payload, str):
            return payload
        try:
            return json.dumps(payload, default=str)
        except TypeError:
            return str(payload)


def _load_json(raw: str | None) -> Any:
    return json.loads(raw) if raw else None
