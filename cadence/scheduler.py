"""Interval ticker around APScheduler with run bookkeeping and health snapshots."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import STATE_RUNNING
from apscheduler.triggers.interval import IntervalTrigger

from .config import AppConfig
from .db import DatabaseManager

logger = logging.getLogger(__name__)

TickCallable = Callable[[], Any]


@dataclass(frozen=True, slots=True)
class SchedulerSnapshot:
    total_jobs: int
    running: bool
    next_runs: dict[str, str | None]


class SchedulerManager:
    """Background ticker; a tick never overlaps itself and missed ticks coalesce."""

    def __init__(self, config: AppConfig, db: DatabaseManager) -> None:
        self.config = config
        self.db = db
        self.scheduler = BackgroundScheduler(
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": config.misfire_grace_seconds,
            }
        )

    @property
    def running(self) -> bool:
        return self.scheduler.state == STATE_RUNNING

    def start(self) -> None:
        if self.running:
            logger.info("Scheduler already running; start ignored.")
            return
        self.scheduler.start()
        logger.info("Ticker started with %d job(s)", len(self.scheduler.get_jobs()))
        self.publish_health()

    def shutdown(self, wait: bool = True) -> None:
        """Stop ticking; with ``wait`` an in-flight tick runs to completion first."""
        if not self.running:
            return
        self.scheduler.shutdown(wait=wait)
        logger.info("Ticker stopped.")
        self.publish_health()

    def add_interval_job(
        self,
        func: TickCallable,
        *,
        id: str,
        minutes: int,
        run_immediately: bool = False,
    ) -> None:
        """Tick ``func`` every ``minutes``; ``run_immediately`` fires the first tick at start."""
        options: dict[str, Any] = {"id": id, "replace_existing": True, "max_instances": 1}
        if run_immediately:
            options["next_run_time"] = datetime.now(self.scheduler.timezone)
        self.scheduler.add_job(self._tracked, IntervalTrigger(minutes=minutes), args=(id, func), **options)
        logger.info("Registered job %s every %d minute(s)", id, minutes)

    def _tracked(self, job_id: str, func: TickCallable) -> None:
        """Run one tick and record its outcome in ``job_runs`` and ``health_checks``."""
        started_at = datetime.now(timezone.utc)
        started = time.perf_counter()
        error: str | None = None
        try:
            func()
        except Exception as exc:
            logger.exception("Job %s failed", job_id)
            error = str(exc) or type(exc).__name__
        duration_ms = (time.perf_counter() - started) * 1000

        self.db.record_job_run(
            job_id=job_id,
            status="failure" if error else "success",
            started_at=started_at,
            duration_ms=duration_ms,
            error=error,
        )
        self.db.record_health(
            component=f"job:{job_id}",
            status="fail" if error else "pass",
            detail=error or f"{duration_ms:.2f}ms",
        )
        logger.debug("Job %s finished in %.2fms", job_id, duration_ms)

    def run_job_now(self, job_id: str) -> None:
        """Execute a registered job synchronously on the calling thread."""
        job = self.scheduler.get_job(job_id)
        if job is None:
            raise KeyError(job_id)
        job.func(*job.args, **job.kwargs)

    def snapshot(self) -> SchedulerSnapshot:
        next_runs: dict[str, str | None] = {}
        jobs = self.scheduler.get_jobs()
        for job in jobs:
            # Jobs added before start() have no next_run_time attribute yet.
            next_run = getattr(job, "next_run_time", None)
            next_runs[job.id] = next_run.isoformat() if next_run else None
        return SchedulerSnapshot(total_jobs=len(jobs), running=self.running, next_runs=next_runs)

    def publish_health(self) -> None:
        """Persist the ticker's state to ``health_checks``."""
        snapshot = self.snapshot()
        detail = json.dumps({"next_runs": snapshot.next_runs}) if snapshot.next_runs else None
        self.db.record_health(component="scheduler", status="pass" if snapshot.running else "fail", detail=detail)
