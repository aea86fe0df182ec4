"""Top-level controller for the scheduled submission daemon."""

from __future__ import annotations

import logging
import signal
import threading
from dataclasses import dataclass
from types import FrameType
from typing import Any, Final, Optional

from .config import AppConfig, load_config
from .db import DatabaseManager
from .logging_utils import configure_logging, log_event
from .scheduler import SchedulerManager
from .services.notifications import NotificationSender, build_notification_sender
from .services.submissions import PollSummary, SubmissionPoller
from .services.timing import TimingService
from .utils.dates import Clock, local_now

logger = logging.getLogger(__name__)

POLL_JOB_ID: Final[str] = "scheduled_submissions"


@dataclass(frozen=True, slots=True)
class JobSpec:
    """Describes the poll job and the config field holding its cadence."""

    job_id: str
    minutes_field: str

    def interval_minutes(self, config: AppConfig) -> int:
        return int(getattr(config, self.minutes_field))


POLL_JOB: Final[JobSpec] = JobSpec(POLL_JOB_ID, "poll_interval_minutes")


class CadenceDaemon:
    """Owns the database, poller, and ticker; blocks in ``start`` until stopped."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        notifier: Optional[NotificationSender] = None,
        clock: Clock = local_now,
        configure_logs: bool = True,
    ) -> None:
        self.config = config or load_config()
        if configure_logs:
            configure_logging(self.config)
        self.db = DatabaseManager(self.config)
        self.notifier = notifier or build_notification_sender(self.config)
        self.poller = SubmissionPoller(
            self.db,
            self.notifier,
            clock=clock,
            max_workers=self.config.poll_workers,
        )
        self.timing = TimingService(self.db, clock=clock, default_timezone=self.config.default_timezone)
        self.scheduler = SchedulerManager(self.config, self.db)
        self._stop_event = threading.Event()
        self._lifecycle_lock = threading.Lock()
        self._is_running = False
        self._signals_installed = False
        self._configure_jobs()
        log_event(logger, logging.INFO, "cadence.initialized", environment=self.config.environment)

    def _configure_jobs(self) -> None:
        minutes = POLL_JOB.interval_minutes(self.config)
        try:
            self.scheduler.add_interval_job(
                self.poll_once,
                id=POLL_JOB.job_id,
                minutes=minutes,
                run_immediately=self.config.run_on_startup,
            )
        except Exception as exc:  # pragma: no cover - unexpected scheduler failure
            log_event(
                logger,
                logging.CRITICAL,
                "cadence.job_registration_failed",
                job_id=POLL_JOB.job_id,
                error=str(exc),
            )
            raise RuntimeError(f"Failed to register job {POLL_JOB.job_id}") from exc
        log_event(logger, logging.DEBUG, "cadence.job_registered", job_id=POLL_JOB.job_id, minutes=minutes)

    def poll_once(self) -> PollSummary:
        return self.poller.run_poll_once()

    def _install_signal_handlers(self) -> None:
        """Attach SIGTERM/SIGINT handlers when running on the main thread."""
        if self._signals_installed:
            return
        if threading.current_thread() is not threading.main_thread():
            log_event(logger, logging.WARNING, "cadence.signal_handlers_skipped", reason="not_main_thread")
            return

        signal.signal(signal.SIGTERM, self._handle_signal)
        signal.signal(signal.SIGINT, self._handle_signal)
        self._signals_installed = True
        log_event(logger, logging.INFO, "cadence.signal_handlers_installed")

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        log_event(logger, logging.WARNING, "cadence.signal_received", signal=signum)
        self.stop()

    @property
    def is_running(self) -> bool:
        with self._lifecycle_lock:
            return self._is_running

    def start(self) -> None:
        """Start ticking and block until :meth:`stop` is called."""
        if not self.config.scheduler_enabled:
            log_event(logger, logging.INFO, "cadence.start_ignored", reason="scheduler_disabled")
            return
        with self._lifecycle_lock:
            if self._is_running:
                log_event(logger, logging.INFO, "cadence.start_ignored", reason="already_running")
                return
            self._is_running = True
            self._stop_event.clear()

        self._install_signal_handlers()
        log_event(
            logger,
            logging.INFO,
            "cadence.starting",
            poll_interval_minutes=self.config.poll_interval_minutes,
            run_on_startup=self.config.run_on_startup,
        )

        try:
            self.scheduler.start()
            log_event(logger, logging.INFO, "cadence.started")
            self.db.record_health(component="daemon", status="pass", detail="scheduler_started")
            self._stop_event.wait()
        except Exception as exc:
            log_event(logger, logging.CRITICAL, "cadence.start_failed", error=str(exc))
            self.db.record_health(component="daemon", status="fail", detail=str(exc))
            raise
        finally:
            self._shutdown_resources()

    def _shutdown_resources(self) -> None:
        """Stop the ticker, letting an in-flight cycle finish, then close the database."""
        try:
            self.scheduler.shutdown(wait=True)
            log_event(logger, logging.INFO, "cadence.scheduler_shutdown")
        except Exception as exc:
            log_event(logger, logging.ERROR, "cadence.scheduler_shutdown_failed", error=str(exc))
        finally:
            with self._lifecycle_lock:
                self._is_running = False

        try:
            self.db.close()
            log_event(logger, logging.INFO, "cadence.database_closed")
        except Exception as exc:  # pragma: no cover - relies on db backend
            log_event(logger, logging.ERROR, "cadence.database_close_failed", error=str(exc))

        self._stop_event.clear()

    def stop(self) -> None:
        """Ask a running daemon to shut down."""
        with self._lifecycle_lock:
            if not self._is_running:
                log_event(logger, logging.INFO, "cadence.stop_ignored", reason="not_running")
                return
            if self._stop_event.is_set():
                log_event(logger, logging.DEBUG, "cadence.stop_redundant")
                return
            self._stop_event.set()
            log_event(logger, logging.WARNING, "cadence.stop_requested")
            self.db.record_health(component="daemon", status="warn", detail="stop_requested")

    def health_snapshot(self) -> dict[str, Any]:
        snapshot = self.scheduler.snapshot()
        return {
            "environment": self.config.environment,
            "scheduler_enabled": self.config.scheduler_enabled,
            "notifications_enabled": self.config.has_notification_credentials,
            "scheduler": {
                "total_jobs": snapshot.total_jobs,
                "running": snapshot.running,
                "next_runs": snapshot.next_runs,
            },
            "recent_runs": self.db.latest_job_runs(POLL_JOB.job_id, limit=5),
        }
