"""Command line entry points: run the daemon, poll once, and query timing advice."""

from __future__ import annotations

import argparse
import json
import logging
import os
import socket
import sys
import threading
import time
import uuid
from contextlib import suppress
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Final, Optional, Sequence

from .app import CadenceDaemon
from .config import AppConfig, ConfigError, load_config
from .db import DatabaseManager
from .exceptions import CadenceError
from .logging_utils import configure_logging, log_event
from .models import JobData, UserData
from .services.advisor import classify
from .services.history import HistoricalAnalyzer
from .services.recommendation import RecommendationEngine
from .services.timing import TimingService

LOGGER = logging.getLogger(__name__)
_RUN_GUARD: Final[threading.Lock] = threading.Lock()
_IS_RUNNING = False

CommandHandler = Callable[[argparse.Namespace, AppConfig], int]


@dataclass(frozen=True, slots=True)
class RunContext:
    """Captures immutable metadata for a single daemon invocation."""

    trace_id: str
    instance_id: str
    wall_clock_ns: int
    monotonic_ns: int

    @property
    def started_at_iso(self) -> str:
        seconds = self.wall_clock_ns / 1_000_000_000
        return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def _build_run_context() -> RunContext:
    return RunContext(
        trace_id=os.getenv("CADENCE_TRACE_ID") or uuid.uuid4().hex,
        instance_id=os.getenv("CADENCE_INSTANCE_ID") or socket.gethostname(),
        wall_clock_ns=time.time_ns(),
        monotonic_ns=time.perf_counter_ns(),
    )


def _log_event(level: int, event: str, context: RunContext, **fields: Any) -> None:
    """Structured event stamped with the run's trace metadata."""
    log_event(
        LOGGER,
        level,
        event,
        trace_id=context.trace_id,
        instance_id=context.instance_id,
        started_at=context.started_at_iso,
        **fields,
    )


def _emit_metric(name: str, value: float, unit: str, context: RunContext, **labels: Any) -> None:
    _log_event(logging.INFO, "metric", context, metric_name=name, value=value, unit=unit, **labels)


def _acquire_run_guard() -> bool:
    """Refuse a second daemon in the same process."""
    global _IS_RUNNING
    with _RUN_GUARD:
        if _IS_RUNNING:
            return False
        _IS_RUNNING = True
        return True


def _release_run_guard() -> None:
    global _IS_RUNNING
    with _RUN_GUARD:
        _IS_RUNNING = False


def _emit(payload: Any) -> None:
    print(json.dumps(payload, default=str, indent=2))


# ---------------------------------------------------------------------- #
# Commands
# ---------------------------------------------------------------------- #


def cmd_run(args: argparse.Namespace, config: AppConfig) -> int:
    """Bootstrap the daemon and block until a signal stops it."""
    context = _build_run_context()
    if not _acquire_run_guard():
        _log_event(logging.INFO, "cadence.already_running", context, detail="duplicate_run_invocation")
        return 1

    daemon: CadenceDaemon | None = None
    bootstrap_start_ns = time.perf_counter_ns()
    try:
        _log_event(logging.INFO, "cadence.bootstrap_start", context)
        daemon = CadenceDaemon(config, configure_logs=False)
        bootstrap_ms = (time.perf_counter_ns() - bootstrap_start_ns) / 1_000_000
        _emit_metric("bootstrap_duration_ms", bootstrap_ms, "milliseconds", context)

        run_start_ns = time.perf_counter_ns()
        daemon.start()
        runtime_ms = (time.perf_counter_ns() - run_start_ns) / 1_000_000
        _emit_metric("run_duration_ms", runtime_ms, "milliseconds", context)
        _log_event(logging.INFO, "cadence.run_completed", context, duration_ms=round(runtime_ms, 2))
    except KeyboardInterrupt:
        if daemon is not None:
            with suppress(Exception):
                daemon.stop()
        _log_event(logging.WARNING, "cadence.interrupted", context, signal="SIGINT")
    except Exception as exc:
        if daemon is not None:
            with suppress(Exception):
                daemon.stop()
        error_fields = {"error_type": type(exc).__name__, "error_message": str(exc)}
        _emit_metric("run_failure", 1.0, "count", context, **error_fields)
        _log_event(logging.CRITICAL, "cadence.run_failed", context, **error_fields)
        raise
    finally:
        _release_run_guard()
    return 0


def cmd_poll_once(args: argparse.Namespace, config: AppConfig) -> int:
    daemon = CadenceDaemon(config, configure_logs=False)
    try:
        summary = daemon.poll_once()
    finally:
        daemon.db.close()
    _emit(summary.as_dict())
    return 0 if not summary.errors else 1


def _adhoc_inputs(args: argparse.Namespace, config: AppConfig) -> tuple[JobData, UserData]:
    job = JobData(
        industry=args.industry or "default",
        company_size=args.company_size or "default",
        timezone=(args.job_timezone or config.default_timezone).upper(),
        is_remote=args.remote,
    )
    user = UserData(user_id=args.user_id, user_timezone=(args.user_timezone or config.default_timezone).upper())
    return job, user


def cmd_recommend(args: argparse.Namespace, config: AppConfig) -> int:
    db = DatabaseManager(config)
    try:
        if args.job_id:
            service = TimingService(db, default_timezone=config.default_timezone)
            recommendation = service.compute_recommendation(args.user_id, args.job_id, args.user_timezone)
        else:
            job, user = _adhoc_inputs(args, config)
            recommendation = RecommendationEngine(HistoricalAnalyzer(db)).generate(job, user)
    finally:
        db.close()
    _emit(recommendation.model_dump(mode="json"))
    return 0


def cmd_advise(args: argparse.Namespace, config: AppConfig) -> int:
    db = DatabaseManager(config)
    try:
        if args.job_id:
            service = TimingService(db, default_timezone=config.default_timezone)
            advisory = service.compute_realtime_advisory(args.user_id, args.job_id, args.user_timezone)
        else:
            job, user = _adhoc_inputs(args, config)
            engine = RecommendationEngine(HistoricalAnalyzer(db))
            advisory = classify(engine.generate(job, user), engine.clock())
    finally:
        db.close()
    _emit(advisory.model_dump(mode="json"))
    return 0


def cmd_schedule(args: argparse.Namespace, config: AppConfig) -> int:
    db = DatabaseManager(config)
    try:
        service = TimingService(db, default_timezone=config.default_timezone)
        record = service.ensure_record(args.user_id, args.job_id)
        record = service.schedule_submission(record, args.at, auto_submit=args.auto_submit)
    finally:
        db.close()
    _emit(record.scheduled_submission.model_dump(mode="json"))
    return 0


def cmd_cancel(args: argparse.Namespace, config: AppConfig) -> int:
    db = DatabaseManager(config)
    try:
        service = TimingService(db, default_timezone=config.default_timezone)
        record = service.cancel_scheduled_submission(service.get_record(args.user_id, args.job_id), args.reason)
    finally:
        db.close()
    _emit(record.scheduled_submission.model_dump(mode="json"))
    return 0


def cmd_scheduled(args: argparse.Namespace, config: AppConfig) -> int:
    db = DatabaseManager(config)
    try:
        _emit(TimingService(db).list_scheduled_submissions(args.user_id))
    finally:
        db.close()
    return 0


def cmd_metrics(args: argparse.Namespace, config: AppConfig) -> int:
    db = DatabaseManager(config)
    try:
        service = TimingService(db)
        if args.job_id:
            payload: Any = service.get_timing_metrics(args.user_id, args.job_id)
        else:
            payload = {
                "ab_test_results": service.ab_test_results(args.user_id),
                "correlations": service.correlations(args.user_id),
            }
    finally:
        db.close()
    _emit(payload)
    return 0


def cmd_stats(args: argparse.Namespace, config: AppConfig) -> int:
    db = DatabaseManager(config)
    try:
        _emit(TimingService(db).get_timing_stats(args.industry, args.company_size))
    finally:
        db.close()
    return 0


# ---------------------------------------------------------------------- #
# Parser
# ---------------------------------------------------------------------- #


def _add_target_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--user-id", help="Owner of the job")
    parser.add_argument("--job-id", help="Saved job to evaluate; omit to use the ad-hoc flags below")
    parser.add_argument("--user-timezone", help="User's zone abbreviation, e.g. PST")
    parser.add_argument("--industry")
    parser.add_argument("--company-size")
    parser.add_argument("--job-timezone")
    parser.add_argument("--remote", action="store_true", help="Treat the job as remote")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cadence", description="Application timing optimizer and submission daemon")
    parser.add_argument("--env-file", type=Path, help="Path to a .env file")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run the scheduled submission daemon").set_defaults(handler=cmd_run)
    sub.add_parser("poll-once", help="Process due scheduled submissions once").set_defaults(handler=cmd_poll_once)

    recommend = sub.add_parser("recommend", help="Compute the best submission time")
    _add_target_arguments(recommend)
    recommend.set_defaults(handler=cmd_recommend)

    advise = sub.add_parser("advise", help="Should I submit now, wait, or schedule?")
    _add_target_arguments(advise)
    advise.set_defaults(handler=cmd_advise)

    schedule = sub.add_parser("schedule", help="Schedule a submission or reminder")
    schedule.add_argument("--user-id", required=True)
    schedule.add_argument("--job-id", required=True)
    schedule.add_argument("--at", required=True, help="ISO-8601 time, e.g. 2026-10-20T09:00:00-04:00")
    schedule.add_argument("--auto-submit", action="store_true")
    schedule.set_defaults(handler=cmd_schedule)

    cancel = sub.add_parser("cancel", help="Cancel a pending scheduled submission")
    cancel.add_argument("--user-id", required=True)
    cancel.add_argument("--job-id", required=True)
    cancel.add_argument("--reason", default="User cancelled")
    cancel.set_defaults(handler=cmd_cancel)

    scheduled = sub.add_parser("scheduled", help="List a user's pending scheduled submissions")
    scheduled.add_argument("--user-id", required=True)
    scheduled.set_defaults(handler=cmd_scheduled)

    metrics = sub.add_parser("metrics", help="Timing metrics for a job, or A/B and correlations for a user")
    metrics.add_argument("--user-id", required=True)
    metrics.add_argument("--job-id")
    metrics.set_defaults(handler=cmd_metrics)

    stats = sub.add_parser("stats", help="Aggregate stats by industry and/or company size")
    stats.add_argument("--industry")
    stats.add_argument("--company-size")
    stats.set_defaults(handler=cmd_stats)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command in ("recommend", "advise") and args.job_id and not args.user_id:
        parser.error("--job-id requires --user-id")

    try:
        config = load_config(args.env_file)
    except ConfigError as exc:
        print(json.dumps({"error": "config", "message": str(exc)}), file=sys.stderr)
        return 2
    configure_logging(config)

    handler: CommandHandler = args.handler
    try:
        return handler(args, config)
    except CadenceError as exc:
        LOGGER.error("%s failed: %s", args.command, exc)
        print(json.dumps({"error": type(exc).__name__, "message": str(exc)}), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
