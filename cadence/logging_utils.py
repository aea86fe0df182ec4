"""Structured logging: console for humans, rotating JSON lines for machines."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.handlers import TimedRotatingFileHandler
from typing import Any, Optional

from .config import AppConfig

_CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"
_NOISY_LOGGERS = ("apscheduler.executors.default", "apscheduler.scheduler")
_RESERVED = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    """Log ``event`` as a compact JSON message; ``fields`` also land as JSON keys in the file log."""
    payload = {"event": event, **fields}
    logger.log(
        level,
        json.dumps(payload, default=str, separators=(",", ":")),
        extra={"event": event, "fields": fields},
    )


class JsonFormatter(logging.Formatter):
    """Renders each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "event": getattr(record, "event", record.funcName),
            "environment": getattr(record, "environment", "unknown"),
            "message": record.getMessage(),
        }
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            payload.update(fields)
        for key, value in record.__dict__.items():
            if key not in _RESERVED and key not in payload and key not in ("fields",):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ContextFilter(logging.Filter):
    def __init__(self, environment: str) -> None:
        super().__init__()
        self._environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        record.environment = self._environment
        if not hasattr(record, "event"):
            record.event = record.funcName
        return True


def configure_logging(config: AppConfig, *, console: bool = True, level: Optional[int] = None) -> None:
    """Replace root handlers with a console stream and a midnight-rotated JSON file."""
    root = logging.getLogger()
    if level is None:
        level = logging.DEBUG if config.environment == "development" else logging.INFO
    root.setLevel(level)

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    context_filter = ContextFilter(config.environment)
    handlers: list[logging.Handler] = []
    if console:
        stream = logging.StreamHandler()
        stream.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handlers.append(stream)

    config.log_path.parent.mkdir(parents=True, exist_ok=True)
    rotating = TimedRotatingFileHandler(
        filename=str(config.log_path),
        when="midnight",
        backupCount=14,
        utc=True,
        encoding="utf-8",
    )
    rotating.setFormatter(JsonFormatter())
    handlers.append(rotating)

    for handler in handlers:
        handler.addFilter(context_filter)
        root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
