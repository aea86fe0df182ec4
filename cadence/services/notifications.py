"""Email notifications for scheduled submissions and reminders."""

from __future__ import annotations

import logging
import smtplib
from datetime import datetime
from email.message import EmailMessage
from typing import Protocol, runtime_checkable

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import AppConfig
from ..exceptions import TransientExternalError
from ..models import Job, User
from ..utils.dates import day_name, format_clock_time
from ..utils.secrets import redact_email, secret_value

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationSender(Protocol):
    """Single-method capability injected into the daemon."""

    def send(self, to: str, subject: str, body: str) -> bool: ...


class LoggingNotificationSender:
    """Used when SMTP credentials are absent; records intent without sending."""

    def send(self, to: str, subject: str, body: str) -> bool:
        logger.info("Notification not sent (no credentials configured): to=%s subject=%r", redact_email(to), subject)
        return False


class SmtpNotificationSender:
    """Sends plain-text email through an SMTP relay."""

    def __init__(self, config: AppConfig) -> None:
        self.host = config.smtp_host or ""
        self.port = config.smtp_port
        self.username = config.smtp_username or ""
        self.password = secret_value(config.smtp_password) or ""
        self.use_tls = config.smtp_use_tls
        self.timeout = config.smtp_timeout_seconds
        self.sender = config.notification_from or self.username

    def send(self, to: str, subject: str, body: str) -> bool:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        try:
            self._deliver(message)
        except TransientExternalError as exc:
            logger.error("Email to %s failed after retries: %s", redact_email(to), exc)
            return False
        logger.info("Email sent to %s: %r", redact_email(to), subject)
        return True

    @retry(
        retry=retry_if_exception_type(TransientExternalError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=2, max=30),
        reraise=True,
    )
    def _deliver(self, message: EmailMessage) -> None:
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                server.login(self.username, self.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise TransientExternalError(str(exc)) from exc


def build_notification_sender(config: AppConfig) -> NotificationSender:
    if config.has_notification_credentials:
        return SmtpNotificationSender(config)
    logger.warning("SMTP credentials incomplete; notifications disabled.")
    return LoggingNotificationSender()


def notify_safely(sender: NotificationSender, to: str, subject: str, body: str) -> bool:
    """Best-effort send; failures are logged and reported as ``False``."""
    if not to:
        logger.warning("Skipping notification %r: recipient has no email address", subject)
        return False
    try:
        return bool(sender.send(to, subject, body))
    except Exception:
        logger.exception("Notification %r to %s raised", subject, redact_email(to))
        return False


def _greeting(user: User) -> str:
    return f"Hi {user.name}," if user.name else "Hi,"


def _job_label(job: Job) -> str:
    if job.title and job.company:
        return f"{job.title} at {job.company}"
    return job.title or job.company or "your saved job"


def submission_confirmation(job: Job, user: User, submitted_at: datetime) -> tuple[str, str]:
    """Subject and body confirming an automatic submission."""
    subject = f"Application submitted: {_job_label(job)}"
    lines = [
        _greeting(user),
        "",
        f"Your scheduled application for {_job_label(job)} was marked as submitted on "
        f"{day_name(submitted_at)} at {format_clock_time(submitted_at)}.",
    ]
    if job.application_url:
        lines += ["", f"Application link: {job.application_url}"]
    return subject, "\n".join(lines)


def submission_reminder(job: Job, user: User, scheduled_time: datetime) -> tuple[str, str]:
    """Subject and body reminding the user to submit manually."""
    subject = f"Reminder: time to apply for {_job_label(job)}"
    lines = [
        _greeting(user),
        "",
        f"You planned to apply for {_job_label(job)} on {day_name(scheduled_time)} at "
        f"{format_clock_time(scheduled_time)}. Now is the time to submit your application.",
    ]
    if job.application_url:
        lines += ["", f"Apply here: {job.application_url}"]
    return subject, "\n".join(lines)
