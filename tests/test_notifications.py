"""Tests for notification senders and message builders."""

from __future__ import annotations

import smtplib

import pytest
from tenacity import wait_none

from conftest import RecordingSender, at
from cadence.config import AppConfig
from cadence.models import Job, User
from cadence.services import notifications
from cadence.services.notifications import (
    LoggingNotificationSender,
    NotificationSender,
    SmtpNotificationSender,
    build_notification_sender,
    notify_safely,
    submission_confirmation,
    submission_reminder,
)


@pytest.fixture()
def smtp_config(tmp_path):
    return AppConfig(
        database_path=tmp_path / "cadence.db",
        log_path=tmp_path / "cadence.log",
        smtp_host="smtp.example.com",
        smtp_username="cadence-bot",
        smtp_password="s3cret",
        notification_from="cadence@example.com",
    )


class FakeSMTP:
    instances: list["FakeSMTP"] = []
    failures_left = 0

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.messages = []
        self.logged_in = None
        self.tls = False
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.tls = True

    def login(self, user, password):
        self.logged_in = (user, password)

    def send_message(self, message):
        if FakeSMTP.failures_left:
            FakeSMTP.failures_left -= 1
            raise smtplib.SMTPServerDisconnected("connection dropped")
        self.messages.append(message)


@pytest.fixture()
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.failures_left = 0
    monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)
    monkeypatch.setattr(SmtpNotificationSender._deliver.retry, "wait", wait_none())
    return FakeSMTP


def test_builder_picks_smtp_only_with_full_credentials(smtp_config, config):
    assert isinstance(build_notification_sender(smtp_config), SmtpNotificationSender)
    assert isinstance(build_notification_sender(config), LoggingNotificationSender)


def test_sender_address_defaults_to_username(smtp_config, fake_smtp):
    without_from = smtp_config.model_copy(update={"notification_from": None})
    assert without_from.has_notification_credentials is True

    sender = build_notification_sender(without_from)
    assert isinstance(sender, SmtpNotificationSender)
    assert sender.send("ada@example.com", "Hello", "Body") is True
    assert fake_smtp.instances[0].messages[0]["From"] == "cadence-bot"


def test_senders_satisfy_protocol(smtp_config):
    assert isinstance(SmtpNotificationSender(smtp_config), NotificationSender)
    assert isinstance(RecordingSender(), NotificationSender)


def test_smtp_sender_delivers_message(smtp_config, fake_smtp):
    assert SmtpNotificationSender(smtp_config).send("ada@example.com", "Hello", "Body") is True

    server = fake_smtp.instances[0]
    assert (server.host, server.port) == ("smtp.example.com", 587)
    assert server.tls is True
    assert server.logged_in == ("cadence-bot", "s3cret")
    message = server.messages[0]
    assert message["To"] == "ada@example.com"
    assert message["From"] == "cadence@example.com"
    assert message["Subject"] == "Hello"


def test_smtp_sender_retries_transient_failures(smtp_config, fake_smtp):
    fake_smtp.failures_left = 2
    assert SmtpNotificationSender(smtp_config).send("ada@example.com", "Hello", "Body") is True
    assert len(fake_smtp.instances) == 3


def test_smtp_sender_gives_up_after_three_attempts(smtp_config, fake_smtp):
    fake_smtp.failures_left = 10
    assert SmtpNotificationSender(smtp_config).send("ada@example.com", "Hello", "Body") is False
    assert len(fake_smtp.instances) == 3


def test_logging_sender_reports_not_sent():
    assert LoggingNotificationSender().send("ada@example.com", "s", "b") is False


def test_notify_safely_swallows_sender_errors():
    sender = RecordingSender(error=RuntimeError("boom"))
    assert notify_safely(sender, "ada@example.com", "s", "b") is False
    assert len(sender.sent) == 1


def test_notify_safely_skips_missing_recipient():
    sender = RecordingSender()
    assert notify_safely(sender, "", "s", "b") is False
    assert sender.sent == []


def test_message_builders():
    job = Job(id="j", user_id="u", title="Analyst", company="Contoso", application_url="https://jobs.example/1")
    user = User(id="u", email="ada@example.com", name="Ada")

    subject, body = submission_confirmation(job, user, at(2025, 10, 21, 9))
    assert subject == "Application submitted: Analyst at Contoso"
    assert body.startswith("Hi Ada,")
    assert "Tuesday at 9:00 AM" in body
    assert "https://jobs.example/1" in body

    subject, body = submission_reminder(job.model_copy(update={"company": ""}), User(id="u"), at(2025, 10, 22, 14))
    assert subject == "Reminder: time to apply for Analyst"
    assert body.startswith("Hi,")
    assert "Wednesday at 2:00 PM" in body
