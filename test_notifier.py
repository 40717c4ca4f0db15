"""Tests for notification policy and the encrypted email notifier."""

import subprocess
from pathlib import Path
from unittest import mock

import pytest

from s3_archiver.models import FolderResult, FolderState, FolderTask, RunReport
from s3_archiver.notifier import (
    EmailNotifier,
    NotificationError,
    SmtpSettings,
    compose_report,
    should_notify,
)

ARMORED = b"-----BEGIN PGP MESSAGE-----\nabc\n-----END PGP MESSAGE-----\n"


@pytest.mark.parametrize("policy,status,expected", [
    ("always", "success", True),
    ("always", "failure", True),
    ("success", "success", True),
    ("success", "failure", False),
    ("failure", "success", False),
    ("failure", "failure", True),
])
def test_should_notify(policy, status, expected):
    assert should_notify(policy, status) is expected


def test_should_notify_rejects_unknown_policy():
    with pytest.raises(ValueError):
        should_notify("sometimes", "success")


def test_compose_report_counts_and_lines():
    report = RunReport()
    task = FolderTask(path=Path("/data/a"), relative_path="a", files=[Path("/data/a/x")])
    report.log("Processing folder: /data/a")
    report.record(FolderResult(task=task, state=FolderState.CLEANED, artifact_size=2048))

    body = compose_report(report, Path("/data"))

    assert "Status: SUCCESS" in body
    assert "Base directory: /data" in body
    assert "Uploads succeeded: 1" in body
    assert "Uploaded: 2.00 KB" in body
    assert body.rstrip().endswith("Processing folder: /data/a")


def test_report_can_only_be_consumed_once():
    report = RunReport()
    report.consume()
    with pytest.raises(RuntimeError):
        report.consume()


@pytest.fixture
def notifier():
    return EmailNotifier(
        recipient="ops@example.com",
        gpg_key="ops@example.com",
        smtp=SmtpSettings(host="smtp.example.com", port=587, user="u", password="p"),
    )


def test_email_body_is_encrypted(notifier):
    gpg_result = subprocess.CompletedProcess(["gpg"], 0, ARMORED, b"")
    with mock.patch("s3_archiver.codecs.subprocess.run", return_value=gpg_result) as run, \
            mock.patch("s3_archiver.notifier.smtplib.SMTP") as smtp_cls:
        notifier.notify("subject", "secret folder names")

    assert run.call_args.kwargs["input"] == b"secret folder names"
    server = smtp_cls.return_value
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("u", "p")
    from_addr, to_addrs, message = server.sendmail.call_args[0]
    assert to_addrs == ["ops@example.com"]
    assert "BEGIN PGP MESSAGE" in message
    assert "secret folder names" not in message
    server.quit.assert_called_once()


def test_nothing_sent_when_encryption_fails(notifier):
    gpg_result = subprocess.CompletedProcess(["gpg"], 2, b"", b"public key not found")
    with mock.patch("s3_archiver.codecs.subprocess.run", return_value=gpg_result), \
            mock.patch("s3_archiver.notifier.smtplib.SMTP") as smtp_cls:
        with pytest.raises(NotificationError, match="public key not found"):
            notifier.notify("subject", "body")

    smtp_cls.assert_not_called()


def test_missing_smtp_configuration():
    notifier = EmailNotifier("ops@example.com", "ops@example.com", smtp=None)
    with pytest.raises(NotificationError, match="SMTP"):
        notifier.notify("subject", "body")


def test_smtp_settings_from_env(monkeypatch):
    monkeypatch.setenv("SMTP_HOST", "mail.example.com")
    monkeypatch.setenv("SMTP_PORT", "2525")
    monkeypatch.setenv("SMTP_USE_TLS", "false")
    settings = SmtpSettings.from_env()
    assert settings.host == "mail.example.com"
    assert settings.port == 2525
    assert settings.use_tls is False


def test_smtp_settings_from_env_unset(monkeypatch):
    monkeypatch.delenv("SMTP_HOST", raising=False)
    assert SmtpSettings.from_env() is None
