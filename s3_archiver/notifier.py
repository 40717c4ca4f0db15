"""Encrypted email notification of run outcomes.

The report body is always encrypted with gpg for the recipient's key before
it leaves the process; if encryption fails nothing is sent.
"""

import logging
import os
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime
from email.mime.text import MIMEText
from pathlib import Path
from typing import Optional

from .codecs import run_tool
from .utils import format_bytes
from .errors import ArchiverError, StageFailure
from .models import DryRunReport, FolderState, NotifyOn, RunReport, RunStatus

logger = logging.getLogger(__name__)


class NotificationError(ArchiverError):
    """The notification could not be encrypted or delivered."""


def should_notify(policy, status) -> bool:
    """Apply the notify-on policy to a final run status."""
    policy = NotifyOn(policy)
    status = RunStatus(status)
    if policy == NotifyOn.ALWAYS:
        return True
    if policy == NotifyOn.SUCCESS:
        return status == RunStatus.SUCCESS
    return status == RunStatus.FAILURE


def compose_report(report: RunReport, base_dir: Optional[Path] = None) -> str:
    """Plaintext body: summary counts followed by the per-folder log."""
    lines = [
        "S3 Archiver run report",
        f"Generated: {datetime.now().isoformat(timespec='seconds')}",
    ]
    if base_dir is not None:
        lines.append(f"Base directory: {base_dir}")
    uploaded_bytes = sum(r.artifact_size for r in report.results if r.state == FolderState.CLEANED)
    lines.extend([
        f"Status: {report.status.value.upper()}",
        "",
        f"Folders seen: {report.folders_seen}",
        f"Folders skipped (no files): {report.folders_skipped}",
        f"Archives created: {report.archives_created}",
        f"Uploads succeeded: {report.uploads_succeeded}",
        f"Uploads failed: {report.uploads_failed}",
        f"Uploaded: {format_bytes(uploaded_bytes)}",
    ])
    if report.aborted:
        lines.append("Run aborted early; remaining folders were not processed.")
    lines.extend(["", "Log:"])
    lines.extend(report.lines)
    return "\n".join(lines) + "\n"


def compose_dry_run_report(counts: DryRunReport, base_dir: Path) -> str:
    return (
        "S3 Archiver dry run\n"
        f"Base directory: {base_dir}\n"
        f"Folders found: {counts.folders}\n"
        f"Archives that would be created: {counts.archives}\n"
    )


@dataclass
class SmtpSettings:
    """Mail transport settings."""
    host: str
    port: int = 587
    user: str = ''
    password: str = ''
    from_addr: str = ''
    use_tls: bool = True
    use_ssl: bool = False

    @classmethod
    def from_env(cls) -> Optional['SmtpSettings']:
        """Read SMTP_* environment variables; None when SMTP_HOST is unset."""
        host = os.getenv("SMTP_HOST", "").strip()
        if not host:
            return None
        return cls(
            host=host,
            port=int(os.getenv("SMTP_PORT", "587")),
            user=os.getenv("SMTP_USER", "").strip(),
            password=os.getenv("SMTP_PASSWORD", "").strip(),
            from_addr=os.getenv("SMTP_FROM", "").strip(),
            use_tls=os.getenv("SMTP_USE_TLS", "true").lower() in ("true", "1", "yes"),
            use_ssl=os.getenv("SMTP_USE_SSL", "false").lower() in ("true", "1", "yes"),
        )


class Notifier:
    """Deliver a run summary."""

    def notify(self, subject: str, body: str):
        raise NotImplementedError


class EmailNotifier(Notifier):
    """gpg-encrypt the body for ``gpg_key`` and mail it to ``recipient``."""

    def __init__(self, recipient: str, gpg_key: str, smtp: Optional[SmtpSettings] = None,
                 gpg_binary: str = 'gpg', timeout: Optional[float] = None):
        self.recipient = recipient
        self.gpg_key = gpg_key
        self.smtp = smtp
        self.gpg_binary = gpg_binary
        self.timeout = timeout

    def encrypt_body(self, body: str) -> str:
        try:
            result = run_tool('notify', [
                self.gpg_binary, '--batch', '--yes', '--trust-model', 'always',
                '--armor', '--encrypt', '--recipient', self.gpg_key,
            ], None, timeout=self.timeout, input_bytes=body.encode('utf-8'))
        except StageFailure as e:
            raise NotificationError(f"Could not encrypt notification: {e.message}") from e
        return result.stdout.decode('ascii')

    def notify(self, subject: str, body: str):
        if self.smtp is None:
            raise NotificationError("SMTP is not configured (set SMTP_HOST)")

        encrypted = self.encrypt_body(body)

        msg = MIMEText(encrypted, "plain")
        msg["From"] = self.smtp.from_addr or self.smtp.user
        msg["To"] = self.recipient
        msg["Subject"] = subject

        try:
            context = ssl.create_default_context()
            if self.smtp.use_ssl:
                server = smtplib.SMTP_SSL(self.smtp.host, self.smtp.port, context=context)
            else:
                server = smtplib.SMTP(self.smtp.host, self.smtp.port)
            try:
                if not self.smtp.use_ssl and self.smtp.use_tls:
                    server.starttls(context=context)
                if self.smtp.user and self.smtp.password:
                    server.login(self.smtp.user, self.smtp.password)
                server.sendmail(msg["From"], [self.recipient], msg.as_string())
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Failed to send email to {self.recipient}: {e}") from e

        logger.info(f"Notification sent to {self.recipient}")
