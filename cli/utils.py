"""Shared utilities for CLI commands."""

import sys
import traceback
from typing import Optional

import click

from config import RunConfig
from s3_archiver.ciphers import get_cipher
from s3_archiver.codecs import get_compressor
from s3_archiver.dry_run import DryRunReporter
from s3_archiver.notifier import EmailNotifier, Notifier
from s3_archiver.pipeline import FolderPipeline
from s3_archiver.run import ArchivalRun
from s3_archiver.uploader import S3Uploader


def create_notifier(config: RunConfig) -> Optional[Notifier]:
    """Email notifier for the configured recipient, or None when disabled."""
    notification = config.notification
    if not notification.enabled:
        return None
    return EmailNotifier(
        recipient=notification.recipient,
        gpg_key=notification.gpg_key,
        smtp=notification.smtp.settings(),
        timeout=config.timeout_seconds,
    )


def create_pipeline(config: RunConfig, show_progress: bool = True) -> FolderPipeline:
    """Wire codec, cipher and uploader for a run."""
    uploader = S3Uploader(
        bucket=config.bucket_name,
        profile=config.profile,
        storage_class=config.storage_class,
        region=config.region,
        show_progress=show_progress,
        timeout=config.timeout_seconds,
    )
    return FolderPipeline(
        staging_root=config.output_dir,
        compressor=get_compressor(config.compression, timeout=config.timeout_seconds),
        cipher=get_cipher(
            config.encryption,
            key_id=config.gpg_key,
            passphrase=config.passphrase,
            timeout=config.timeout_seconds,
        ),
        uploader=uploader,
        key_prefix=config.key_prefix,
    )


def create_archival_run(config: RunConfig, show_progress: bool = True) -> ArchivalRun:
    return ArchivalRun(
        base_dir=config.base_dir,
        pipeline=create_pipeline(config, show_progress),
        abort_on_failure=config.abort_on_failure,
        workers=config.workers,
        notifier=create_notifier(config),
        notify_on=config.notification.notify_on,
        remove_staging_root=config.remove_output_dir,
    )


def create_dry_run(config: RunConfig) -> DryRunReporter:
    return DryRunReporter(
        base_dir=config.base_dir,
        notifier=create_notifier(config),
        notify_on=config.notification.notify_on,
    )


def handle_error(error: Exception, verbose: bool = False):
    """Print an error and exit with status 1.

    Args:
        error: Exception to handle
        verbose: Whether to show full traceback
    """
    click.echo(f"Error: {error}", err=True)
    if verbose:
        click.echo(traceback.format_exc(), err=True)
    sys.exit(1)


def format_time(seconds: float) -> str:
    """Format seconds as human-readable duration.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (e.g., "2h 30m 45s")
    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m {secs}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        secs = int(seconds % 60)
        return f"{hours}h {minutes}m {secs}s"
