"""Dry run - count what an archival run would do without doing it."""

import logging
from pathlib import Path
from typing import Optional

from .discovery import discover_folders
from .models import DryRunReport, NotifyOn, RunStatus
from .notifier import Notifier, NotificationError, compose_dry_run_report, should_notify

logger = logging.getLogger(__name__)


class DryRunReporter:
    """Walk the tree and count folders and folders that would be archived.

    Never writes to disk and never touches the network, except for the
    optional notification.
    """

    def __init__(self, base_dir: Path, notifier: Optional[Notifier] = None,
                 notify_on: NotifyOn = NotifyOn.ALWAYS):
        self.base_dir = Path(base_dir)
        self.notifier = notifier
        self.notify_on = NotifyOn(notify_on)

    def count(self) -> DryRunReport:
        counts = DryRunReport()
        for task in discover_folders(self.base_dir):
            counts.folders += 1
            if not task.is_empty:
                counts.archives += 1
                logger.debug(f"Would archive {len(task.files)} file(s) from {task.path}")
        logger.info(f"Dry run: {counts.folders} folder(s), {counts.archives} archive(s)")

        if self.notifier is not None and should_notify(self.notify_on, RunStatus.SUCCESS):
            try:
                self.notifier.notify(
                    f"S3 archive dry run: {self.base_dir}",
                    compose_dry_run_report(counts, self.base_dir),
                )
            except NotificationError as e:
                logger.error(f"Failed to send notification: {e}")
        return counts
