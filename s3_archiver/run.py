"""Archival run - drive the folder pipeline across a directory tree."""

import logging
import os
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Iterable, Optional

from .discovery import discover_folders
from .errors import ArchiverError
from .models import FolderResult, FolderState, FolderTask, NotifyOn, RunReport
from .notifier import Notifier, NotificationError, compose_report, should_notify
from .pipeline import FolderPipeline

logger = logging.getLogger(__name__)


class ArchivalRun:
    """Process every folder under ``base_dir`` and return a RunReport.

    With ``abort_on_failure`` (the default) the first failing folder stops
    the run: no further folder is started and its artifact stays on disk.
    With ``workers > 1`` folders are processed on a thread pool; after a
    failure queued folders are cancelled and in-flight ones are allowed to
    finish. With ``remove_staging_root`` an empty staging root is removed
    after a successful run.
    """

    def __init__(self, base_dir: Path, pipeline: FolderPipeline, abort_on_failure: bool = True,
                 workers: int = 1, notifier: Optional[Notifier] = None,
                 notify_on: NotifyOn = NotifyOn.ALWAYS, remove_staging_root: bool = False):
        self.base_dir = Path(base_dir)
        self.pipeline = pipeline
        self.abort_on_failure = abort_on_failure
        self.workers = max(1, int(workers))
        self.notifier = notifier
        self.notify_on = NotifyOn(notify_on)
        self.remove_staging_root = remove_staging_root
        self._abort = threading.Event()

    def run(self, tasks: Optional[Iterable[FolderTask]] = None) -> RunReport:
        self._abort.clear()
        report = RunReport()
        if tasks is None:
            tasks = discover_folders(self.base_dir)

        if self.workers == 1:
            for task in tasks:
                if not self._process(task, report):
                    if self.abort_on_failure:
                        break
        else:
            self._run_parallel(tasks, report)

        report.aborted = self._abort.is_set()
        if report.succeeded:
            self._prune_staging()
            report.log("All folders processed.")
            logger.info("All folders processed.")
        elif report.aborted:
            report.log("Run aborted after a failed folder.")
            logger.error("Run aborted after a failed folder.")
        else:
            report.log("Run finished with failures.")
            logger.error("Run finished with failures.")

        self._notify(report)
        return report

    def _run_parallel(self, tasks: Iterable[FolderTask], report: RunReport):
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            pending = set()
            for task in tasks:
                if self._abort.is_set():
                    break
                pending.add(executor.submit(self._process, task, report))
                if len(pending) >= self.workers * 2:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        future.result()

            if self._abort.is_set():
                for future in pending:
                    future.cancel()
            for future in wait(pending).done:
                if not future.cancelled():
                    future.result()

    def _process(self, task: FolderTask, report: RunReport) -> bool:
        """Run one folder; False when it failed."""
        if self._abort.is_set():
            return False

        try:
            result = self.pipeline.process(task, report)
        except ArchiverError as e:
            stage = getattr(e, 'stage', 'configuration')
            logger.error(f"Folder {task.path} failed at {stage}: {e}")
            self._fail(task, report, stage, e)
            return False
        except Exception as e:
            logger.exception(f"Folder {task.path} failed unexpectedly: {e}")
            self._fail(task, report, 'unexpected', e)
            return False

        report.record(result)
        return True

    def _fail(self, task: FolderTask, report: RunReport, stage: str, error: Exception):
        report.log(f"Error: {error}")
        report.record(FolderResult(
            task=task,
            state=FolderState.FAILED,
            failed_stage=stage,
            error=str(error),
        ))
        if self.abort_on_failure:
            self._abort.set()

    def _prune_staging(self):
        """Remove empty directories left in the staging root.

        The root itself goes too when ``remove_staging_root`` is set.
        """
        root = self.pipeline.staging_root
        if not root.exists():
            return
        for dirpath, _dirnames, _filenames in os.walk(root, topdown=False):
            if Path(dirpath) == root and not self.remove_staging_root:
                continue
            try:
                Path(dirpath).rmdir()
            except OSError:
                logger.debug(f"Keeping non-empty staging directory: {dirpath}")

    def _notify(self, report: RunReport):
        if self.notifier is None or not should_notify(self.notify_on, report.status):
            return
        report = report.consume()
        subject = f"S3 archive run {report.status.value}: {self.base_dir}"
        try:
            self.notifier.notify(subject, compose_report(report, self.base_dir))
        except NotificationError as e:
            logger.error(f"Failed to send notification: {e}")
