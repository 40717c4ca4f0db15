"""Transient data model for an archival run."""

import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional


class CompressionKind(str, Enum):
    NONE = 'none'
    GZIP = 'gzip'
    ZSTD = 'zstd'


class EncryptionKind(str, Enum):
    NONE = 'none'
    ASYMMETRIC = 'asymmetric'
    SYMMETRIC = 'symmetric'


class NotifyOn(str, Enum):
    ALWAYS = 'always'
    SUCCESS = 'success'
    FAILURE = 'failure'


class RunStatus(str, Enum):
    SUCCESS = 'success'
    FAILURE = 'failure'


class ArtifactState(str, Enum):
    STAGED = 'staged'
    COMPRESSED = 'compressed'
    ENCRYPTED = 'encrypted'
    UPLOADED = 'uploaded'
    REMOVED = 'removed'


class FolderState(str, Enum):
    DISCOVERED = 'discovered'
    SKIPPED = 'skipped'
    CLEANED = 'cleaned'
    FAILED = 'failed'


@dataclass(frozen=True)
class FolderTask:
    """One directory to archive.

    ``relative_path`` is POSIX-style and empty for the base directory itself.
    ``files`` holds only the immediate regular files of ``path``.
    """
    path: Path
    relative_path: str
    files: List[Path] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.files

    @property
    def archive_name(self) -> str:
        """Base name (no suffix) for this folder's archive."""
        if self.relative_path:
            return self.relative_path.rsplit('/', 1)[-1]
        return self.path.name or 'root'


@dataclass
class ArchiveArtifact:
    """Local file moving through compress -> encrypt -> upload -> remove."""
    path: Path
    suffixes: List[str] = field(default_factory=list)
    state: ArtifactState = ArtifactState.STAGED

    def advance(self, state: ArtifactState, path: Optional[Path] = None, suffix: Optional[str] = None):
        if path is not None:
            self.path = path
        if suffix:
            self.suffixes.append(suffix)
        self.state = state

    @property
    def filename(self) -> str:
        return self.path.name


@dataclass
class FolderResult:
    """Outcome of processing one folder."""
    task: FolderTask
    state: FolderState
    remote_uri: Optional[str] = None
    artifact_size: int = 0
    failed_stage: Optional[str] = None
    error: Optional[str] = None


class RunReportConsumed(RuntimeError):
    """Raised when a report is handed out a second time."""


class RunReport:
    """Aggregate outcome of a run, built incrementally.

    Safe to append to from several worker threads.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._consumed = False
        self.status = RunStatus.SUCCESS
        self.lines: List[str] = []
        self.results: List[FolderResult] = []
        self.folders_seen = 0
        self.folders_skipped = 0
        self.archives_created = 0
        self.uploads_succeeded = 0
        self.uploads_failed = 0
        self.aborted = False

    def log(self, line: str):
        with self._lock:
            self.lines.append(line)

    def record(self, result: FolderResult):
        with self._lock:
            self.results.append(result)
            self.folders_seen += 1
            if result.state == FolderState.SKIPPED:
                self.folders_skipped += 1
            elif result.state == FolderState.CLEANED:
                self.archives_created += 1
                self.uploads_succeeded += 1
            elif result.state == FolderState.FAILED:
                self.status = RunStatus.FAILURE
                if result.failed_stage == 'upload':
                    self.archives_created += 1
                    self.uploads_failed += 1
                elif result.failed_stage == 'encrypt':
                    self.archives_created += 1

    def mark_failed(self):
        with self._lock:
            self.status = RunStatus.FAILURE

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCESS

    def consume(self) -> 'RunReport':
        """Hand the report to its single consumer (the notifier)."""
        with self._lock:
            if self._consumed:
                raise RunReportConsumed("Run report has already been consumed")
            self._consumed = True
        return self

    def __repr__(self):
        return (f"<RunReport(status='{self.status.value}', folders={self.folders_seen}, "
                f"uploaded={self.uploads_succeeded}, failed={self.uploads_failed})>")


@dataclass
class DryRunReport:
    """Counts produced by a dry run."""
    folders: int = 0
    archives: int = 0
