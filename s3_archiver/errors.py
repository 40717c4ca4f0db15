"""Exception types raised by the archival pipeline."""

from pathlib import Path
from typing import Optional


class ArchiverError(Exception):
    """Base class for archiver errors."""


class ConfigurationError(ArchiverError):
    """Missing or invalid run configuration."""


class StageFailure(ArchiverError):
    """A compress, encrypt or upload backend did not succeed.

    Carries the stage name and the local path that was being worked on so
    the failing artifact can be located after the run stops.
    """

    def __init__(self, stage: str, path: Optional[Path], message: str):
        self.stage = stage
        self.path = path
        self.message = message
        super().__init__(f"{stage} failed for {path}: {message}")


class StageTimeout(StageFailure, TimeoutError):
    """An external tool exceeded its time limit."""
