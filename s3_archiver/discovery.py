"""Folder discovery for the archival run and dry run."""

import logging
import os
from pathlib import Path
from typing import Iterator, List

from .models import FolderTask

logger = logging.getLogger(__name__)


def list_immediate_files(folder: Path) -> List[Path]:
    """Return the regular files directly inside ``folder`` (no recursion, no symlinks)."""
    files = []
    with os.scandir(folder) as entries:
        for entry in entries:
            try:
                if entry.is_file(follow_symlinks=False):
                    files.append(Path(entry.path))
            except OSError as e:
                logger.warning(f"Could not stat {entry.path}: {e}")
    return sorted(files, key=lambda p: p.name)


def relative_folder_path(base_dir: Path, folder: Path) -> str:
    """POSIX relative path of ``folder`` under ``base_dir``; '' for the base itself."""
    rel = Path(os.path.relpath(folder, base_dir)).as_posix()
    return '' if rel == '.' else rel.strip('/')


def discover_folders(base_dir: Path) -> Iterator[FolderTask]:
    """Yield a FolderTask for every directory under ``base_dir``, base included.

    Order is the filesystem's top-down walk order. Each task carries only its
    own immediate files; nested directories become tasks of their own.
    """
    base_dir = Path(base_dir).absolute()

    def _on_error(error: OSError):
        logger.warning(f"Cannot read directory {error.filename}: {error.strerror}")

    for dirpath, _dirnames, _filenames in os.walk(base_dir, onerror=_on_error):
        folder = Path(dirpath)
        try:
            files = list_immediate_files(folder)
        except OSError as e:
            logger.warning(f"Cannot list files in {folder}: {e}")
            files = []
        yield FolderTask(
            path=folder,
            relative_path=relative_folder_path(base_dir, folder),
            files=files,
        )
