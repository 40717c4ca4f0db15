"""Folder pipeline - compress, encrypt, upload and clean up one folder."""

import logging
from pathlib import Path
from typing import Optional

from .ciphers import ArchiveCipher
from .codecs import Compressor
from .errors import StageFailure
from .models import (
    ArchiveArtifact,
    ArtifactState,
    FolderResult,
    FolderState,
    FolderTask,
    RunReport,
)
from .uploader import Uploader, build_remote_key

logger = logging.getLogger(__name__)


class FolderPipeline:
    """Drive one FolderTask through compressor -> cipher -> uploader.

    Stages run strictly in order. A failing stage raises StageFailure and
    leaves whatever artifact it produced on disk; a successful upload removes
    the artifact and the folder's staging directory.
    """

    def __init__(self, staging_root: Path, compressor: Compressor, cipher: ArchiveCipher,
                 uploader: Uploader, key_prefix: str = ''):
        self.staging_root = Path(staging_root)
        self.compressor = compressor
        self.cipher = cipher
        self.uploader = uploader
        self.key_prefix = key_prefix

    def staging_dir(self, task: FolderTask) -> Path:
        if task.relative_path:
            return self.staging_root.joinpath(*task.relative_path.split('/'))
        return self.staging_root

    def process(self, task: FolderTask, report: Optional[RunReport] = None) -> FolderResult:
        """Archive one folder.

        Returns a SKIPPED or CLEANED result; raises StageFailure otherwise.
        """
        report = report if report is not None else RunReport()
        report.log(f"Processing folder: {task.path}")
        logger.info(f"Processing folder: {task.path}")

        if task.is_empty:
            report.log(f"No files found in {task.path}. Skipping.")
            logger.info(f"No files found in {task.path}. Skipping.")
            return FolderResult(task=task, state=FolderState.SKIPPED)

        output_folder = self.staging_dir(task)
        try:
            output_folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StageFailure('stage', output_folder, str(e)) from e
        artifact = ArchiveArtifact(path=output_folder / task.archive_name)

        archive_path = self.compressor.compress(task.files, artifact.path)
        artifact.advance(ArtifactState.COMPRESSED, archive_path, self.compressor.suffix)

        artifact_path = self.cipher.encrypt(artifact.path)
        if artifact_path != artifact.path:
            artifact.advance(ArtifactState.ENCRYPTED, artifact_path, self.cipher.suffix)

        key = build_remote_key(self.key_prefix, task.relative_path, artifact.filename)
        try:
            size = artifact.path.stat().st_size
        except OSError as e:
            raise StageFailure('upload', artifact.path, str(e)) from e
        report.log(f"Uploading {artifact.path} to {self.uploader.uri_for(key)}")
        result = self.uploader.upload(artifact.path, key)
        if not result.success:
            report.log(f"Error: Upload failed for {artifact.path}.")
            raise StageFailure('upload', artifact.path, result.error or "upload failed")
        artifact.advance(ArtifactState.UPLOADED)

        self._remove(artifact, output_folder)
        report.log(f"{artifact.path} uploaded and deleted locally.")
        logger.info(f"{artifact.path} uploaded and deleted locally.")

        return FolderResult(
            task=task,
            state=FolderState.CLEANED,
            remote_uri=result.uri,
            artifact_size=size,
        )

    def _remove(self, artifact: ArchiveArtifact, output_folder: Path):
        try:
            artifact.path.unlink()
        except OSError as e:
            raise StageFailure('cleanup', artifact.path, str(e)) from e
        artifact.advance(ArtifactState.REMOVED)
        if output_folder != self.staging_root:
            try:
                output_folder.rmdir()
            except OSError:
                # still holds staging dirs of nested folders
                logger.debug(f"Staging directory not empty, keeping: {output_folder}")
