"""Codec providers - pack a folder's files into a single archive.

All codecs build the container with ``tarfile`` from an explicit list of
paths, so file names with whitespace or newlines need no quoting. gzip
output is handed to ``pigz`` for parallel compression when it is installed,
zstd output always goes through the ``zstd`` binary.
"""

import logging
import shutil
import subprocess
import tarfile
from pathlib import Path
from typing import Optional, Sequence

from .errors import ConfigurationError, StageFailure, StageTimeout
from .models import CompressionKind
from .utils import format_bytes

logger = logging.getLogger(__name__)


def run_tool(stage: str, cmd: Sequence[str], path: Path, timeout: Optional[float] = None,
             input_bytes: Optional[bytes] = None) -> subprocess.CompletedProcess:
    """Run an external tool and turn any failure into a StageFailure."""
    logger.debug(f"Running: {' '.join(str(c) for c in cmd)}")
    try:
        result = subprocess.run(
            [str(c) for c in cmd],
            input=input_bytes,
            capture_output=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise StageTimeout(stage, path, f"{cmd[0]} timed out after {e.timeout}s") from e
    except OSError as e:
        raise StageFailure(stage, path, f"could not run {cmd[0]}: {e}") from e

    if result.returncode != 0:
        stderr = (result.stderr or b'').decode('utf-8', errors='replace').strip()
        raise StageFailure(stage, path, f"{cmd[0]} exited with {result.returncode}: {stderr}")
    return result


class Compressor:
    """Produce one local archive from an ordered list of files."""

    kind: CompressionKind
    suffix: str = '.tar'

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def archive_path(self, destination: Path) -> Path:
        return destination.with_name(destination.name + self.suffix)

    def compress(self, files: Sequence[Path], destination: Path) -> Path:
        """Write ``files`` to ``destination`` + suffix and return that path."""
        archive_path = self.archive_path(destination)
        if archive_path.exists():
            raise StageFailure('compress', archive_path, "archive already exists")
        archive_path.parent.mkdir(parents=True, exist_ok=True)

        logger.info(f"Creating archive: {archive_path}")
        logger.info(f"  Files: {len(files)}")
        self._write(files, archive_path)

        logger.info(f"✓ Archive created: {archive_path} ({format_bytes(archive_path.stat().st_size)})")
        return archive_path

    def _write(self, files: Sequence[Path], archive_path: Path):
        raise NotImplementedError

    def _write_tar(self, files: Sequence[Path], tar_path: Path, mode: str = 'w', **kwargs):
        try:
            with tarfile.open(tar_path, mode, **kwargs) as tar:
                for file_path in files:
                    tar.add(file_path, arcname=file_path.name, recursive=False)
        except (OSError, tarfile.TarError) as e:
            raise StageFailure('compress', tar_path, str(e)) from e


class TarCompressor(Compressor):
    """Uncompressed tar container."""

    kind = CompressionKind.NONE
    suffix = '.tar'

    def _write(self, files, archive_path):
        self._write_tar(files, archive_path)


class GzipCompressor(Compressor):
    """gzip-compressed tar, using pigz when available."""

    kind = CompressionKind.GZIP
    suffix = '.tar.gz'

    def __init__(self, timeout: Optional[float] = None, compression_level: int = 6,
                 use_pigz: bool = True):
        super().__init__(timeout)
        self.compression_level = compression_level
        self.use_pigz = use_pigz

    def _write(self, files, archive_path):
        pigz = shutil.which('pigz') if self.use_pigz else None
        if pigz:
            logger.info("  Compression: pigz (parallel)")
            temp_tar = archive_path.with_suffix('')  # strip .gz
            self._write_tar(files, temp_tar)
            # pigz replaces file.tar with file.tar.gz
            run_tool('compress', [pigz, f'-{self.compression_level}', temp_tar],
                     archive_path, timeout=self.timeout)
        else:
            logger.info(f"  Compression: gzip (level {self.compression_level})")
            self._write_tar(files, archive_path, 'w:gz', compresslevel=self.compression_level)


class ZstdCompressor(Compressor):
    """zstd-compressed tar via the zstd binary, all cores."""

    kind = CompressionKind.ZSTD
    suffix = '.tar.zst'

    def __init__(self, timeout: Optional[float] = None, zstd_binary: str = 'zstd'):
        super().__init__(timeout)
        self.zstd_binary = zstd_binary

    def _write(self, files, archive_path):
        logger.info("  Compression: zstd")
        temp_tar = archive_path.with_suffix('')  # strip .zst
        self._write_tar(files, temp_tar)
        run_tool('compress',
                 [self.zstd_binary, '-q', '-T0', '--rm', temp_tar, '-o', archive_path],
                 archive_path, timeout=self.timeout)


COMPRESSORS = {
    CompressionKind.NONE: TarCompressor,
    CompressionKind.GZIP: GzipCompressor,
    CompressionKind.ZSTD: ZstdCompressor,
}


def get_compressor(kind, timeout: Optional[float] = None) -> Compressor:
    """Return the compressor for ``kind``; unknown kinds are a configuration error."""
    try:
        kind = CompressionKind(kind)
    except ValueError:
        raise ConfigurationError(f"Unsupported compression type: {kind}")
    return COMPRESSORS[kind](timeout=timeout)
