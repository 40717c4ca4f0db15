"""S3 Archiver.

Packs every folder of a directory tree into its own archive, optionally
encrypts it, and uploads it to S3 cold storage.
"""

from .ciphers import ArchiveCipher, GpgCipher, PassphraseCipher, PassthroughCipher, get_cipher
from .codecs import Compressor, GzipCompressor, TarCompressor, ZstdCompressor, get_compressor
from .discovery import discover_folders
from .dry_run import DryRunReporter
from .errors import ArchiverError, ConfigurationError, StageFailure, StageTimeout
from .models import (
    ArchiveArtifact,
    CompressionKind,
    DryRunReport,
    EncryptionKind,
    FolderResult,
    FolderTask,
    NotifyOn,
    RunReport,
    RunStatus,
)
from .notifier import EmailNotifier, Notifier
from .pipeline import FolderPipeline
from .run import ArchivalRun
from .uploader import S3Uploader, UploadResult, Uploader

__all__ = [
    'ArchivalRun',
    'ArchiveArtifact',
    'ArchiveCipher',
    'ArchiverError',
    'CompressionKind',
    'Compressor',
    'ConfigurationError',
    'DryRunReport',
    'DryRunReporter',
    'EmailNotifier',
    'EncryptionKind',
    'FolderPipeline',
    'FolderResult',
    'FolderTask',
    'GpgCipher',
    'GzipCompressor',
    'Notifier',
    'NotifyOn',
    'PassphraseCipher',
    'PassthroughCipher',
    'RunReport',
    'RunStatus',
    'S3Uploader',
    'StageFailure',
    'StageTimeout',
    'TarCompressor',
    'UploadResult',
    'Uploader',
    'ZstdCompressor',
    'discover_folders',
    'get_cipher',
    'get_compressor',
]
