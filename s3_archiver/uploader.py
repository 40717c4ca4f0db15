"""Object store uploader - ship one artifact to S3."""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import quote

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from tqdm import tqdm

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    """Result of a single upload."""
    success: bool
    uri: Optional[str] = None
    etag: Optional[str] = None
    upload_time: float = 0.0
    error: Optional[str] = None


def parse_bucket_uri(bucket: str, folder: Optional[str] = None) -> Tuple[str, str]:
    """Split ``bucket`` (``name`` or ``s3://name/prefix``) plus an extra folder
    into (bucket name, key prefix)."""
    value = bucket.strip()
    if value.startswith('s3://'):
        value = value[len('s3://'):]
    name, _, prefix = value.partition('/')
    parts = [p for p in prefix.split('/') if p]
    if folder:
        parts.extend(p for p in folder.split('/') if p)
    return name, '/'.join(parts)


def build_remote_key(prefix: str, relative_path: str, filename: str) -> str:
    """``<prefix>/<relative folder path>/<artifact filename>`` without empty parts."""
    parts = []
    for segment in (prefix, relative_path):
        parts.extend(p for p in (segment or '').split('/') if p)
    parts.append(filename)
    return '/'.join(parts)


class Uploader:
    """Upload one local artifact to a key in the remote store."""

    bucket: str

    def upload(self, local_path: Path, key: str) -> UploadResult:
        raise NotImplementedError

    def uri_for(self, key: str) -> str:
        return f"s3://{self.bucket}/{key}"


class S3Uploader(Uploader):
    """boto3 uploader bound to one bucket, profile and storage class."""

    def __init__(self, bucket: str, profile: Optional[str] = 'default',
                 storage_class: str = 'DEEP_ARCHIVE', region: Optional[str] = None,
                 client=None, show_progress: bool = True, timeout: Optional[float] = None):
        self.bucket = bucket
        self.profile = profile
        self.storage_class = storage_class
        self.show_progress = show_progress
        self._client = client
        self._region = region
        self._timeout = timeout
        # Multipart above 100 MB
        self.transfer_config = TransferConfig(
            multipart_threshold=100 * 1024 * 1024,
            multipart_chunksize=25 * 1024 * 1024,
            max_concurrency=4,
            use_threads=True,
        )

    @property
    def client(self):
        if self._client is None:
            boto_config = BotoConfig(
                region_name=self._region,
                # one attempt per artifact
                retries={'max_attempts': 1, 'mode': 'standard'},
                connect_timeout=self._timeout or 60,
                read_timeout=self._timeout or 60,
            )
            session = boto3.Session(profile_name=self.profile or None)
            self._client = session.client('s3', config=boto_config)
        return self._client

    def upload(self, local_path: Path, key: str) -> UploadResult:
        uri = self.uri_for(key)
        if not local_path.exists():
            logger.error(f"Artifact not found: {local_path}")
            return UploadResult(success=False, uri=uri, error="Artifact not found")

        file_size = local_path.stat().st_size
        logger.info(f"Uploading {local_path.name} to S3...")
        logger.info(f"  Destination: {uri}")
        logger.info(f"  Storage class: {self.storage_class}")

        start_time = datetime.now()
        try:
            with tqdm(total=file_size, unit='B', unit_scale=True, desc="  Uploading",
                      leave=False, disable=not self.show_progress) as pbar:
                self.client.upload_file(
                    str(local_path),
                    self.bucket,
                    key,
                    ExtraArgs={
                        'StorageClass': self.storage_class,
                        'Metadata': {
                            # S3 user metadata must be ASCII
                            'original_name': quote(local_path.name),
                            'created_by': 's3-archiver',
                        },
                    },
                    Callback=pbar.update,
                    Config=self.transfer_config,
                )

            response = self.client.head_object(Bucket=self.bucket, Key=key)
            etag = response['ETag'].strip('"')
        except (ClientError, BotoCoreError, S3UploadFailedError) as e:
            logger.error(f"S3 upload failed: {e}")
            return UploadResult(success=False, uri=uri, error=str(e))

        upload_time = (datetime.now() - start_time).total_seconds()
        upload_rate = file_size / upload_time / (1024 * 1024) if upload_time > 0 else 0
        logger.info("✓ Upload complete")
        logger.info(f"  ETag: {etag}")
        logger.info(f"  Time: {upload_time:.1f}s ({upload_rate:.2f} MB/s)")

        return UploadResult(success=True, uri=uri, etag=etag, upload_time=upload_time)
