"""Configuration management for S3 Archiver."""

import json
import logging
import os
import sys
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from s3_archiver.errors import ConfigurationError
from s3_archiver.models import CompressionKind, EncryptionKind, NotifyOn
from s3_archiver.notifier import SmtpSettings
from s3_archiver.uploader import parse_bucket_uri

# Names accepted on the command line for the archive kinds
COMPRESSION_ALIASES = {'tz': 'gzip', 'gz': 'gzip'}
ENCRYPTION_ALIASES = {'gpg': 'asymmetric', 'aes256': 'symmetric'}


class SmtpConfig(BaseModel):
    """Mail transport settings; unset values fall back to SMTP_* variables."""
    model_config = ConfigDict(frozen=True)

    host: Optional[str] = None
    port: int = 587
    user: str = ''
    password: str = ''
    from_addr: str = ''
    use_tls: bool = True
    use_ssl: bool = False

    def settings(self) -> Optional[SmtpSettings]:
        if not self.host:
            return SmtpSettings.from_env()
        return SmtpSettings(
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
            from_addr=self.from_addr,
            use_tls=self.use_tls,
            use_ssl=self.use_ssl,
        )


class NotificationConfig(BaseModel):
    """Encrypted email notification settings."""
    model_config = ConfigDict(frozen=True)

    recipient: Optional[str] = None
    gpg_key: Optional[str] = None
    notify_on: NotifyOn = NotifyOn.ALWAYS
    smtp: SmtpConfig = SmtpConfig()

    @model_validator(mode='after')
    def recipient_needs_key(self):
        if self.recipient and not self.gpg_key:
            raise ValueError("A GPG key (-g) is required to encrypt email notifications.")
        if self.gpg_key and not self.recipient:
            raise ValueError("An email recipient (-r) is required when a notification key is given.")
        return self

    @property
    def enabled(self) -> bool:
        return bool(self.recipient and self.gpg_key)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    file: Optional[str] = None


def default_output_dir() -> Path:
    """Time-stamped staging root under the system temp directory."""
    stamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    return Path(tempfile.gettempdir()) / f"s3archiver_{stamp}"


class RunConfig(BaseModel):
    """Immutable configuration for one run, resolved once at startup."""
    model_config = ConfigDict(frozen=True)

    base_dir: Path
    output_dir: Path
    # generated staging roots are removed once empty
    remove_output_dir: bool = False
    bucket: str
    folder: Optional[str] = None
    compression: CompressionKind = CompressionKind.ZSTD
    encryption: EncryptionKind = EncryptionKind.ASYMMETRIC
    gpg_key: Optional[str] = None
    passphrase: Optional[str] = None
    profile: str = "default"
    storage_class: str = "DEEP_ARCHIVE"
    region: Optional[str] = None
    dry_run: bool = False
    abort_on_failure: bool = True
    workers: int = 1
    timeout_seconds: Optional[float] = None
    notification: NotificationConfig = NotificationConfig()
    logging: LoggingConfig = LoggingConfig()

    @model_validator(mode='before')
    @classmethod
    def fill_output_dir(cls, data: Any):
        if isinstance(data, dict) and not data.get('output_dir'):
            data = dict(data, output_dir=default_output_dir(), remove_output_dir=True)
        return data

    @field_validator('compression', mode='before')
    @classmethod
    def compression_alias(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            return COMPRESSION_ALIASES.get(v, v)
        return v

    @field_validator('encryption', mode='before')
    @classmethod
    def encryption_alias(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            return ENCRYPTION_ALIASES.get(v, v)
        return v

    @field_validator('base_dir', 'output_dir', mode='before')
    @classmethod
    def expand_paths(cls, v):
        """Expand environment variables and user home directory."""
        if isinstance(v, str):
            if not v.strip():
                raise ValueError("Base directory and S3 bucket are required.")
            return os.path.expanduser(os.path.expandvars(v))
        return v

    @field_validator('base_dir')
    @classmethod
    def base_dir_readable(cls, v: Path):
        v = v.absolute()
        if not v.is_dir():
            raise ValueError(f"Base directory does not exist: {v}")
        if not os.access(v, os.R_OK | os.X_OK):
            raise ValueError(f"Base directory is not readable: {v}")
        return v

    @field_validator('bucket')
    @classmethod
    def bucket_required(cls, v: str):
        if not v or not v.strip() or not parse_bucket_uri(v)[0]:
            raise ValueError("Base directory and S3 bucket are required.")
        return v.strip()

    @field_validator('workers')
    @classmethod
    def positive_workers(cls, v: int):
        if v < 1:
            raise ValueError("workers must be at least 1")
        return v

    @model_validator(mode='after')
    def encryption_secret_present(self):
        if self.encryption == EncryptionKind.ASYMMETRIC and not self.gpg_key:
            raise ValueError("GPG key is required for GPG encryption.")
        if self.encryption == EncryptionKind.SYMMETRIC and not self.passphrase:
            raise ValueError("AES passphrase is required for AES256 encryption.")
        return self

    @property
    def bucket_name(self) -> str:
        return parse_bucket_uri(self.bucket, self.folder)[0]

    @property
    def key_prefix(self) -> str:
        return parse_bucket_uri(self.bucket, self.folder)[1]


def _format_validation_error(error: ValidationError) -> str:
    messages = []
    for err in error.errors():
        msg = err['msg']
        if msg.startswith('Value error, '):
            msg = msg[len('Value error, '):]
        elif err.get('loc'):
            msg = f"{'.'.join(str(p) for p in err['loc'])}: {msg}"
        messages.append(msg)
    return "; ".join(messages)


def build_config(**options) -> RunConfig:
    """Create a RunConfig, turning validation errors into ConfigurationError.

    ``None`` values are dropped so model defaults apply.
    """
    options = {k: v for k, v in options.items() if v is not None}
    try:
        return RunConfig(**options)
    except ValidationError as e:
        raise ConfigurationError(_format_validation_error(e)) from e


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load option defaults from a JSON file; keys starting with '_' are comments."""
    config_file = Path(config_path)

    if not config_file.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, 'r') as f:
            config_data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read configuration file {config_path}: {e}") from e

    return {k: v for k, v in config_data.items() if not k.startswith('_')}


def create_default_config(config_path: str = "s3archiver.json") -> None:
    """Write a template configuration file."""
    default_config = {
        "_comment": "Defaults for s3archiver; command line options override these values",
        "base_dir": "~/data",
        "output_dir": None,
        "bucket": "s3://your-bucket-name",
        "folder": None,
        "compression": "zstd",
        "encryption": "gpg",
        "gpg_key": "you@example.com",
        "profile": "default",
        "storage_class": "DEEP_ARCHIVE",
        "abort_on_failure": True,
        "workers": 1,
        "timeout_seconds": None,
        "notification": {
            "recipient": None,
            "gpg_key": None,
            "notify_on": "always",
            "smtp": {
                "host": None,
                "port": 587,
                "user": "",
                "password": "",
                "from_addr": "",
                "use_tls": True
            }
        },
        "logging": {
            "level": "INFO",
            "file": None
        }
    }

    with open(config_path, 'w') as f:
        json.dump(default_config, f, indent=2)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None, verbose: bool = False):
    """Configure root logging: console always, file when configured."""
    log_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    root_logger = logging.getLogger()
    root_logger.handlers = []
    root_logger.setLevel(log_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Quiet the AWS SDK
    for name in ('boto3', 'botocore', 's3transfer', 'urllib3'):
        logging.getLogger(name).setLevel(logging.WARNING)
