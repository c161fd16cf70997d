import os
from dataclasses import dataclass
from typing import Optional, Mapping

from dotenv import load_dotenv

from b2backup.exceptions import ConfigurationError


MIB = 1024 * 1024

# B2 rejects large file parts smaller than 5 MB (except the last one)
MIN_CHUNK_SIZE = 5 * 1000 * 1000

RETENTION_BEFORE_UPLOAD = 'before_upload'
RETENTION_AFTER_UPLOAD = 'after_upload'


@dataclass(frozen=True)
class Config:
    """Runtime configuration, built once at startup and passed to every component."""

    key_id: str
    application_key: str
    bucket_id: str
    bucket_name: Optional[str] = None
    api_url: str = 'https://api.backblazeb2.com'
    backup_dir: str = '.'
    chunk_size: int = 100 * MIB
    retention_count: int = 2
    retention_order: str = RETENTION_BEFORE_UPLOAD
    upload_workers: int = 1
    max_attempts: int = 3
    retry_backoff: float = 1.0
    request_timeout: float = 300.0
    log_level: str = 'INFO'
    log_file: Optional[str] = None

    def __post_init__(self):
        if self.chunk_size < MIN_CHUNK_SIZE:
            raise ConfigurationError(f"CHUNK_SIZE must be at least {MIN_CHUNK_SIZE} bytes")
        if self.retention_count < 0:
            raise ConfigurationError("RETENTION_COUNT must not be negative")
        if self.retention_order not in (RETENTION_BEFORE_UPLOAD, RETENTION_AFTER_UPLOAD):
            raise ConfigurationError(
                f"RETENTION_ORDER must be '{RETENTION_BEFORE_UPLOAD}' or '{RETENTION_AFTER_UPLOAD}'"
            )
        if self.upload_workers < 1:
            raise ConfigurationError("UPLOAD_WORKERS must be at least 1")
        if self.max_attempts < 1:
            raise ConfigurationError("MAX_ATTEMPTS must be at least 1")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None, dotenv_path: str = None) -> 'Config':
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read instead of os.environ (a .env file is not
                loaded in that case)
            dotenv_path: Explicit .env file to load before reading os.environ

        Returns:
            Config instance

        Raises:
            ConfigurationError: If a required variable is missing or a value is invalid
        """
        if environ is None:
            load_dotenv(dotenv_path)
            environ = os.environ

        key_id = environ.get('B2_APPLICATION_KEY_ID')
        application_key = environ.get('B2_APPLICATION_KEY')
        if not key_id or not application_key:
            raise ConfigurationError('B2 credentials not found in environment variables')

        bucket_id = environ.get('B2_BUCKET_ID')
        if not bucket_id:
            raise ConfigurationError('B2_BUCKET_ID not found in environment variables')

        return cls(
            key_id=key_id,
            application_key=application_key,
            bucket_id=bucket_id,
            bucket_name=environ.get('B2_BUCKET_NAME') or None,
            api_url=(environ.get('B2_API_URL') or cls.api_url).rstrip('/'),
            backup_dir=environ.get('BACKUP_DIR') or os.getcwd(),
            chunk_size=_int(environ, 'CHUNK_SIZE', cls.chunk_size),
            retention_count=_int(environ, 'RETENTION_COUNT', cls.retention_count),
            retention_order=environ.get('RETENTION_ORDER') or cls.retention_order,
            upload_workers=_int(environ, 'UPLOAD_WORKERS', cls.upload_workers),
            max_attempts=_int(environ, 'MAX_ATTEMPTS', cls.max_attempts),
            retry_backoff=_float(environ, 'RETRY_BACKOFF', cls.retry_backoff),
            request_timeout=_float(environ, 'REQUEST_TIMEOUT', cls.request_timeout),
            log_level=(environ.get('LOG_LEVEL') or cls.log_level).upper(),
            log_file=environ.get('LOG_FILE') or None
        )


def _int(environ: Mapping[str, str], name: str, default: int) -> int:
    value = environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


def _float(environ: Mapping[str, str], name: str, default: float) -> float:
    value = environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
