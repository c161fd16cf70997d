"""
Unit tests for configuration loading (b2backup/config.py).
"""

import os

import pytest

from b2backup.config import Config, MIN_CHUNK_SIZE, RETENTION_AFTER_UPLOAD
from b2backup.exceptions import ConfigurationError


BASE_ENV = {
    'B2_APPLICATION_KEY_ID': 'key-id',
    'B2_APPLICATION_KEY': 'application-key',
    'B2_BUCKET_ID': 'bucket-123',
}


def env(**overrides):
    values = dict(BASE_ENV)
    values.update(overrides)
    return {k: v for k, v in values.items() if v is not None}


class TestConfigFromEnv:
    """Test Config.from_env."""

    def test_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        config = Config.from_env(env())

        assert config.key_id == 'key-id'
        assert config.application_key == 'application-key'
        assert config.bucket_id == 'bucket-123'
        assert config.bucket_name is None
        assert config.api_url == 'https://api.backblazeb2.com'
        assert config.backup_dir == os.getcwd()
        assert config.chunk_size == 100 * 1024 * 1024
        assert config.retention_count == 2
        assert config.retention_order == 'before_upload'
        assert config.upload_workers == 1
        assert config.max_attempts == 3
        assert config.log_level == 'INFO'
        assert config.log_file is None

    def test_overrides(self):
        config = Config.from_env(env(
            B2_BUCKET_NAME='backups',
            B2_API_URL='https://api.example.test/',
            BACKUP_DIR='/var/lib/redis',
            CHUNK_SIZE=str(50 * 1000 * 1000),
            RETENTION_COUNT='5',
            RETENTION_ORDER='after_upload',
            UPLOAD_WORKERS='4',
            MAX_ATTEMPTS='1',
            RETRY_BACKOFF='0.25',
            REQUEST_TIMEOUT='30',
            LOG_LEVEL='debug',
            LOG_FILE='/tmp/b2backup.log'
        ))

        assert config.bucket_name == 'backups'
        assert config.api_url == 'https://api.example.test'
        assert config.backup_dir == '/var/lib/redis'
        assert config.chunk_size == 50 * 1000 * 1000
        assert config.retention_count == 5
        assert config.retention_order == RETENTION_AFTER_UPLOAD
        assert config.upload_workers == 4
        assert config.max_attempts == 1
        assert config.retry_backoff == 0.25
        assert config.request_timeout == 30.0
        assert config.log_level == 'DEBUG'
        assert config.log_file == '/tmp/b2backup.log'

    def test_retention_count_zero_allowed(self):
        assert Config.from_env(env(RETENTION_COUNT='0')).retention_count == 0

    @pytest.mark.parametrize("missing", ['B2_APPLICATION_KEY_ID', 'B2_APPLICATION_KEY'])
    def test_missing_credentials(self, missing):
        values = env()
        del values[missing]

        with pytest.raises(ConfigurationError, match='credentials'):
            Config.from_env(values)

    def test_missing_bucket(self):
        with pytest.raises(ConfigurationError, match='B2_BUCKET_ID'):
            Config.from_env(env(B2_BUCKET_ID=''))

    @pytest.mark.parametrize("name,value", [
        ('CHUNK_SIZE', 'big'),
        ('CHUNK_SIZE', str(MIN_CHUNK_SIZE - 1)),
        ('RETENTION_COUNT', '-1'),
        ('RETENTION_COUNT', 'two'),
        ('RETENTION_ORDER', 'sometimes'),
        ('UPLOAD_WORKERS', '0'),
        ('MAX_ATTEMPTS', '0'),
        ('RETRY_BACKOFF', 'soon'),
    ])
    def test_invalid_values(self, name, value):
        with pytest.raises(ConfigurationError, match=name):
            Config.from_env(env(**{name: value}))

    def test_loads_dotenv_file(self, tmp_path, monkeypatch):
        for name in BASE_ENV:
            monkeypatch.delenv(name, raising=False)
        dotenv_file = tmp_path / '.env'
        dotenv_file.write_text(
            'B2_APPLICATION_KEY_ID=file-key-id\n'
            'B2_APPLICATION_KEY=file-key\n'
            'B2_BUCKET_ID=file-bucket\n'
        )

        try:
            config = Config.from_env(dotenv_path=str(dotenv_file))
        finally:
            for name in BASE_ENV:
                os.environ.pop(name, None)

        assert config.key_id == 'file-key-id'
        assert config.bucket_id == 'file-bucket'
