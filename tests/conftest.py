"""
Shared pytest fixtures for redis-b2-backup tests.

This module provides fixtures for:
- Runtime configuration
- Dump file directories
- Mock B2 clients and HTTP responses
- An in-memory bucket for retention tests
"""

import itertools
from unittest.mock import MagicMock

import pytest

from b2backup.config import Config, MIN_CHUNK_SIZE
from b2backup.exceptions import NetworkError
from b2backup.models import PartTarget, RemoteBackupEntry
from b2backup.backup.b2_api import AuthSession, B2Client


@pytest.fixture(scope='function')
def dump_dir(tmp_path):
    """
    Directory with two dump files and some unrelated files.

    Instances: cache (250 bytes), primary (40 bytes)
    """
    directory = tmp_path / "dumps"
    directory.mkdir()
    (directory / "dump_cache.rdb").write_bytes(bytes(range(250)))
    (directory / "dump_primary.rdb").write_bytes(b"p" * 40)
    (directory / "appendonly.aof").write_bytes(b"ignored")
    (directory / "dump_notes.txt").write_bytes(b"ignored")
    return directory


@pytest.fixture(scope='function')
def config(dump_dir):
    """Configuration pointing at dump_dir, without retry delays."""
    return Config(
        key_id='test-key-id',
        application_key='test-application-key',
        bucket_id='bucket-123',
        bucket_name='test-backups',
        backup_dir=str(dump_dir),
        chunk_size=MIN_CHUNK_SIZE,
        retention_count=2,
        max_attempts=1,
        retry_backoff=0.0,
        request_timeout=5.0
    )


@pytest.fixture(scope='function')
def auth_session():
    return AuthSession(
        authorization_token='account-token',
        api_url='https://api001.backblazeb2.com',
        download_url='https://f001.backblazeb2.com'
    )


@pytest.fixture(scope='function')
def b2_client():
    """
    MagicMock B2 client with a working large file flow.

    Every get_upload_part_url / get_upload_url call returns a new target.
    """
    client = MagicMock(spec=B2Client)
    counter = itertools.count(1)

    def next_target(*args, **kwargs):
        n = next(counter)
        return PartTarget(
            upload_url=f"https://pod-000.backblaze.com/b2api/v2/upload/{n}",
            authorization_token=f"upload-token-{n}"
        )

    client.start_large_file.return_value = {'fileId': 'large-file-1', 'contentType': 'b2/x-auto'}
    client.get_upload_part_url.side_effect = next_target
    client.get_upload_url.side_effect = next_target
    client.upload_part.return_value = {'partNumber': 1}
    client.upload_file.return_value = {'fileId': 'small-file-1', 'action': 'upload'}
    client.finish_large_file.return_value = {'fileId': 'large-file-1', 'action': 'upload'}
    client.cancel_large_file.return_value = {'fileId': 'large-file-1'}
    client.download_url_for.side_effect = lambda bucket, name: f"https://f001.backblazeb2.com/file/{bucket}/{name}"
    return client


def make_response(status_code=200, json_data=None, text='', reason='OK'):
    """Build a MagicMock that behaves like a requests.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.reason = reason
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def response_factory():
    return make_response


class FakeBucket:
    """
    In-memory stand-in for the listing and deletion calls of B2Client.

    fail_deletes holds file names whose deletion raises NetworkError.
    """

    def __init__(self, entries=None, fail_deletes=None):
        self.entries = list(entries or [])
        self.fail_deletes = set(fail_deletes or [])
        self.deleted = []
        self.list_calls = 0

    def add(self, file_name, upload_timestamp, file_id=None):
        self.entries.append(RemoteBackupEntry(
            file_id=file_id or f"id-{len(self.entries) + 1}",
            file_name=file_name,
            upload_timestamp=upload_timestamp
        ))

    def list_file_names(self, bucket_id, max_file_count=1000):
        self.list_calls += 1
        return list(self.entries[:max_file_count])

    def delete_file_version(self, file_id, file_name):
        if file_name in self.fail_deletes:
            raise NetworkError('b2_delete_file_version', 'file not present', status_code=400,
                               code='file_not_present')
        self.entries = [e for e in self.entries if not (e.file_id == file_id and e.file_name == file_name)]
        self.deleted.append(file_name)
        return {'fileId': file_id, 'fileName': file_name}

    def names(self):
        return [e.file_name for e in self.entries]


@pytest.fixture
def fake_bucket():
    return FakeBucket()
