"""
Upload of backup files to B2.

Files that span at least two chunks go through the large file protocol:
start a session, upload every part to its own single-use upload URL, then
finish the session with the SHA-1 of every part in part-number order. Smaller
files are sent with a single b2_upload_file request.
"""

import os
import math
import time
import hashlib
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Optional, List, Dict, Any, Callable

from b2backup.exceptions import UploadError, NetworkError
from b2backup.models import BackupFile, ByteRange, PartTarget, UploadPart, UploadSession
from b2backup.utils.retry import call_with_retries
from .b2_api import B2Client, AUTO_CONTENT_TYPE


logger = logging.getLogger(__name__)


def plan_parts(file_size: int, chunk_size: int) -> List[ByteRange]:
    """
    Split a file into contiguous part ranges.

    Part i (1-based) covers [(i-1)*chunk_size, min(i*chunk_size, file_size)).

    Args:
        file_size: Size of the file in bytes
        chunk_size: Size of every part except the last

    Returns:
        List of ByteRange, one per part (empty for an empty file)
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if file_size < 0:
        raise ValueError(f"file_size must not be negative, got {file_size}")

    part_count = math.ceil(file_size / chunk_size)
    return [
        ByteRange(start=(i - 1) * chunk_size, end=min(i * chunk_size, file_size))
        for i in range(1, part_count + 1)
    ]


def sha1_hex(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


class ChunkReader:
    """
    Scoped read access to a source file.

    The file is opened once on enter and closed on exit; reads are serialized
    so parts can be read from several upload threads.
    """

    def __init__(self, path: str):
        self.path = path
        self._file = None
        self._lock = threading.Lock()

    def __enter__(self) -> 'ChunkReader':
        if not os.path.isfile(self.path):
            raise UploadError(f"Local file not found: {self.path}")
        self._file = open(self.path, 'rb')
        return self

    def __exit__(self, exc_type, exc, tb):
        if self._file is not None:
            self._file.close()
            self._file = None

    @property
    def closed(self) -> bool:
        return self._file is None

    def read_range(self, byte_range: ByteRange) -> bytes:
        """
        Read exactly the bytes of a range.

        Raises:
            UploadError: If the file is shorter than the range
        """
        if self._file is None:
            raise UploadError(f"Reader for {self.path} is not open")

        with self._lock:
            self._file.seek(byte_range.start)
            data = self._file.read(byte_range.length)

        if len(data) != byte_range.length:
            raise UploadError(
                f"Short read from {self.path}: expected {byte_range.length} bytes "
                f"at offset {byte_range.start}, got {len(data)}"
            )
        return data


class PartUploader:
    """Uploads one byte range of a file as one part of a large file."""

    def __init__(self, client: B2Client):
        self.client = client

    def upload(self, target: PartTarget, part_number: int, byte_range: ByteRange, reader: ChunkReader) -> UploadPart:
        """
        Read, hash and upload one part.

        Args:
            target: Single-use part upload URL and token
            part_number: 1-based part number
            byte_range: Bytes of the source file belonging to this part
            reader: Open reader for the source file

        Returns:
            UploadPart with the SHA-1 computed over the uploaded bytes

        Raises:
            UploadError: If the range cannot be read
            NetworkError: If the upload request fails
        """
        data = reader.read_range(byte_range)
        sha1 = sha1_hex(data)

        self.client.upload_part(target, part_number, data, sha1)

        return UploadPart(
            part_number=part_number,
            byte_range=byte_range,
            content_sha1=sha1,
            content_length=len(data)
        )


class MultipartUploadCoordinator:
    """
    Owns the upload of one file to a bucket.

    A session that fails after b2_start_large_file is cancelled with
    b2_cancel_large_file so its parts do not keep consuming storage.
    """

    def __init__(
        self,
        client: B2Client,
        bucket_id: str,
        bucket_name: Optional[str] = None,
        workers: int = 1,
        max_attempts: int = 1,
        backoff: float = 1.0,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize upload coordinator.

        Args:
            client: Authorized B2 client
            bucket_id: Target bucket ID
            bucket_name: Bucket name, only used to log the download URL
            workers: Number of parts uploaded concurrently (1 = sequential)
            max_attempts: Attempts per part, each with a fresh upload URL
            backoff: Initial retry backoff in seconds
            sleep: Sleep function used between retries
        """
        self.client = client
        self.bucket_id = bucket_id
        self.bucket_name = bucket_name
        self.workers = max(1, workers)
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.sleep = sleep
        self.part_uploader = PartUploader(client)

    def upload(self, backup_file: BackupFile, remote_name: str, chunk_size: int) -> Dict[str, Any]:
        """
        Upload a backup file under the given remote name.

        Args:
            backup_file: File to upload
            remote_name: Remote object name
            chunk_size: Size of every part except the last

        Returns:
            Final file descriptor returned by B2

        Raises:
            UploadError: If the file cannot be read or the session is inconsistent
            NetworkError: If any remote call fails
        """
        ranges = plan_parts(backup_file.size, chunk_size)

        with ChunkReader(backup_file.path) as reader:
            if len(ranges) < 2:
                result = self._simple_upload(backup_file, remote_name, reader)
            else:
                result = self._multipart_upload(remote_name, ranges, reader)

        logger.info(f"Successfully uploaded {remote_name} to B2")
        if self.bucket_name:
            logger.info(f"File URL: {self.client.download_url_for(self.bucket_name, remote_name)}")

        return result

    def _simple_upload(self, backup_file: BackupFile, remote_name: str, reader: ChunkReader) -> Dict[str, Any]:
        data = reader.read_range(ByteRange(0, backup_file.size))
        sha1 = sha1_hex(data)

        def attempt():
            target = self.client.get_upload_url(self.bucket_id)
            return self.client.upload_file(target, remote_name, data, sha1)

        logger.info(f"Uploading {remote_name} in a single request ({backup_file.size} bytes)")
        return call_with_retries(
            attempt,
            attempts=self.max_attempts,
            backoff=self.backoff,
            sleep=self.sleep,
            description=f"upload of {remote_name}"
        )

    def _multipart_upload(self, remote_name: str, ranges: List[ByteRange], reader: ChunkReader) -> Dict[str, Any]:
        response = self.client.start_large_file(self.bucket_id, remote_name, AUTO_CONTENT_TYPE)
        session = UploadSession(
            file_id=response['fileId'],
            bucket_id=self.bucket_id,
            file_name=remote_name,
            content_type=response.get('contentType', AUTO_CONTENT_TYPE)
        )
        logger.info(f"Started large file {remote_name} ({session.file_id}) with {len(ranges)} parts")

        try:
            if self.workers == 1:
                self._upload_sequential(session, ranges, reader)
            else:
                self._upload_parallel(session, ranges, reader)

            sha1_array = session.sha1_array()
            if len(sha1_array) != len(ranges):
                raise UploadError(
                    f"Expected {len(ranges)} parts for {remote_name}, have {len(sha1_array)}"
                )
            return self.client.finish_large_file(session.file_id, sha1_array)

        except Exception:
            self._cancel(session)
            raise

    def _upload_sequential(self, session: UploadSession, ranges: List[ByteRange], reader: ChunkReader):
        total = len(ranges)
        for part_number, byte_range in enumerate(ranges, start=1):
            session.add_part(self._upload_part(session, part_number, byte_range, reader))
            logger.info(f"Uploaded part {part_number} of {total}")

    def _upload_parallel(self, session: UploadSession, ranges: List[ByteRange], reader: ChunkReader):
        total = len(ranges)
        pool = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix='b2-part')
        try:
            futures = {
                pool.submit(self._upload_part, session, part_number, byte_range, reader): part_number
                for part_number, byte_range in enumerate(ranges, start=1)
            }
            for future in as_completed(futures):
                session.add_part(future.result())
                logger.info(f"Uploaded part {futures[future]} of {total}")
        finally:
            # Parts still in flight finish before the session can be cancelled
            pool.shutdown(wait=True, cancel_futures=True)

    def _upload_part(self, session: UploadSession, part_number: int, byte_range: ByteRange,
                     reader: ChunkReader) -> UploadPart:
        def attempt():
            target = self.client.get_upload_part_url(session.file_id)
            return self.part_uploader.upload(target, part_number, byte_range, reader)

        return call_with_retries(
            attempt,
            attempts=self.max_attempts,
            backoff=self.backoff,
            sleep=self.sleep,
            description=f"upload of part {part_number} of {session.file_name}"
        )

    def _cancel(self, session: UploadSession):
        """Cancel an unfinished large file, logging (not raising) a cancel failure."""
        try:
            self.client.cancel_large_file(session.file_id)
            logger.warning(
                f"Cancelled unfinished large file {session.file_name} ({session.file_id}) "
                f"after {len(session.parts)} uploaded part(s)"
            )
        except NetworkError as e:
            logger.error(
                f"Failed to cancel large file {session.file_name} ({session.file_id}); "
                f"its parts remain until B2 removes the unfinished file: {e}"
            )
