"""
Backup runner - orchestrates one backup run.

Workflow:
1. Discover local dump files (fails before any network call if none)
2. Authorize with B2
3. For each file, in name order:
   a. Enforce retention for its instance (before or after the upload, see Config)
   b. Upload it under a new timestamped remote name
"""

import time
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Callable

import requests

from b2backup.config import Config, RETENTION_BEFORE_UPLOAD
from b2backup.exceptions import PartialCleanupError
from b2backup.models import BackupFile
from b2backup.utils.retry import call_with_retries
from .b2_api import authorize_account, B2Client
from .retention import RetentionManager
from .sources import BackupEnumerator, remote_name_for
from .storage import MultipartUploadCoordinator


logger = logging.getLogger(__name__)


class BackupRunner:
    """
    Runs retention and upload for every discovered dump file.

    Retention runs before the upload by default, so the bucket briefly holds
    fewer than `retention_count` backups of an instance (none if the count is
    0 or 1) until the new upload finishes. RETENTION_ORDER=after_upload
    reverses this at the cost of temporarily holding one extra backup.
    """

    def __init__(
        self,
        config: Config,
        enumerator: Optional[BackupEnumerator] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize backup runner.

        Args:
            config: Runtime configuration
            enumerator: Dump file discovery (default: config.backup_dir)
            session: requests session shared by every remote call
            sleep: Sleep function used between retries
        """
        self.config = config
        self.enumerator = enumerator or BackupEnumerator(config.backup_dir)
        self.session = session or requests.Session()
        self.sleep = sleep
        self.client = None
        self.summary = {
            'uploaded': [],
            'deleted': [],
            'cleanup_errors': []
        }

    def run(self) -> Dict[str, Any]:
        """
        Execute the backup run.

        Returns:
            Dict with 'uploaded' (remote names), 'deleted' (remote names) and
            'cleanup_errors' (messages of partial cleanup failures)

        Raises:
            DiscoveryError: If no dump files are found
            NetworkError: If authorization, listing or an upload fails
            UploadError: If a file cannot be uploaded
        """
        backup_files = self.enumerator.discover()

        self.client = self._connect()
        retention = RetentionManager(self.client, self.config.bucket_id)
        coordinator = MultipartUploadCoordinator(
            self.client,
            self.config.bucket_id,
            bucket_name=self.config.bucket_name,
            workers=self.config.upload_workers,
            max_attempts=self.config.max_attempts,
            backoff=self.config.retry_backoff,
            sleep=self.sleep
        )

        for backup_file in backup_files:
            if self.config.retention_order == RETENTION_BEFORE_UPLOAD:
                self._enforce_retention(retention, backup_file)
                self._upload(coordinator, backup_file)
            else:
                self._upload(coordinator, backup_file)
                self._enforce_retention(retention, backup_file)

        logger.info(
            f"Backup run complete. Uploaded: {len(self.summary['uploaded'])}, "
            f"Deleted: {len(self.summary['deleted'])}, "
            f"Cleanup errors: {len(self.summary['cleanup_errors'])}"
        )
        return self.summary

    def _connect(self) -> B2Client:
        auth = call_with_retries(
            lambda: authorize_account(
                self.config.key_id,
                self.config.application_key,
                api_url=self.config.api_url,
                session=self.session,
                timeout=self.config.request_timeout
            ),
            attempts=self.config.max_attempts,
            backoff=self.config.retry_backoff,
            sleep=self.sleep,
            description='b2_authorize_account'
        )
        logger.info(f"Authorized with B2 (API: {auth.api_url})")

        return B2Client(
            auth,
            session=self.session,
            timeout=self.config.request_timeout,
            max_attempts=self.config.max_attempts,
            backoff=self.config.retry_backoff,
            sleep=self.sleep
        )

    def _enforce_retention(self, retention: RetentionManager, backup_file: BackupFile):
        try:
            deleted = retention.cleanup(backup_file.instance_name, self.config.retention_count)
            self.summary['deleted'].extend(e.file_name for e in deleted)
        except PartialCleanupError as e:
            # Reported but not fatal: the new backup is still uploaded
            logger.error(str(e))
            self.summary['cleanup_errors'].append(str(e))
            self.summary['deleted'].extend(entry.file_name for entry in e.deleted)

    def _upload(self, coordinator: MultipartUploadCoordinator, backup_file: BackupFile):
        remote_name = remote_name_for(backup_file.instance_name, datetime.now(timezone.utc))
        logger.info(
            f"Uploading {backup_file.path} ({backup_file.size / 1024 / 1024:.2f} MB) as {remote_name}"
        )
        coordinator.upload(backup_file, remote_name, self.config.chunk_size)
        self.summary['uploaded'].append(remote_name)
