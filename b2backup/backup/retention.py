"""
Retention policy enforcement for remote backups.

Keeps the most recent backups of an instance in the bucket and deletes the
rest, based on the upload timestamps reported by the bucket listing.
"""

import re
import logging
from datetime import datetime, timezone
from typing import List

from b2backup.exceptions import NetworkError, PartialCleanupError
from b2backup.models import RemoteBackupEntry, RetentionPolicy
from .b2_api import B2Client


logger = logging.getLogger(__name__)

# What follows "redis-backup-<instance>-" in a backup of exactly that instance
_TIMESTAMP_SUFFIX = re.compile(r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?Z\.rdb$')


def belongs_to(entry: RemoteBackupEntry, policy: RetentionPolicy) -> bool:
    """
    Check whether a remote file is a backup of the policy's instance.

    The timestamp suffix is required so that backups of an instance whose name
    extends this one (cache and cache-eu) are not counted together.
    """
    if not entry.file_name.startswith(policy.prefix):
        return False
    return bool(_TIMESTAMP_SUFFIX.match(entry.file_name[len(policy.prefix):]))


def select_for_deletion(entries: List[RemoteBackupEntry], policy: RetentionPolicy) -> List[RemoteBackupEntry]:
    """
    Pick the backups of an instance that exceed the retention count.

    Args:
        entries: Bucket listing, in listing order
        policy: Instance and number of backups to keep

    Returns:
        Entries to delete, newest first
    """
    instance_entries = [e for e in entries if belongs_to(e, policy)]

    # sorted() is stable with reverse=True, so ties keep listing order
    newest_first = sorted(instance_entries, key=lambda e: e.upload_timestamp, reverse=True)

    return newest_first[policy.keep:]


class RetentionManager:
    """
    Enforces the retention count for one instance at a time.
    """

    def __init__(self, client: B2Client, bucket_id: str):
        """
        Initialize retention manager.

        Args:
            client: Authorized B2 client
            bucket_id: Bucket holding the backups
        """
        self.client = client
        self.bucket_id = bucket_id
        self.logs = []

    def cleanup(self, instance_name: str, keep: int) -> List[RemoteBackupEntry]:
        """
        Delete backups of an instance beyond the newest `keep`.

        Every deletion is attempted even if earlier ones fail.

        Args:
            instance_name: Instance whose backups are cleaned up
            keep: Number of most recent backups to keep

        Returns:
            Entries that were deleted

        Raises:
            NetworkError: If the bucket cannot be listed
            PartialCleanupError: If one or more deletions failed
        """
        policy = RetentionPolicy(instance_name=instance_name, keep=keep)
        self._log(f"Enforcing retention for {instance_name}: keeping {keep} most recent backup(s)")

        entries = self.client.list_file_names(self.bucket_id)
        to_delete = select_for_deletion(entries, policy)

        if not to_delete:
            self._log(f"Nothing to delete for {instance_name}")
            return []

        deleted = []
        failures = []
        for entry in to_delete:
            self._log(f"Deleting old backup: {entry.file_name}")
            try:
                self.client.delete_file_version(entry.file_id, entry.file_name)
                deleted.append(entry)
            except NetworkError as e:
                self._log(f"Failed to delete {entry.file_name}: {e}", level=logging.ERROR)
                failures.append((entry, e))

        self._log(
            f"Retention for {instance_name} complete. "
            f"Deleted: {len(deleted)}, Failed: {len(failures)}"
        )

        if failures:
            raise PartialCleanupError(instance_name, failures, deleted)

        return deleted

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
            level: Level used for the module logger
        """
        timestamp = datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)
