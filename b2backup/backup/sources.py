"""
Local discovery of Redis dump files and the naming rules that tie them to
their remote backups.

Local files are named dump_<instance>.rdb and are uploaded as
redis-backup-<instance>-<ISO8601 timestamp>.rdb. The instance name is the only
key shared by discovery, retention and remote naming, so it is used verbatim.
"""

import os
import logging
from datetime import datetime, timezone
from typing import List, Optional

from b2backup.exceptions import DiscoveryError
from b2backup.models import BackupFile, REMOTE_PREFIX


logger = logging.getLogger(__name__)

LOCAL_PREFIX = 'dump_'
DUMP_SUFFIX = '.rdb'


def instance_name_from_filename(filename: str) -> Optional[str]:
    """
    Derive the instance name from a local dump file name.

    Args:
        filename: Base name such as dump_cache.rdb

    Returns:
        Instance name, or None if the name does not follow the convention or
        the instance name would not round-trip
    """
    if not (filename.startswith(LOCAL_PREFIX) and filename.endswith(DUMP_SUFFIX)):
        return None

    instance_name = filename[len(LOCAL_PREFIX):-len(DUMP_SUFFIX)]
    if not instance_name or LOCAL_PREFIX in instance_name or DUMP_SUFFIX in instance_name:
        return None

    return instance_name


def local_filename(instance_name: str) -> str:
    return f"{LOCAL_PREFIX}{instance_name}{DUMP_SUFFIX}"


def format_timestamp(moment: datetime) -> str:
    """Format a datetime as UTC ISO 8601 with milliseconds, e.g. 2024-01-15T10:00:00.000Z"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime('%Y-%m-%dT%H:%M:%S.') + f"{moment.microsecond // 1000:03d}Z"


def remote_name_for(instance_name: str, now: Optional[datetime] = None) -> str:
    """
    Build the remote object name for a new backup of an instance.

    Args:
        instance_name: Instance name derived from the local file
        now: Upload time (default: current UTC time)

    Returns:
        Remote name such as redis-backup-cache-2024-01-15T10:00:00.000Z.rdb
    """
    now = now or datetime.now(timezone.utc)
    return f"{REMOTE_PREFIX}{instance_name}-{format_timestamp(now)}{DUMP_SUFFIX}"


class BackupEnumerator:
    """
    Finds dump_<instance>.rdb files in a directory.

    Only regular files directly inside the directory are considered.
    """

    def __init__(self, directory: str):
        """
        Initialize enumerator.

        Args:
            directory: Directory containing the dump files
        """
        self.directory = directory

    def discover(self) -> List[BackupFile]:
        """
        List candidate dump files, sorted by file name.

        Returns:
            List of BackupFile

        Raises:
            DiscoveryError: If the directory holds no candidate files
        """
        try:
            names = sorted(os.listdir(self.directory))
        except FileNotFoundError:
            raise DiscoveryError(self.directory)

        backups = []
        for name in names:
            path = os.path.join(self.directory, name)
            if not os.path.isfile(path):
                continue

            instance_name = instance_name_from_filename(name)
            if instance_name is None:
                if name.startswith(LOCAL_PREFIX) and name.endswith(DUMP_SUFFIX):
                    logger.warning(f"Skipping {name}: instance name cannot be derived unambiguously")
                continue

            backups.append(BackupFile(
                path=path,
                instance_name=instance_name,
                size=os.path.getsize(path)
            ))

        if not backups:
            raise DiscoveryError(self.directory)

        logger.info(f"Found {len(backups)} dump file(s) in {self.directory}")
        return backups
