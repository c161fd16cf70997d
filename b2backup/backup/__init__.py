"""
Backup module for redis-b2-backup.

This module handles the core backup functionality including:
- Discovery of local Redis dump files
- Multipart upload to B2
- Retention policy enforcement
- Run orchestration
"""

from .b2_api import AuthSession, B2Client, authorize_account
from .sources import BackupEnumerator
from .storage import PartUploader, MultipartUploadCoordinator
from .retention import RetentionManager
from .executor import BackupRunner

__all__ = [
    'AuthSession',
    'B2Client',
    'authorize_account',
    'BackupEnumerator',
    'PartUploader',
    'MultipartUploadCoordinator',
    'RetentionManager',
    'BackupRunner'
]
