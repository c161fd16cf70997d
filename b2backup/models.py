"""
Data model for backup uploads and retention.

All remote-facing records are plain dataclasses; nothing here talks to the
network or the filesystem.
"""

from dataclasses import dataclass, field
from typing import List

from b2backup.exceptions import UploadError


REMOTE_PREFIX = 'redis-backup-'


@dataclass(frozen=True)
class BackupFile:
    """A local dump file discovered for upload."""
    path: str
    instance_name: str
    size: int


@dataclass(frozen=True)
class ByteRange:
    """Half-open byte range [start, end) within a source file."""
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class PartTarget:
    """Single-use upload URL and token issued for one part."""
    upload_url: str
    authorization_token: str


@dataclass(frozen=True)
class UploadPart:
    """Result of one successfully uploaded part."""
    part_number: int
    byte_range: ByteRange
    content_sha1: str
    content_length: int


@dataclass
class UploadSession:
    """
    Server-side large file upload in progress.

    Parts may be recorded in any order; sha1_array() always returns the hashes
    in part-number order and refuses to build an array with gaps.
    """
    file_id: str
    bucket_id: str
    file_name: str
    content_type: str
    parts: List[UploadPart] = field(default_factory=list)

    def add_part(self, part: UploadPart):
        if any(p.part_number == part.part_number for p in self.parts):
            raise UploadError(f"Part {part.part_number} already recorded for {self.file_name}")
        self.parts.append(part)

    def sha1_array(self) -> List[str]:
        ordered = sorted(self.parts, key=lambda p: p.part_number)
        numbers = [p.part_number for p in ordered]
        if numbers != list(range(1, len(ordered) + 1)):
            raise UploadError(f"Parts for {self.file_name} are not contiguous: {numbers}")
        return [p.content_sha1 for p in ordered]


@dataclass(frozen=True)
class RemoteBackupEntry:
    """Snapshot of one file version returned by a bucket listing."""
    file_id: str
    file_name: str
    upload_timestamp: int

    @classmethod
    def from_json(cls, data: dict) -> 'RemoteBackupEntry':
        return cls(
            file_id=data['fileId'],
            file_name=data['fileName'],
            upload_timestamp=int(data['uploadTimestamp'])
        )


@dataclass(frozen=True)
class RetentionPolicy:
    """Number of most recent backups to keep for one instance."""
    instance_name: str
    keep: int

    @property
    def prefix(self) -> str:
        return f"{REMOTE_PREFIX}{self.instance_name}-"
