"""Exceptions raised by the backup uploader."""


class ConfigurationError(Exception):
    """Raised when required settings are missing or invalid."""
    pass


class DiscoveryError(Exception):
    """Raised when no candidate dump files are found."""

    def __init__(self, directory: str):
        self.directory = directory
        super().__init__(f"No Redis dump files found in {directory}")


class UploadError(Exception):
    """Raised when an upload cannot be completed."""
    pass


class NetworkError(UploadError):
    """
    Raised when a remote call fails at the transport or HTTP level.

    Carries the B2 error details when the service returned a JSON error body.
    """

    def __init__(self, operation: str, message: str, status_code: int = None,
                 code: str = None, body=None, retryable: bool = False):
        self.operation = operation
        self.status_code = status_code
        self.code = code
        self.body = body
        self.retryable = retryable
        detail = f"{operation} failed"
        if status_code is not None:
            detail += f" ({status_code} {code or 'error'})"
        super().__init__(f"{detail}: {message}")


class PartialCleanupError(Exception):
    """Raised after retention cleanup when one or more deletions failed."""

    def __init__(self, instance_name: str, failures: list, deleted: list = None):
        self.instance_name = instance_name
        self.failures = failures
        self.deleted = deleted or []
        names = ', '.join(entry.file_name for entry, _ in failures)
        super().__init__(
            f"Failed to delete {len(failures)} old backup(s) for {instance_name}: {names}"
        )
