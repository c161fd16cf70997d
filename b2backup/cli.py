"""Command line entry point: upload every dump file in the backup directory."""

import sys
import logging

from b2backup import configure_logging
from b2backup.config import Config
from b2backup.exceptions import ConfigurationError, DiscoveryError, NetworkError, UploadError
from b2backup.backup.executor import BackupRunner


logger = logging.getLogger('b2backup')


def main() -> int:
    """
    Run one backup.

    Returns:
        Process exit status (0 on success, 1 on any failure)
    """
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"Upload failed: {e}")
        return 1

    configure_logging(config)

    try:
        BackupRunner(config).run()
    except NetworkError as e:
        logger.error(f"Upload failed: {e}")
        if e.body:
            logger.error(f"B2 response: {e.body}")
        return 1
    except (DiscoveryError, UploadError) as e:
        logger.error(f"Upload failed: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Upload failed: {e}")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
