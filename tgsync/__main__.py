# tgsync/__main__.py
import asyncio
import logging
import sys

from tgsync.config import load_settings
from tgsync.exceptions import ConfigurationError
from tgsync.runner import run_once, setup_logging
from tgsync.schemas import SyncStatus

logger = logging.getLogger("tgsync")


def main() -> int:
    setup_logging()
    try:
        settings = load_settings()
        logging.getLogger().setLevel(settings.log_level.upper())
        report = asyncio.run(run_once(settings))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2
    except KeyboardInterrupt:
        logger.warning("Sync interrupted by user.")
        return 1

    failed = sum(1 for channel in report.channels for r in channel.results if r.status == SyncStatus.FAILED)
    logger.info(
        f"Synced {len(report.channels)}/{report.selected} channels, "
        f"{failed} failed jobs, overall run time {report.overall_run_time:.0f} msec"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
