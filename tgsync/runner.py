# tgsync/runner.py
import logging
from pathlib import Path

from tgsync.config import Settings, require_parse_config
from tgsync.controllers.channel_controller import SyncContext
from tgsync.controllers.sync_controller import run_sync_batch
from tgsync.database import create_engine, create_sessionmaker, init_models
from tgsync.schemas import BatchReport
from tgsync.services.telegram_service import TelegramWebService

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    # Keep per-request lines out of INFO output
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def run_once(settings: Settings, config_dir: Path = Path(".")) -> BatchReport:
    """One unattended batch: claim channels, sync them, report elapsed time."""
    info_config = require_parse_config(settings, "channel_info", config_dir)
    feed_config = require_parse_config(settings, "channel_feed", config_dir)

    engine = create_engine(settings)
    try:
        await init_models(engine)
        async with TelegramWebService(timeout=settings.request_timeout_seconds) as parser:
            ctx = SyncContext(
                settings=settings,
                sessionmaker=create_sessionmaker(engine),
                parser=parser,
                info_config=info_config,
                feed_config=feed_config,
            )
            return await run_sync_batch(ctx)
    finally:
        await engine.dispose()
