"""Shared fixtures for tgsync tests.

Fixtures:
- settings: Settings pointing at a temporary SQLite database, UTC timezone
- engine / sessionmaker: async engine with all tables created
- db: a session for seeding and asserting
- parser: FakeParser serving canned PageResults per channel
- ctx: SyncContext wired to the fake parser, a fixed clock and a fixed "now"
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from tgsync.config import Settings
from tgsync.controllers.channel_controller import SyncContext
from tgsync.database import create_engine, create_sessionmaker, init_models
from tgsync.models import Channel
from tgsync.schemas import PageResult

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)
CLOCK_MS = 1_715_342_400_000.0
CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"

ENV_VARS = [
    "DATABASE_URL",
    "DB_TYPE",
    "DB_USERNAME",
    "DB_PASSWORD",
    "DB_HOST",
    "DB_NAME",
    "CONFIG_CHANNEL_INFO",
    "CONFIG_CHANNEL_FEED",
    "FETCH_CHANNELS_COUNT",
    "OVERALL_RUN_TIME_LIMIT",
    "CHANNEL_RUN_TIME_LIMIT",
    "LOOK_BACK_DAYS",
    "TIMEZONE",
    "LOG_LEVEL",
]


def make_page(
    messages: Optional[List[Dict[str, Any]]] = None,
    iteration: int = 0,
    elapsed: float = 1000,
    **data: Any,
) -> PageResult:
    """A parser page whose elapsed time, read against CLOCK_MS, equals ``elapsed``."""
    if messages is not None:
        data["messages"] = messages
    return PageResult(data=data, iteration=iteration, start_time=CLOCK_MS - elapsed)


def make_message(
    tg_message_id: int,
    views: str = "10",
    published_at: Optional[datetime] = None,
    **fields: Any,
) -> Dict[str, Any]:
    message = {
        "tg_message_id": tg_message_id,
        "text": fields.pop("text", "Short"),
        "views": views,
        "published_at": (published_at or NOW - timedelta(hours=1)).isoformat(),
        "links": fields.pop("links", []),
        "images": fields.pop("images", []),
        "videos": fields.pop("videos", []),
        "voices": fields.pop("voices", []),
    }
    message.update(fields)
    return message


class FakeParser:
    """Stands in for TelegramWebService.

    Pages are served per channel handle. An Exception in a page list is
    raised when the consumer asks for that page. ``served`` counts pages
    handed out, so a consumer that stops early leaves the rest unserved.
    """

    def __init__(self, info_pages=None, feed_pages=None):
        self.info_pages: Dict[str, list] = info_pages or {}
        self.feed_pages: Dict[str, list] = feed_pages or {}
        self.served: Dict[str, int] = {}
        self.contexts: List[Dict[str, Any]] = []

    async def parse_by_config(self, config, context):
        self.contexts.append({"kind": config["kind"], **context})
        source = self.info_pages if config["kind"] == "info" else self.feed_pages
        key = f"{config['kind']}:{context['tg_channel_id']}"
        for page in source.get(context["tg_channel_id"], []):
            if isinstance(page, Exception):
                raise page
            self.served[key] = self.served.get(key, 0) + 1
            yield page


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'tgsync.db'}",
        timezone="UTC",
        fetch_channels_count=20,
        overall_run_time_limit=300000,
        channel_run_time_limit=300000,
        look_back_days=2,
    )


@pytest.fixture
async def engine(settings):
    engine = create_engine(settings)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return create_sessionmaker(engine)


@pytest.fixture
async def db(sessionmaker):
    async with sessionmaker() as session:
        yield session


@pytest.fixture
def parser() -> FakeParser:
    return FakeParser()


@pytest.fixture
def ctx(settings, sessionmaker, parser) -> SyncContext:
    return SyncContext(
        settings=settings,
        sessionmaker=sessionmaker,
        parser=parser,
        info_config={"kind": "info"},
        feed_config={"kind": "feed"},
        clock=lambda: CLOCK_MS,
        now=lambda: NOW,
    )


@pytest.fixture
def add_channel(db):
    async def _add_channel(tg_id: str, **fields) -> int:
        channel = Channel(tg_id=tg_id, name=fields.pop("name", f"@{tg_id}"), **fields)
        db.add(channel)
        await db.commit()
        return channel.id

    return _add_channel
