# tgsync/services/feed_window.py
import logging
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tgsync.models import Post
from tgsync.schemas import PageResult
from tgsync.utils import local_midnight, now_ms, to_utc

logger = logging.getLogger(__name__)


async def fetch_last_published_at(db: AsyncSession, channel_id: int, scope: str = "channel") -> Optional[datetime]:
    query = select(func.max(Post.published_at))
    if scope != "global":
        query = query.where(Post.channel_id == channel_id)
    return to_utc((await db.execute(query)).scalar_one_or_none())


def compute_until_published_at(
    last_published_at: Optional[datetime],
    now: datetime,
    tz: tzinfo,
    look_back_days: int = 2,
) -> datetime:
    """Local midnight of the newest stored post (or of now), minus the look-back margin."""
    boundary = local_midnight(last_published_at or now, tz)
    return to_utc(boundary - timedelta(days=look_back_days))


class FeedWindow:
    """
    Bounds a single feed crawl: how far back items are accepted and how long
    pages may be consumed.
    """

    def __init__(
        self,
        until_published_at: datetime,
        run_time_limit: float,
        clock: Callable[[], float] = now_ms,
    ):
        self.until_published_at = to_utc(until_published_at)
        self.run_time_limit = run_time_limit
        self._clock = clock
        self.run_time: float = 0

    def elapsed(self, page: PageResult) -> float:
        """Elapsed milliseconds measured from the page's own start_time."""
        self.run_time = self._clock() - page.start_time
        return self.run_time

    def exceeded(self, page: PageResult) -> bool:
        return self.elapsed(page) > self.run_time_limit

    def accepts(self, published_at: Optional[datetime]) -> bool:
        if published_at is None:
            return True
        return to_utc(published_at) >= self.until_published_at
