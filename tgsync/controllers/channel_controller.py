# tgsync/controllers/channel_controller.py
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tgsync.config import Settings
from tgsync.exceptions import SourceFetchError, StorageError
from tgsync.models import Channel, ChannelLink, Post
from tgsync.schemas import ChannelInfo, FeedMessage, ItemOutcome, MessageLink, PageResult, SyncResult, SyncStatus
from tgsync.services.feed_window import FeedWindow, compute_until_published_at, fetch_last_published_at
from tgsync.services.metrics import insert_views, reconcile_views, record_subscribers
from tgsync.services.relationships import resolve_channel_reference
from tgsync.services.resolver import resolve_existing_posts
from tgsync.utils import (
    convert_time_to_seconds,
    convert_to_full_number,
    detect_lang,
    get_words_count,
    is_valid_http_url,
    link_host,
    now_ms,
    parse_subscribers,
    to_utc,
)

logger = logging.getLogger(__name__)

# Failures that end a channel job for this run without stopping the batch
JOB_ERRORS = (SourceFetchError, StorageError, httpx.HTTPError, SQLAlchemyError)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SyncContext:
    """Everything a channel job needs, built once per process."""
    settings: Settings
    sessionmaker: async_sessionmaker
    parser: Any
    info_config: Dict[str, Any] = field(default_factory=dict)
    feed_config: Dict[str, Any] = field(default_factory=dict)
    clock: Callable[[], float] = now_ms
    now: Callable[[], datetime] = utcnow


async def _load_tg_id(db: AsyncSession, channel_id: int) -> Optional[str]:
    result = await db.execute(select(Channel.tg_id).where(Channel.id == channel_id))
    return result.scalar_one_or_none()


def _fail(result: SyncResult, tg_id: str, job: str, error: Exception, unexpected: bool = False) -> None:
    result.status = SyncStatus.FAILED
    result.error = f"{type(error).__name__}: {error}"
    logger.error(
        f"Can't parse channel {job} for #{result.channel_id} @{tg_id}: {result.error}",
        exc_info=unexpected,
    )


async def sync_channel_info(ctx: SyncContext, channel_id: int) -> SyncResult:
    """Refresh title, description, verified flag and today's subscriber snapshot."""
    result = SyncResult(job="info", channel_id=channel_id)
    logger.info(f"Read channel info #{channel_id}...")

    async with ctx.sessionmaker() as db:
        tg_id = await _load_tg_id(db, channel_id)
        if not tg_id:
            logger.warning(f"Wrong tgId. Channel: #{channel_id}, @{tg_id}")
            result.status = SyncStatus.SKIPPED
            return result

        pages = ctx.parser.parse_by_config(ctx.info_config, {"tg_channel_id": tg_id})
        try:
            async with aclosing(pages):
                async for page in pages:
                    result.run_time = ctx.clock() - page.start_time
                    result.pages += 1
                    logger.debug(f"@{tg_id} info iteration {page.iteration}, run time {result.run_time:.0f} msec")

                    info = ChannelInfo.model_validate(page.data)
                    now = ctx.now()
                    outcome = await record_subscribers(
                        db, channel_id, parse_subscribers(info.subscribers), now, ctx.settings.tz
                    )
                    result.count(outcome)

                    channel = await db.get(Channel, channel_id)
                    channel.name = info.title or f"@{tg_id}"
                    channel.description = info.description
                    channel.verified = info.verified
                    channel.updated_at = to_utc(now)
                    await db.commit()
        except JOB_ERRORS as e:
            await db.rollback()
            _fail(result, tg_id, "info", e)
        except Exception as e:
            # Anything else still ends only this job
            await db.rollback()
            _fail(result, tg_id, "info", e, unexpected=True)

    logger.info(f"Parse channel info end @{tg_id}: {result.status.value}")
    return result


async def sync_channel_feed(ctx: SyncContext, channel_id: int) -> SyncResult:
    """
    Walk the channel feed newest-first, inserting unseen posts and
    reconciling views of known ones.

    Stops when the parser runs out of pages or when a page reports an
    elapsed time over CHANNEL_RUN_TIME_LIMIT. Every write is committed as
    it happens, so an early stop or a failure keeps the work done so far.
    """
    settings = ctx.settings
    result = SyncResult(job="feed", channel_id=channel_id)
    logger.info(f"Read channel feed #{channel_id}...")

    async with ctx.sessionmaker() as db:
        tg_id = await _load_tg_id(db, channel_id)
        if not tg_id:
            logger.warning(f"Wrong tgId. Channel: #{channel_id}, @{tg_id}")
            result.status = SyncStatus.SKIPPED
            return result

        try:
            last_published_at = await fetch_last_published_at(db, channel_id, settings.last_published_scope)
            until_published_at = compute_until_published_at(
                last_published_at, ctx.now(), settings.tz, settings.look_back_days
            )
            window = FeedWindow(until_published_at, settings.channel_run_time_limit, ctx.clock)

            pages = ctx.parser.parse_by_config(
                ctx.feed_config,
                {"tg_channel_id": tg_id, "until_published_at": until_published_at.isoformat()},
            )
            async with aclosing(pages):
                async for page in pages:
                    exceeded = window.exceeded(page)
                    result.run_time = window.run_time
                    logger.debug(f"@{tg_id} feed iteration {page.iteration}, run time {result.run_time:.0f} msec")
                    if exceeded:
                        logger.info(f"End run by time limit @{tg_id} ({result.run_time:.0f} msec)")
                        result.status = SyncStatus.TIME_LIMIT
                        break

                    result.pages += 1
                    await sync_feed_page(ctx, db, channel_id, page, window, result)
        except JOB_ERRORS as e:
            await db.rollback()
            _fail(result, tg_id, "feed", e)
        except Exception as e:
            # Anything else still ends only this job
            await db.rollback()
            _fail(result, tg_id, "feed", e, unexpected=True)

    logger.info(
        f"Parse channel feed end @{tg_id}: {result.status.value}, "
        f"{result.inserted} new, {result.updated} updated, {result.skipped} skipped"
    )
    return result


def _parse_messages(page: PageResult, channel_id: int) -> List[FeedMessage]:
    messages = []
    for raw in page.data.get("messages") or []:
        try:
            messages.append(FeedMessage.model_validate(raw))
        except ValidationError as e:
            logger.warning(f"Skipping malformed message on channel #{channel_id}: {e.errors()[0]['msg']}")
    return messages


async def sync_feed_page(
    ctx: SyncContext,
    db: AsyncSession,
    channel_id: int,
    page: PageResult,
    window: FeedWindow,
    result: SyncResult,
) -> None:
    messages = _parse_messages(page, channel_id)
    existing = await resolve_existing_posts(
        db, channel_id, [m.tg_message_id for m in messages], ctx.settings.message_key_scope
    )

    for message in messages:
        outcome = await sync_message(ctx, db, channel_id, message, existing, window)
        result.count(outcome)


async def sync_message(
    ctx: SyncContext,
    db: AsyncSession,
    channel_id: int,
    message: FeedMessage,
    existing: Dict[int, int],
    window: FeedWindow,
) -> ItemOutcome:
    if not window.accepts(message.published_at):
        return ItemOutcome.SKIPPED

    views = convert_to_full_number(message.views)
    post_id = existing.get(message.tg_message_id)
    if post_id is not None:
        return await reconcile_views(db, post_id, views, ctx.now())

    post_id = await insert_post(db, channel_id, message)
    existing[message.tg_message_id] = post_id
    await insert_views(db, post_id, views, ctx.now())
    if message.links:
        await record_links(db, channel_id, message.links)
    return ItemOutcome.INSERTED


def _media_duration(message: FeedMessage) -> int:
    return sum(convert_time_to_seconds(item.duration) for item in message.videos + message.voices)


async def insert_post(db: AsyncSession, channel_id: int, message: FeedMessage) -> int:
    forwarded_channel_id = None
    if message.forwarded_url:
        forwarded_channel_id = await resolve_channel_reference(db, message.forwarded_url)

    post = Post(
        tg_post_id=message.tg_message_id,
        channel_id=channel_id,
        words_count=get_words_count(message.text),
        images_count=len(message.images),
        videos_count=len(message.videos),
        voices_count=len(message.voices),
        duration=_media_duration(message),
        lang=detect_lang(message.text),
        forwarded=bool(message.forwarded_name or message.forwarded_url),
        forwarded_channel_id=forwarded_channel_id,
        published_at=message.published_at,
    )
    db.add(post)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise StorageError(f"Failed to insert post {message.tg_message_id} of channel #{channel_id}: {e}") from e
    return post.id


async def record_links(db: AsyncSession, channel_id: int, links: List[MessageLink]) -> None:
    """Store new http(s) links of the channel and make sure linked t.me channels exist."""
    urls = [link.url for link in links if is_valid_http_url(link.url)]
    if not urls:
        return

    result = await db.execute(
        select(ChannelLink.url).where(ChannelLink.channel_id == channel_id, ChannelLink.url.in_(urls))
    )
    found_links = set(result.scalars().all())

    for url in urls:
        if url not in found_links:
            db.add(ChannelLink(channel_id=channel_id, url=url, host=link_host(url)))
            await db.commit()
            found_links.add(url)

        if link_host(url) == "t.me":
            await resolve_channel_reference(db, url)
