# tgsync/controllers/sync_controller.py
import asyncio
import logging
from typing import List, Tuple

from sqlalchemy import select, update

from tgsync.controllers.channel_controller import SyncContext, sync_channel_feed, sync_channel_info
from tgsync.models import Channel
from tgsync.schemas import BatchReport, ChannelReport
from tgsync.utils import is_bot_handle, to_utc

logger = logging.getLogger(__name__)


async def claim_channels(ctx: SyncContext, count: int) -> List[Tuple[int, str, str]]:
    """
    Select the least recently synced channels and mark them as synced now.

    The touch happens before any processing so a crash mid-batch does not
    put the same channels at the head of the next selection.
    """
    async with ctx.sessionmaker() as db:
        result = await db.execute(
            select(Channel.id, Channel.name, Channel.tg_id)
            .order_by(Channel.updated_at.asc().nulls_first(), Channel.id)
            .limit(count)
        )
        channels = [tuple(row) for row in result.all()]

        if channels:
            await db.execute(
                update(Channel)
                .where(Channel.id.in_([channel_id for channel_id, _, _ in channels]))
                .values(updated_at=to_utc(ctx.now()))
            )
            await db.commit()
    return channels


async def sync_channel(ctx: SyncContext, channel_id: int, tg_id: str) -> ChannelReport:
    """Run info and feed sync for one channel side by side and sum their run times."""
    results = await asyncio.gather(
        sync_channel_info(ctx, channel_id),
        sync_channel_feed(ctx, channel_id),
    )
    total_run_time = sum(r.run_time for r in results)
    return ChannelReport(channel_id=channel_id, tg_id=tg_id, run_time=total_run_time, results=list(results))


async def run_sync_batch(ctx: SyncContext) -> BatchReport:
    settings = ctx.settings
    channels = await claim_channels(ctx, settings.fetch_channels_count)
    report = BatchReport(selected=len(channels))

    for channel_id, name, tg_id in channels:
        if report.overall_run_time > settings.overall_run_time_limit:
            logger.info(f"Overall run time limit reached ({report.overall_run_time:.0f} msec), leaving the rest")
            report.budget_exhausted = True
            break

        if is_bot_handle(tg_id):
            logger.info(f"Skipping bot account @{tg_id} ({channel_id})")
            continue

        logger.info(f"Start: {name} ({channel_id}). Overall run time: {report.overall_run_time:.0f} msec")
        channel_report = await sync_channel(ctx, channel_id, tg_id)
        logger.info(f"Total run time: {channel_report.run_time:.0f} msec")

        report.channels.append(channel_report)
        report.overall_run_time += channel_report.run_time

    logger.info(f"Finished. Overall run time: {report.overall_run_time:.0f} msec")
    return report
