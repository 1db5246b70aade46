# tgsync/services/metrics.py
"""
Metric writes under the two lifecycle policies.

Subscribers keep one snapshot per entity per local calendar day, updated
in place. Views keep one row per post, rewritten only when the observed
value changes.
"""
from datetime import datetime, tzinfo
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tgsync.models import Metric
from tgsync.schemas import ItemOutcome
from tgsync.utils import local_day_window, to_utc

CHANNEL = "channel"
POST = "post"
SUBSCRIBERS = "subscribers"
VIEWS = "views"


async def record_daily_snapshot(
    db: AsyncSession,
    entity_type: str,
    entity_id: int,
    metric_type: str,
    value: int,
    now: datetime,
    tz: tzinfo,
) -> ItemOutcome:
    day_start, day_end = local_day_window(now, tz)
    result = await db.execute(
        select(Metric)
        .where(
            Metric.entity_type == entity_type,
            Metric.entity_id == entity_id,
            Metric.type == metric_type,
            Metric.created_at >= day_start,
            Metric.created_at < day_end,
        )
        .order_by(Metric.id)
        .limit(1)
    )
    metric = result.scalar_one_or_none()

    if metric is None:
        db.add(Metric(
            entity_type=entity_type,
            entity_id=entity_id,
            type=metric_type,
            value=value,
            created_at=to_utc(now),
        ))
        outcome = ItemOutcome.INSERTED
    elif metric.value != value:
        metric.value = value
        outcome = ItemOutcome.UPDATED
    else:
        return ItemOutcome.UNCHANGED

    await db.commit()
    return outcome


async def record_subscribers(db: AsyncSession, channel_id: int, value: int, now: datetime, tz: tzinfo) -> ItemOutcome:
    return await record_daily_snapshot(db, CHANNEL, channel_id, SUBSCRIBERS, value, now, tz)


async def get_latest_metric(db: AsyncSession, entity_type: str, entity_id: int, metric_type: str) -> Optional[Metric]:
    result = await db.execute(
        select(Metric)
        .where(
            Metric.entity_type == entity_type,
            Metric.entity_id == entity_id,
            Metric.type == metric_type,
        )
        .order_by(Metric.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def insert_views(db: AsyncSession, post_id: int, value: int, now: datetime) -> None:
    db.add(Metric(entity_type=POST, entity_id=post_id, type=VIEWS, value=value, created_at=to_utc(now)))
    await db.commit()


async def reconcile_views(db: AsyncSession, post_id: int, value: int, now: datetime) -> ItemOutcome:
    metric = await get_latest_metric(db, POST, post_id, VIEWS)
    if metric is None:
        await insert_views(db, post_id, value, now)
        return ItemOutcome.UPDATED
    if metric.value == value:
        return ItemOutcome.UNCHANGED

    metric.value = value
    await db.commit()
    return ItemOutcome.UPDATED
