# tgsync/services/relationships.py
import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tgsync.models import Channel
from tgsync.utils import is_bot_handle, is_invite_reference, parse_tg_url

logger = logging.getLogger(__name__)


async def find_channel_id(db: AsyncSession, tg_id: str) -> Optional[int]:
    # Handles are case-insensitive on Telegram
    result = await db.execute(
        select(Channel.id).where(func.lower(Channel.tg_id) == tg_id.lower()).order_by(Channel.id).limit(1)
    )
    return result.scalar_one_or_none()


async def create_stub_channel(db: AsyncSession, tg_id: str) -> int:
    """Insert a name-only channel that a later info sync fills in."""
    channel = Channel(tg_id=tg_id, name=f"@{tg_id}")
    db.add(channel)
    await db.commit()
    logger.info(f"Created stub channel @{tg_id} (#{channel.id})")
    return channel.id


async def resolve_channel_reference(db: AsyncSession, url: Optional[str]) -> Optional[int]:
    """
    Resolve the channel a t.me reference points at, creating a stub if needed.

    Returns None when the reference has no usable handle, or when it names
    a bot or an invite link that is not already a tracked channel.
    """
    tg_id, _ = parse_tg_url(url)
    if not tg_id:
        logger.debug(f"Unresolvable channel reference: {url}")
        return None

    channel_id = await find_channel_id(db, tg_id)
    if channel_id is not None:
        return channel_id

    if is_bot_handle(tg_id) or is_invite_reference(tg_id) or is_invite_reference(url):
        logger.debug(f"Not creating channel for excluded reference: {url}")
        return None

    return await create_stub_channel(db, tg_id)
