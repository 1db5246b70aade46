# tgsync/services/resolver.py
from typing import Dict, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tgsync.models import Post


async def resolve_existing_posts(
    db: AsyncSession,
    channel_id: int,
    tg_post_ids: Iterable[int],
    scope: str = "channel",
) -> Dict[int, int]:
    """
    Map the external message ids seen on a page to existing post ids.

    One query per page. Ids missing from the result are new. With
    ``scope="global"`` the owning channel is ignored, matching any post
    with the same external id.
    """
    found_ids = {tg_id for tg_id in tg_post_ids if tg_id is not None}
    if not found_ids:
        return {}

    query = select(Post.tg_post_id, Post.id).where(Post.tg_post_id.in_(found_ids))
    if scope != "global":
        query = query.where(Post.channel_id == channel_id)
    else:
        query = query.order_by(Post.id)

    existing: Dict[int, int] = {}
    for tg_post_id, post_id in (await db.execute(query)).all():
        existing.setdefault(tg_post_id, post_id)
    return existing
