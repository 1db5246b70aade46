# tgsync/routers/sync_router.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from tgsync import schemas
from tgsync.controllers.channel_controller import SyncContext
from tgsync.controllers.sync_controller import run_sync_batch

logger = logging.getLogger(__name__)

router = APIRouter()


def get_sync_context(request: Request) -> SyncContext:
    return request.app.state.sync_context


@router.post("/sync", response_model=schemas.SyncResponse)
async def sync_channels(ctx: SyncContext = Depends(get_sync_context)):
    try:
        report = await run_sync_batch(ctx)
    except Exception as e:
        logger.error("Sync batch failed", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    return schemas.SyncResponse(
        status="success",
        new_posts_found=sum(r.inserted for c in report.channels for r in c.results if r.job == "feed"),
        overall_run_time=report.overall_run_time,
        channels_synced=[c.tg_id for c in report.channels],
    )
