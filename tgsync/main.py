# tgsync/main.py
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from tgsync.config import load_settings, require_parse_config
from tgsync.controllers.channel_controller import SyncContext
from tgsync.database import create_engine, create_sessionmaker, init_models
from tgsync.routers import sync_router
from tgsync.runner import setup_logging
from tgsync.services.telegram_service import TelegramWebService


def create_app(sync_context: Optional[SyncContext] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if sync_context is not None:
            app.state.sync_context = sync_context
            yield
            return

        settings = load_settings()
        setup_logging(settings.log_level)
        engine = create_engine(settings)
        async with AsyncExitStack() as stack:
            stack.push_async_callback(engine.dispose)
            # Create all database tables on startup
            await init_models(engine)
            parser = await stack.enter_async_context(
                TelegramWebService(timeout=settings.request_timeout_seconds)
            )
            app.state.sync_context = SyncContext(
                settings=settings,
                sessionmaker=create_sessionmaker(engine),
                parser=parser,
                info_config=require_parse_config(settings, "channel_info"),
                feed_config=require_parse_config(settings, "channel_feed"),
            )
            yield

    app = FastAPI(
        title="Telegram Channel Sync",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.include_router(sync_router.router, tags=["Sync"])

    @app.get("/")
    def read_root():
        return {"message": "Channel sync is running. Use POST /sync to run a batch."}

    return app


app = create_app()
