# tgsync/database.py
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from tgsync.config import Settings

Base = declarative_base()


def create_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(settings.dsn)


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    # Rows stay readable after each per-item commit
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    from tgsync import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
