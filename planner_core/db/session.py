from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from planner_core.core.config import settings
from planner_core.db.base import Base
from planner_core.db import models  # noqa: F401


def make_engine(url: Optional[str] = None) -> AsyncEngine:
    return create_async_engine(url or settings.AUDIT_DATABASE_URL, echo=False, future=True)


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
