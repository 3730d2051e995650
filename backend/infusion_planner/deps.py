from datetime import datetime
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings, get_settings
from .database import async_session


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


def get_app_settings() -> Settings:
    return get_settings()


def get_now() -> datetime:
    """Wall clock for time-relative queries; overridden in tests."""
    return datetime.now()
