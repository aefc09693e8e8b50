"""Database engine and session handling."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from archplan.config import Settings
from archplan.models import Base


def create_engine(settings: Settings, **kwargs) -> AsyncEngine:
    """Create the async engine for ``settings.database_url``."""
    return create_async_engine(settings.database_url, echo=False, **kwargs)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables. Production schemas are managed by Alembic migrations."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
