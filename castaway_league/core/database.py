import logging
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from castaway_league.core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def make_engine(url: str):
    if url.startswith("sqlite"):
        # busy timeout so concurrent writers queue instead of failing
        return create_async_engine(url, echo=settings.debug, connect_args={"timeout": 30.0})
    return create_async_engine(url, echo=settings.debug, pool_pre_ping=True)


engine = make_engine(settings.database_url)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


async def get_db():
    """FastAPI dependency: one session per request, committed if the handler succeeds."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def atomic(db: AsyncSession):
    """
    Run a unit of work as a single transaction.

    Commits when the block exits cleanly; on any exception everything written
    inside the block is rolled back and the exception propagates.
    """
    try:
        yield db
        await db.commit()
    except Exception:
        await db.rollback()
        raise
