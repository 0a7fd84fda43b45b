from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.core.config import settings


def _engine_options(database_url: str) -> dict:
    # pool_pre_ping: check connection is alive before use (idle connections closed by DB or network).
    # pool_recycle: discard connections after this many seconds.
    options = {"echo": False, "pool_pre_ping": True, "pool_recycle": 300}
    if database_url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
    return options


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

# expire_on_commit=False: rollover results are built from ORM objects after commit.
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request. Services that write own their commit/rollback."""
    async with AsyncSessionLocal() as session:
        yield session
