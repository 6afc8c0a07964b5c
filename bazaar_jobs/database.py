"""Engine and sessions for the maintenance jobs.

Each job run opens its own short-lived session from ``async_session``; the
HTTP side only needs one for the health check.
"""

from collections.abc import AsyncGenerator

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from bazaar_jobs.config import settings

logger = structlog.get_logger()


def engine_options(url: str, *, production: bool, pool_size: int, debug: bool = False) -> dict:
    """Keyword arguments for ``create_async_engine``.

    Jobs hold at most one connection each, so the pool never overflows past
    ``pool_size``. Connections sit idle for hours between nightly runs and are
    pinged before reuse. SQLite (tests, local runs) takes no pool or SSL options.
    """
    if url.startswith("sqlite"):
        return {"echo": debug}

    options: dict = {
        "echo": debug,
        "pool_pre_ping": True,
        "pool_size": pool_size,
        "max_overflow": 0,
    }
    if production:
        options["connect_args"] = {"ssl": "require"}
    return options


engine = create_async_engine(
    settings.DATABASE_URL,
    **engine_options(
        settings.DATABASE_URL,
        production=settings.is_production,
        pool_size=settings.DB_POOL_SIZE,
        debug=settings.APP_DEBUG,
    ),
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def dispose_engine() -> None:
    """Close pooled connections on shutdown or at the end of a one-off run."""
    await engine.dispose()
    logger.info("db_engine_disposed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # Request handlers only read; the session is closed without committing
    async with async_session() as session:
        yield session
