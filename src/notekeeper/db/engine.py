"""Async SQLAlchemy engine and session factory.

Learn: SQLAlchemy 2.0 async mode — create_async_engine for connection pooling,
AsyncSession for per-request database access, dependency injection via FastAPI.

The request session is the outermost unit of work: services commit when
an operation succeeds, and anything that escapes a handler rolls back
whatever the session still holds before the connection goes back to the
pool.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from notekeeper.config import settings


def engine_options(url: str, debug: bool = False) -> dict:
    """Keyword arguments for create_async_engine for this database URL.

    Postgres gets a sized queue pool (5 warm, up to 20). SQLite, used for
    local runs and tests, has no queue pool and rejects sizing arguments.
    """
    options = {"echo": debug, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(pool_size=5, max_overflow=15)
    return options


engine = create_async_engine(
    settings.database_url,
    **engine_options(settings.database_url, settings.debug),
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """FastAPI dependency — one session per request, rolled back on error."""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
