"""
Async Database Helper for Celery Tasks

Celery tasks are synchronous and drive async code through asyncio.run(),
which creates a new event loop per call. Pooled asyncpg connections are
bound to the loop that opened them, so every run gets its own engine.
"""

from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sitescan.platform.db.session import build_engine


@asynccontextmanager
async def task_session_factory(database_url: str = None):
    """
    Session factory on a fresh engine, disposed on exit.

    Usage in Celery task:
        async def _work():
            async with task_session_factory() as session_factory:
                store = ScanStore(session_factory)
                ...

        asyncio.run(_work())
    """
    engine = build_engine(database_url)
    try:
        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    finally:
        await engine.dispose()
