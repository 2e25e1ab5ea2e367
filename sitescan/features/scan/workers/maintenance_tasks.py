"""
Celery periodic maintenance tasks.

This module contains tasks that run on a schedule via Celery Beat.
"""
import asyncio
import logging

from celery import shared_task

from sitescan.features.scan.services.cache.durable_tier import DurableCacheTier
from sitescan.features.scan.services.store.scan_store import ScanStore
from sitescan.platform.async_db_helper import task_session_factory
from sitescan.platform.config import settings

logger = logging.getLogger(__name__)


async def _purge_expired_cache(session_factory) -> int:
    return await DurableCacheTier(session_factory).purge_expired()


async def _requeue_stale_tasks(session_factory, older_than_seconds: int) -> int:
    return await ScanStore(session_factory).requeue_stale_tasks(older_than_seconds)


async def _run_with_fresh_engine(fn, *args) -> int:
    async with task_session_factory() as session_factory:
        return await fn(session_factory, *args)


@shared_task(bind=True, name="sitescan.features.scan.workers.maintenance_tasks.purge_expired_cache")
def purge_expired_cache(self):
    """Delete analysis_cache rows past their expiry. Runs every 15 minutes via Celery Beat."""
    removed = asyncio.run(_run_with_fresh_engine(_purge_expired_cache))
    logger.info(f"Purged {removed} expired cache rows")
    return {"removed": removed}


@shared_task(bind=True, name="sitescan.features.scan.workers.maintenance_tasks.requeue_stale_tasks")
def requeue_stale_tasks(self, older_than_seconds: int = None):
    """
    Return tasks stuck in running back to queued.

    A task stays running when its worker process dies mid-analysis; after
    STALE_TASK_SECONDS it is handed to the next free worker.
    """
    older_than_seconds = older_than_seconds or settings.STALE_TASK_SECONDS
    requeued = asyncio.run(_run_with_fresh_engine(_requeue_stale_tasks, older_than_seconds))
    logger.info(f"Requeued {requeued} stale tasks (older than {older_than_seconds}s)")
    return {"requeued": requeued}
