import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import update

from sitescan.features.scan.models.scan_task import ScanTask, TaskStatus, TaskType
from sitescan.features.scan.services.cache.durable_tier import DurableCacheTier
from sitescan.features.scan.services.store.scan_store import ScanStore
from sitescan.features.scan.workers import maintenance_tasks
from sitescan.platform.async_db_helper import task_session_factory
from sitescan.platform.db.base import Base
from sitescan.platform.db.session import build_engine

URL = "https://example.com"


@pytest.mark.asyncio
async def test_purge_expired_cache_helper(session_factory):
    durable = DurableCacheTier(session_factory)
    await durable.store("seo_old", URL, {"score": 1}, expires_at=datetime.utcnow() - timedelta(minutes=1))
    await durable.store("seo_new", URL, {"score": 2}, expires_at=datetime.utcnow() + timedelta(hours=1))

    assert await maintenance_tasks._purge_expired_cache(session_factory) == 1
    assert await durable.fetch("seo_new") is not None


@pytest.mark.asyncio
async def test_requeue_stale_tasks_helper(session_factory):
    store = ScanStore(session_factory)
    scan, _, _ = await store.create_scan(URL, task_types=[TaskType.perf])
    task = await store.claim_next_queued_task()
    async with session_factory() as db:
        await db.execute(
            update(ScanTask)
            .where(ScanTask.task_id == task.task_id)
            .values(started_at=datetime.utcnow() - timedelta(hours=2))
        )
        await db.commit()

    assert await maintenance_tasks._requeue_stale_tasks(session_factory, 3600) == 1
    assert (await store.get_task(scan.id, TaskType.perf)).status == TaskStatus.queued


def test_celery_task_runs_on_a_fresh_engine(database_url):
    async def seed():
        engine = build_engine(database_url)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        await engine.dispose()
        async with task_session_factory(database_url) as session_factory:
            await DurableCacheTier(session_factory).store(
                "tech_old", URL, {"v": 1}, expires_at=datetime(2000, 1, 1)
            )

    asyncio.run(seed())

    @asynccontextmanager
    async def factory():
        async with task_session_factory(database_url) as session_factory:
            yield session_factory

    with patch.object(maintenance_tasks, "task_session_factory", factory):
        assert maintenance_tasks.purge_expired_cache.apply().get() == {"removed": 1}
        assert maintenance_tasks.requeue_stale_tasks.apply(kwargs={"older_than_seconds": 60}).get() == {"requeued": 0}


def test_beat_schedule_registers_maintenance_tasks():
    from sitescan.platform.celery_app import celery_app

    tasks = {entry["task"] for entry in celery_app.conf.beat_schedule.values()}
    assert tasks == {
        "sitescan.features.scan.workers.maintenance_tasks.purge_expired_cache",
        "sitescan.features.scan.workers.maintenance_tasks.requeue_stale_tasks",
    }
