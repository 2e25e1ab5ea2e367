import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from sitescan.features.scan.models.scan import Scan, ScanState
from sitescan.features.scan.models.scan_task import TaskStatus, TaskType
from sitescan.features.scan.services.analysis import AnalyzerSet
from sitescan.features.scan.services.cache.unified_cache import UnifiedCache
from sitescan.features.scan.workers.task_worker import TaskWorker
from sitescan.platform.exceptions import AnalyzerError

URL = "https://example.com"


def make_analyzers(calls=None, failing=(), slow=()):
    calls = calls if calls is not None else []

    def make(task_type):
        async def analyze(url):
            calls.append((task_type, url))
            if task_type in slow:
                await asyncio.sleep(0.3)
            if task_type in failing:
                raise AnalyzerError(f"{task_type} exploded")
            return {"type": task_type, "url": url, "schemaVersion": "1.1.0"}
        return analyze

    return AnalyzerSet(**{t.value: make(t.value) for t in TaskType})


def make_worker(store, cache, analyzers, **kwargs):
    kwargs.setdefault("idle_seconds", 2.0)
    kwargs.setdefault("backoff_seconds", 5.0)
    return TaskWorker(store=store, cache=cache, analyzers=analyzers, **kwargs)


async def drain(worker, limit=20):
    for _ in range(limit):
        if await worker.poll_once() != 0:
            return


@pytest.mark.asyncio
async def test_idle_when_nothing_is_queued(store, cache):
    worker = make_worker(store, cache, make_analyzers())
    assert await worker.poll_once() == 2.0


@pytest.mark.asyncio
async def test_all_tasks_succeed_and_scan_completes(store, cache):
    calls = []
    worker = make_worker(store, cache, make_analyzers(calls))
    scan, _, _ = await store.create_scan(URL)

    await drain(worker)

    status = await store.get_scan_status(scan.id)
    assert status.status == ScanState.complete
    assert status.progress == 100

    for task in await store.list_tasks(scan.id):
        assert task.status == TaskStatus.complete
        assert task.payload == {"cache_key": cache.generate_cache_key(task.type.value, URL)}
        assert await cache.get(task.type.value, URL) == {
            "type": task.type.value, "url": URL, "schemaVersion": "1.1.0"
        }
    assert len(calls) == 4


@pytest.mark.asyncio
async def test_progress_moves_with_settled_tasks(store, cache):
    worker = make_worker(store, cache, make_analyzers())
    scan, _, _ = await store.create_scan(URL)

    assert await worker.poll_once() == 0
    status = await store.get_scan_status(scan.id)
    assert status.status == ScanState.running
    assert status.progress == 25


@pytest.mark.asyncio
async def test_one_failure_does_not_block_completion(store, cache):
    worker = make_worker(store, cache, make_analyzers(failing={"seo"}))
    scan, _, _ = await store.create_scan(URL)

    await drain(worker)

    tasks = {t.type: t for t in await store.list_tasks(scan.id)}
    assert tasks[TaskType.seo].status == TaskStatus.failed
    assert tasks[TaskType.seo].payload == {"error": "seo exploded"}
    assert all(tasks[t].status == TaskStatus.complete for t in (TaskType.tech, TaskType.colors, TaskType.perf))

    status = await store.get_scan_status(scan.id)
    assert status.status == ScanState.complete
    assert status.progress == 100


@pytest.mark.asyncio
async def test_second_scan_of_same_url_is_served_from_cache(store, cache):
    calls = []
    worker = make_worker(store, cache, make_analyzers(calls))

    first, _, _ = await store.create_scan(URL)
    await drain(worker)
    second, _, _ = await store.create_scan(URL)
    await drain(worker)

    assert len(calls) == 4
    assert (await store.get_scan_status(second.id)).status == ScanState.complete
    assert all(t.status == TaskStatus.complete for t in await store.list_tasks(second.id))


@pytest.mark.asyncio
async def test_concurrent_workers_share_computation(store, cache):
    calls = []
    analyzers = make_analyzers(calls)
    workers = [make_worker(store, cache, analyzers, name=f"worker-{i}") for i in range(3)]

    scans = [(await store.create_scan(URL))[0] for _ in range(2)]
    await asyncio.gather(*(drain(worker) for worker in workers))

    for scan in scans:
        assert (await store.get_scan_status(scan.id)).status == ScanState.complete
    assert sorted(t for t, _ in calls) == ["colors", "perf", "seo", "tech"]


@pytest.mark.asyncio
async def test_analyzer_deadline_fails_the_task(store, cache):
    worker = make_worker(store, cache, make_analyzers(slow={"perf"}), task_timeout=0.05)
    scan, _, _ = await store.create_scan(URL, task_types=[TaskType.perf])

    assert await worker.poll_once() == 0

    task = await store.get_task(scan.id, TaskType.perf)
    assert task.status == TaskStatus.failed
    assert "timed out" in task.payload["error"]
    assert (await store.get_scan_status(scan.id)).status == ScanState.complete

    # the shared computation keeps running after the deadline
    while cache.in_flight_keys():
        await asyncio.sleep(0.05)


@pytest.mark.asyncio
async def test_missing_scan_fails_only_that_task(store, cache, session_factory):
    calls = []
    worker = make_worker(store, cache, make_analyzers(calls))
    scan, _, _ = await store.create_scan(URL, task_types=[TaskType.tech])
    async with session_factory() as db:
        await db.execute(delete(Scan).where(Scan.id == scan.id))
        await db.commit()

    assert await worker.poll_once() == 0

    task = await store.get_task(scan.id, TaskType.tech)
    assert task.status == TaskStatus.failed
    assert "not found" in task.payload["error"]
    assert calls == []


@pytest.mark.asyncio
async def test_store_fault_backs_off_without_touching_tasks(cache):
    store = MagicMock()
    store.claim_next_queued_task = AsyncMock(side_effect=SQLAlchemyError("connection refused"))
    store.set_task_status = AsyncMock()
    worker = make_worker(store, cache, make_analyzers())

    assert await worker.poll_once() == 5.0
    assert await worker.poll_once() == 5.0
    store.set_task_status.assert_not_awaited()


@pytest.mark.asyncio
async def test_progress_events_are_published(store, cache):
    publisher = MagicMock()
    publisher.publish = AsyncMock(return_value=True)
    worker = make_worker(store, cache, make_analyzers(failing={"tech"}), publisher=publisher)
    scan, _, _ = await store.create_scan(URL, task_types=[TaskType.tech, TaskType.seo])

    await drain(worker)

    events = [c.args[1] for c in publisher.publish.await_args_list]
    assert events[-1] == "scan_complete"
    assert sorted(events[:-1]) == ["task_complete", "task_failed", "task_started", "task_started"]
    assert all(c.args[0] == scan.id for c in publisher.publish.await_args_list)


@pytest.mark.asyncio
async def test_run_forever_stops(store, cache):
    worker = make_worker(store, cache, make_analyzers(), idle_seconds=0.01)
    runner = asyncio.ensure_future(worker.run_forever())
    await asyncio.sleep(0.05)
    worker.stop()
    await asyncio.wait_for(runner, timeout=1)
    assert runner.done()


@pytest.mark.asyncio
async def test_schema_version_bump_forces_recompute(store, durable):
    calls = []

    async def analyze(url):
        calls.append(url)
        return {"score": len(calls)}

    analyzers = AnalyzerSet(tech=analyze, colors=analyze, seo=analyze, perf=analyze)

    old_worker = make_worker(store, UnifiedCache(durable=durable, schema_version="1.1.0"), analyzers)
    await store.create_scan(URL, task_types=[TaskType.seo])
    await drain(old_worker)

    new_cache = UnifiedCache(durable=durable, schema_version="2.0.0")
    new_worker = make_worker(store, new_cache, analyzers)
    await store.create_scan(URL, task_types=[TaskType.seo])
    await drain(new_worker)

    assert len(calls) == 2
    assert await new_cache.get("seo", URL) == {"score": 2, "schemaVersion": "2.0.0"}


@pytest.mark.asyncio
async def test_unreachable_store_backs_off(unreachable_store, cache):
    worker = make_worker(unreachable_store, cache, make_analyzers())
    assert await worker.poll_once() == 5.0
