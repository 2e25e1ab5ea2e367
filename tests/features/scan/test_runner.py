import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from sitescan.features.scan.runtime import ScanRuntime, build_runtime
from sitescan.features.scan.services.queue.host_queue import HostQueue
from sitescan.features.scan.workers import runner


def test_build_runtime_shares_one_queue(session_factory):
    runtime = build_runtime(session_factory, browser=MagicMock())

    assert runtime.publisher is None
    assert runtime.store.session_factory is session_factory
    assert runtime.cache.durable.session_factory is session_factory
    assert runtime.analyzers.colors.keywords["queue"] is runtime.queue
    assert runtime.analyzers.perf.keywords["queue"] is runtime.queue


def test_build_workers(store, cache):
    runtime = ScanRuntime(store=store, cache=cache, queue=HostQueue(concurrency=1), analyzers=MagicMock())
    workers = runner.build_workers(runtime, 3)

    assert [w.name for w in workers] == ["worker-0", "worker-1", "worker-2"]
    assert all(w.cache is cache and w.store is store for w in workers)


@pytest.mark.asyncio
async def test_run_workers_until_stopped(cache):
    store = MagicMock()
    store.claim_next_queued_task = AsyncMock(return_value=None)
    runtime = ScanRuntime(store=store, cache=cache, queue=HostQueue(concurrency=1), analyzers=MagicMock())
    started = []

    original = runner.build_workers

    def build_and_stop(rt, instances):
        workers = original(rt, instances)
        for worker in workers:
            worker.idle_seconds = 0.01
        started.extend(workers)
        asyncio.get_running_loop().call_later(0.05, lambda: [w.stop() for w in workers])
        return workers

    with patch.object(runner, "build_workers", build_and_stop):
        await asyncio.wait_for(runner.run_workers(2, runtime=runtime), timeout=2)

    assert len(started) == 2
    assert store.claim_next_queued_task.await_count >= 2


def test_main_parses_instances():
    with patch.object(runner, "run_workers", new=MagicMock(return_value="coro")) as run_workers, \
            patch.object(runner.asyncio, "run") as asyncio_run:
        runner.main(["--instances", "4"])

    run_workers.assert_called_once_with(4)
    asyncio_run.assert_called_once_with("coro")
