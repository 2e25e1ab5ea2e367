"""
Worker process entry point.

    sitescan-worker --instances 4

Runs N TaskWorkers on one event loop. They share the HostQueue and the
UnifiedCache, so the per-host join and single-flight apply across them.
SIGINT/SIGTERM stop the workers after their current poll.
"""
import argparse
import asyncio
import logging
import signal
from typing import List, Optional

from sitescan.features.scan.runtime import ScanRuntime, build_runtime
from sitescan.features.scan.workers.task_worker import TaskWorker
from sitescan.platform.config import settings

logger = logging.getLogger(__name__)


def build_workers(runtime: ScanRuntime, instances: int) -> List[TaskWorker]:
    return [
        TaskWorker(
            store=runtime.store,
            cache=runtime.cache,
            analyzers=runtime.analyzers,
            publisher=runtime.publisher,
            name=f"worker-{i}",
        )
        for i in range(instances)
    ]


async def run_workers(instances: int = None, runtime: Optional[ScanRuntime] = None) -> None:
    instances = instances or settings.WORKER_INSTANCES
    runtime = runtime or build_runtime()
    workers = build_workers(runtime, instances)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda: [worker.stop() for worker in workers])
        except NotImplementedError:
            # Windows event loops have no signal handler support
            pass

    logger.info(f"Starting {instances} task workers")
    try:
        await asyncio.gather(*(worker.run_forever() for worker in workers))
    finally:
        await runtime.aclose()
        logger.info("All task workers stopped")


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run scan task workers")
    parser.add_argument("--instances", type=int, default=settings.WORKER_INSTANCES, help="number of workers to run")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    asyncio.run(run_workers(args.instances))


if __name__ == "__main__":
    main()
