"""
Task worker loop.

Each poll claims at most one queued ScanTask, runs its analyzer through the
unified cache under a deadline, records the outcome on the task row and
rolls the scan's aggregate status forward.
"""
import asyncio
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from sitescan.features.scan.models.scan import ScanState
from sitescan.features.scan.models.scan_task import ScanTask, TaskStatus
from sitescan.features.scan.services.analysis import AnalyzerSet
from sitescan.features.scan.services.cache.unified_cache import UnifiedCache
from sitescan.features.scan.services.store.scan_store import ScanStore
from sitescan.features.scan.workers.progress_publisher import (
    ProgressPublisher,
    SCAN_COMPLETE,
    TASK_COMPLETE,
    TASK_FAILED,
    TASK_STARTED,
)
from sitescan.platform.config import settings
from sitescan.platform.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

STORE_FAULTS = (SQLAlchemyError, OSError, StoreUnavailableError)


class TaskWorker:
    def __init__(
        self,
        store: ScanStore,
        cache: UnifiedCache,
        analyzers: AnalyzerSet,
        publisher: Optional[ProgressPublisher] = None,
        idle_seconds: float = None,
        backoff_seconds: float = None,
        task_timeout: float = None,
        name: str = "worker-0",
    ):
        self.store = store
        self.cache = cache
        self.analyzers = analyzers
        self.publisher = publisher
        self.idle_seconds = settings.WORKER_IDLE_SECONDS if idle_seconds is None else idle_seconds
        self.backoff_seconds = settings.WORKER_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        self.task_timeout = task_timeout or settings.TASK_TIMEOUT_SECONDS
        self.name = name
        self._stopping = asyncio.Event()

    async def poll_once(self) -> float:
        """
        Run one iteration and return how long to sleep before the next.

        0 after a processed task, the idle interval when nothing is queued,
        the backoff interval when the store is unreachable.
        """
        try:
            task = await self.store.claim_next_queued_task()
        except STORE_FAULTS as e:
            logger.error(f"[{self.name}] Could not claim a task, backing off: {e}")
            return self.backoff_seconds

        if task is None:
            return self.idle_seconds

        try:
            await self.process_task(task)
        except STORE_FAULTS as e:
            # the task stays running; requeue_stale_tasks returns it to the queue
            logger.error(f"[{task.task_id}] Store fault while processing, backing off: {e}")
            return self.backoff_seconds
        return 0

    async def process_task(self, task: ScanTask) -> TaskStatus:
        """Run an already-claimed task to a terminal status."""
        scan_id = task.scan_id
        logger.info(f"[{task.task_id}] {self.name} picked up {task.type.value} task for scan {scan_id}")

        await self.store.set_scan_status(scan_id, ScanState.running)
        await self._publish(scan_id, TASK_STARTED, task_id=task.task_id, task_type=task.type.value)

        scan = await self.store.get_scan(scan_id)
        if scan is None:
            outcome = await self._fail(task, f"Scan {scan_id} not found")
        else:
            analyzer = self.analyzers.for_type(task.type)
            try:
                await asyncio.wait_for(
                    self.cache.get_or_compute(task.type.value, scan.url, lambda: analyzer(scan.url)),
                    timeout=self.task_timeout,
                )
            except asyncio.TimeoutError:
                outcome = await self._fail(task, f"{task.type.value} analysis timed out after {self.task_timeout}s")
            except STORE_FAULTS:
                raise
            except Exception as e:
                outcome = await self._fail(task, str(e) or e.__class__.__name__)
            else:
                cache_key = self.cache.generate_cache_key(task.type.value, scan.url)
                await self.store.set_task_status(task.task_id, TaskStatus.complete, payload={"cache_key": cache_key})
                logger.info(f"[{task.task_id}] {task.type.value} task complete")
                await self._publish(scan_id, TASK_COMPLETE, task_id=task.task_id, task_type=task.type.value)
                outcome = TaskStatus.complete

        await self._roll_scan_status(scan_id)
        return outcome

    async def _fail(self, task: ScanTask, message: str) -> TaskStatus:
        logger.error(f"[{task.task_id}] {task.type.value} task failed: {message}")
        await self.store.set_task_status(task.task_id, TaskStatus.failed, payload={"error": message})
        await self._publish(task.scan_id, TASK_FAILED, task_id=task.task_id, task_type=task.type.value, error=message)
        return TaskStatus.failed

    async def _roll_scan_status(self, scan_id: str) -> None:
        unsettled = await self.store.count_unsettled_tasks(scan_id)
        if unsettled == 0:
            if await self.store.set_scan_status(scan_id, ScanState.complete, progress=100):
                logger.info(f"[{scan_id}] All tasks settled, scan complete")
                await self._publish(scan_id, SCAN_COMPLETE, progress=100)
            return

        total = await self.store.count_tasks(scan_id)
        progress = int((total - unsettled) * 100 / total) if total else 0
        await self.store.set_scan_status(scan_id, ScanState.running, progress=progress)

    async def _publish(self, scan_id: str, event_type: str, **data) -> None:
        if self.publisher is not None:
            await self.publisher.publish(scan_id, event_type, data)

    async def run_forever(self) -> None:
        logger.info(f"[{self.name}] Worker started")
        while not self._stopping.is_set():
            delay = await self.poll_once()
            if delay:
                try:
                    await asyncio.wait_for(self._stopping.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
        logger.info(f"[{self.name}] Worker stopped")

    def stop(self) -> None:
        self._stopping.set()
