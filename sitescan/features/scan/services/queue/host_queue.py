"""
Per-host throttled job queue.

Bounds how many expensive (headless browser) jobs run at once and keeps at
most one job in flight per target host. A caller that submits work for a
host that already has a job in flight joins that job's result instead of
starting a second browser session against the same site.
"""
import asyncio
import inspect
import time
from collections import deque
from dataclasses import dataclass, asdict
from typing import Any, Callable, Deque, Dict, List, Set
from urllib.parse import urlparse

from sitescan.platform.config import settings
from sitescan.platform.exceptions import QueueClearedError, QueueTimeoutError
from sitescan.platform.logger import get_logger

logger = get_logger(__name__)

JobFn = Callable[[], Any]


@dataclass
class QueueStats:
    queue_size: int
    pending_count: int
    concurrency_limit: int
    active_hosts: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class _QueuedJob:
    host: str
    label: str
    job_fn: JobFn
    future: asyncio.Future


def extract_host(url: str) -> str:
    """Hostname of `url`, or the URL itself when it has no parsable host."""
    try:
        host = urlparse(url).hostname
    except ValueError:
        host = None
    return host or url


class HostQueue:
    """
    Bounded worker pool with a host-keyed join on top.

    Owned state (waiting jobs, running jobs, host markers) is only mutated
    from the event loop that calls `submit`. Create one instance per process
    and share it between every analyzer that drives a browser.

    `job_fn` may be a coroutine function, which is awaited, or a plain
    blocking callable (Selenium), which runs in a worker thread. A timed-out
    job fails its callers at the deadline, but keeps its slot and its host
    until the thread returns; submissions for that host meanwhile get the
    same QueueTimeoutError.
    """

    def __init__(self, concurrency: int = None, timeout: float = None):
        self.concurrency = concurrency or settings.QUEUE_CONCURRENCY
        self.timeout = timeout or settings.QUEUE_TIMEOUT_SECONDS
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self._waiting: Deque[_QueuedJob] = deque()
        self._running: Set[asyncio.Task] = set()
        self._host_jobs: Dict[str, asyncio.Future] = {}

    async def submit(self, url: str, job_fn: JobFn, label: str = "browser-task") -> Any:
        host = extract_host(url)

        existing = self._host_jobs.get(host)
        if existing is not None:
            logger.info(f"Host {host} already has a job in flight, joining it ({label})")
            return await asyncio.shield(existing)

        future = asyncio.get_running_loop().create_future()
        self._host_jobs[host] = future
        self._waiting.append(_QueuedJob(host=host, label=label, job_fn=job_fn, future=future))
        self._drain()
        return await asyncio.shield(future)

    def stats(self) -> QueueStats:
        return QueueStats(
            queue_size=len(self._waiting),
            pending_count=len(self._running),
            concurrency_limit=self.concurrency,
            active_hosts=list(self._host_jobs.keys()),
        )

    def clear(self) -> None:
        """Drop queued (not started) jobs and all host markers. For resets and tests only."""
        dropped = 0
        while self._waiting:
            job = self._waiting.popleft()
            if not job.future.done():
                job.future.set_exception(
                    QueueClearedError(f"{job.label} for {job.host} was dropped before it started")
                )
            dropped += 1
        self._host_jobs.clear()
        logger.info(f"Queue cleared, dropped {dropped} queued jobs")

    def _drain(self) -> None:
        while self._waiting and len(self._running) < self.concurrency:
            job = self._waiting.popleft()
            task = asyncio.ensure_future(self._run(job))
            self._running.add(task)
            task.add_done_callback(self._on_job_done)

    def _on_job_done(self, task: asyncio.Task) -> None:
        self._running.discard(task)
        self._drain()

    async def _run(self, job: _QueuedJob) -> None:
        logger.info(f"Starting {job.label} for {job.host} (queue size: {len(self._waiting)})")
        start_time = time.monotonic()
        work = asyncio.ensure_future(self._invoke(job.job_fn))
        try:
            result = await asyncio.wait_for(asyncio.shield(work), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"{job.label} for {job.host} timed out after {self.timeout}s")
            self._settle(job, error=QueueTimeoutError(
                f"{job.label} for {job.host} timed out after {self.timeout}s"
            ))
            await self._wait_out(job, work)
        except asyncio.CancelledError:
            work.cancel()
            raise
        except Exception as e:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            logger.error(f"Failed {job.label} for {job.host} after {duration_ms}ms: {e}")
            self._settle(job, error=e)
        else:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            logger.info(f"Completed {job.label} for {job.host} in {duration_ms}ms")
            self._settle(job, result=result)
        finally:
            self._release_host(job)
            if not job.future.done():
                # cancelled while running (shutdown)
                job.future.cancel()

    async def _wait_out(self, job: _QueuedJob, work: asyncio.Future) -> None:
        """
        Hold the slot and the host marker until a timed-out job has really stopped.

        Coroutine jobs are cancelled. A thread cannot be interrupted, so the
        queue waits for the blocking call to return.
        """
        if inspect.iscoroutinefunction(job.job_fn):
            work.cancel()
        else:
            logger.warning(f"{job.label} for {job.host} still running in its thread, holding the slot")
        await asyncio.wait({work})
        if not work.cancelled() and work.exception() is not None:
            logger.error(f"Timed-out {job.label} for {job.host} later failed: {work.exception()}")
        logger.info(f"Timed-out {job.label} for {job.host} released its slot")

    def _settle(self, job: _QueuedJob, result: Any = None, error: BaseException = None) -> None:
        if job.future.done():
            return
        if error is not None:
            job.future.set_exception(error)
        else:
            job.future.set_result(result)

    def _release_host(self, job: _QueuedJob) -> None:
        # a clear() may have let a newer job claim the host
        if self._host_jobs.get(job.host) is job.future:
            del self._host_jobs[job.host]

    @staticmethod
    async def _invoke(job_fn: JobFn) -> Any:
        if inspect.iscoroutinefunction(job_fn):
            return await job_fn()
        result = await asyncio.to_thread(job_fn)
        if inspect.isawaitable(result):
            return await result
        return result
