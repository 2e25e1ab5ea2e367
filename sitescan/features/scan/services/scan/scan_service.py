import logging
from typing import Iterable, Optional, Tuple

from fastapi import HTTPException, status

from sitescan.features.scan.models.scan_task import ScanTask, TaskStatus, TaskType
from sitescan.features.scan.schemas.scan import (
    ScanCreateResponse,
    ScanProgressResponse,
    ScanTaskSummary,
    TaskDataResponse,
)
from sitescan.features.scan.services.cache.unified_cache import UnifiedCache
from sitescan.features.scan.services.store.scan_store import ScanStore
from sitescan.platform.exceptions import ScanNotFoundError
from sitescan.platform.utils.url_validator import validate_url

logger = logging.getLogger(__name__)


def _task_summary(task: ScanTask) -> ScanTaskSummary:
    error = (task.payload or {}).get("error") if task.status == TaskStatus.failed else None
    return ScanTaskSummary(
        task_id=task.task_id,
        type=task.type,
        status=task.status.value,
        error=error,
    )


async def start_scan(
    store: ScanStore,
    url: str,
    user_id: Optional[str] = None,
    task_types: Optional[Iterable[TaskType]] = None,
) -> ScanCreateResponse:
    is_valid, url_str, error_message = validate_url(url)
    if not is_valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid URL: {error_message}"
        )

    scan, scan_status, tasks = await store.create_scan(url_str, user_id=user_id, task_types=task_types)
    return ScanCreateResponse(
        scan_id=scan.id,
        url=scan.url,
        status=scan_status.status.value,
        tasks=[_task_summary(task) for task in tasks],
    )


async def rerun_scan(store: ScanStore, scan_id: str) -> ScanCreateResponse:
    scan, scan_status, tasks = await store.rerun_scan(scan_id)
    return ScanCreateResponse(
        scan_id=scan.id,
        url=scan.url,
        status=scan_status.status.value,
        tasks=[_task_summary(task) for task in tasks],
    )


async def get_scan_progress(store: ScanStore, scan_id: str) -> ScanProgressResponse:
    scan = await store.get_scan(scan_id)
    scan_status = await store.get_scan_status(scan_id)
    if scan is None or scan_status is None:
        raise ScanNotFoundError(scan_id)

    tasks = await store.list_tasks(scan_id)
    return ScanProgressResponse(
        scan_id=scan.id,
        url=scan.url,
        status=scan_status.status.value,
        progress=scan_status.progress,
        tasks={task.type.value: task.status.value for task in tasks},
        queued_tasks=sum(1 for task in tasks if task.status == TaskStatus.queued),
        failed_tasks=[_task_summary(task) for task in tasks if task.status == TaskStatus.failed],
        updated_at=scan_status.updated_at,
    )


async def get_task_data(
    store: ScanStore,
    cache: UnifiedCache,
    scan_id: str,
    task_type: TaskType,
) -> Tuple[int, TaskDataResponse]:
    """
    Result of one analysis for a scan, as (http status, body).

    A completed task is served from the cache; queued/running tasks answer
    202, failed tasks carry their error, and a completed task whose cache
    entry has expired answers 410.
    """
    scan = await store.get_scan(scan_id)
    if scan is None:
        raise ScanNotFoundError(scan_id)

    task = await store.get_task(scan_id, task_type)
    if task is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Scan {scan_id} has no {task_type.value} task"
        )

    body = TaskDataResponse(scan_id=scan_id, type=task_type, status=task.status.value)

    if task.status in (TaskStatus.queued, TaskStatus.running):
        return status.HTTP_202_ACCEPTED, body

    if task.status == TaskStatus.failed:
        body.error = (task.payload or {}).get("error")
        return status.HTTP_200_OK, body

    data = await cache.get(task_type.value, scan.url)
    if data is None:
        logger.info(f"[{scan_id}] {task_type.value} result no longer cached")
        body.error = "Result expired; re-run the scan"
        return status.HTTP_410_GONE, body

    body.data = data
    return status.HTTP_200_OK, body
