from fastapi import APIRouter, Depends, Request, status

from sitescan.features.scan.models.scan_task import TaskType
from sitescan.features.scan.schemas.scan import (
    ScanCreateRequest,
    ScanCreateResponse,
    ScanProgressResponse,
    TaskDataResponse,
)
from sitescan.features.scan.services.cache.unified_cache import UnifiedCache
from sitescan.features.scan.services.scan.scan_service import (
    get_scan_progress,
    get_task_data,
    rerun_scan,
    start_scan,
)
from sitescan.features.scan.services.store.scan_store import ScanStore
from sitescan.platform.logger import get_logger
from sitescan.platform.response import api_response

logger = get_logger(__name__)

router = APIRouter(prefix="/scans", tags=["scan"])


def get_scan_store(request: Request) -> ScanStore:
    return request.app.state.scan_store


def get_result_cache(request: Request) -> UnifiedCache:
    return request.app.state.result_cache


@router.post("", response_model=ScanCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_scan(payload: ScanCreateRequest, store: ScanStore = Depends(get_scan_store)):
    data = await start_scan(store, payload.url, user_id=payload.user_id, task_types=payload.task_types)
    logger.info(f"[{data.scan_id}] Scan queued for {data.url}")
    return api_response(
        data=data,
        message="Scan queued",
        status_code=status.HTTP_201_CREATED,
    )


@router.get("/{scan_id}/status", response_model=ScanProgressResponse)
async def scan_status(scan_id: str, store: ScanStore = Depends(get_scan_store)):
    data = await get_scan_progress(store, scan_id)
    return api_response(data=data, message="Scan status retrieved")


@router.get("/{scan_id}/task/{task_type}", response_model=TaskDataResponse)
async def scan_task_data(
    scan_id: str,
    task_type: TaskType,
    store: ScanStore = Depends(get_scan_store),
    cache: UnifiedCache = Depends(get_result_cache),
):
    status_code, data = await get_task_data(store, cache, scan_id, task_type)
    messages = {
        status.HTTP_202_ACCEPTED: f"{task_type.value} analysis is still {data.status}",
        status.HTTP_410_GONE: f"{task_type.value} result has expired",
    }
    message = messages.get(status_code) or (
        f"{task_type.value} analysis failed" if data.error else f"{task_type.value} analysis retrieved"
    )
    return api_response(data=data, message=message, status_code=status_code)


@router.post("/{scan_id}/rerun", response_model=ScanCreateResponse, status_code=status.HTTP_201_CREATED)
async def rerun(scan_id: str, store: ScanStore = Depends(get_scan_store)):
    data = await rerun_scan(store, scan_id)
    return api_response(
        data=data,
        message="Scan re-queued",
        status_code=status.HTTP_201_CREATED,
    )
