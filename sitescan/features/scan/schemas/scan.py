"""
Scan Schemas

Request and response models for the scan API endpoints.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from sitescan.features.scan.models.scan_task import TaskType


class ScanCreateRequest(BaseModel):
    """Request to start a scan."""
    url: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    task_types: Optional[List[TaskType]] = None  # all types when omitted

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://example.com",
                "task_types": ["tech", "seo", "colors", "perf"]
            }
        }


class ScanTaskSummary(BaseModel):
    task_id: str
    type: TaskType
    status: str
    error: Optional[str] = None


class ScanCreateResponse(BaseModel):
    scan_id: str
    url: str
    status: str
    tasks: List[ScanTaskSummary]


class ScanProgressResponse(BaseModel):
    scan_id: str
    url: str
    status: str
    progress: int
    tasks: Dict[str, str]
    queued_tasks: int
    failed_tasks: List[ScanTaskSummary]
    updated_at: Optional[datetime] = None


class TaskDataResponse(BaseModel):
    scan_id: str
    type: TaskType
    status: str
    data: Optional[Any] = None
    error: Optional[str] = None
