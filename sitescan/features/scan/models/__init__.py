"""
Scan models package.
"""
from sitescan.features.scan.models.scan import Scan, ScanState, ScanStatus
from sitescan.features.scan.models.scan_task import ScanTask, TaskStatus, TaskType
from sitescan.features.scan.models.analysis_cache import AnalysisCache

__all__ = ["Scan", "ScanState", "ScanStatus", "ScanTask", "TaskStatus", "TaskType", "AnalysisCache"]
