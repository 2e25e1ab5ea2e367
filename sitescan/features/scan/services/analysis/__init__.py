"""
Analyzers, one per TaskType.

tech and seo fetch the page over HTTP; colors and perf share one headless
browser capture per host through the HostQueue.
"""
from dataclasses import dataclass, fields
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Optional

from sitescan.features.scan.models.scan_task import TaskType
from sitescan.features.scan.services.analysis.colors_analyzer import analyze_colors
from sitescan.features.scan.services.analysis.perf_analyzer import analyze_perf
from sitescan.features.scan.services.analysis.seo_analyzer import analyze_seo
from sitescan.features.scan.services.analysis.tech_analyzer import analyze_tech
from sitescan.features.scan.services.browser.browser_service import BrowserService
from sitescan.features.scan.services.queue.host_queue import HostQueue

Analyzer = Callable[[str], Awaitable[Dict[str, Any]]]


@dataclass(frozen=True)
class AnalyzerSet:
    """Every TaskType must have a handler; a missing one fails at construction."""
    tech: Analyzer
    colors: Analyzer
    seo: Analyzer
    perf: Analyzer

    def __post_init__(self):
        for field in fields(self):
            if not callable(getattr(self, field.name)):
                raise TypeError(f"Analyzer for '{field.name}' must be callable")

    def for_type(self, task_type: TaskType) -> Analyzer:
        return getattr(self, TaskType(task_type).value)


def build_analyzers(queue: HostQueue, browser: Optional[BrowserService] = None) -> AnalyzerSet:
    browser = browser or BrowserService()
    return AnalyzerSet(
        tech=analyze_tech,
        colors=partial(analyze_colors, queue=queue, browser=browser),
        seo=analyze_seo,
        perf=partial(analyze_perf, queue=queue, browser=browser),
    )
