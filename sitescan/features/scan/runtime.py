from dataclasses import dataclass
from typing import Optional

from sitescan.features.scan.services.analysis import AnalyzerSet, build_analyzers
from sitescan.features.scan.services.browser.browser_service import BrowserService
from sitescan.features.scan.services.cache.durable_tier import DurableCacheTier
from sitescan.features.scan.services.cache.unified_cache import UnifiedCache
from sitescan.features.scan.services.queue.host_queue import HostQueue
from sitescan.features.scan.services.store.scan_store import ScanStore
from sitescan.features.scan.workers.progress_publisher import ProgressPublisher
from sitescan.platform.config import settings
from sitescan.platform.db.session import SessionLocal


@dataclass
class ScanRuntime:
    """The per-process objects every worker and route shares."""
    store: ScanStore
    cache: UnifiedCache
    queue: HostQueue
    analyzers: AnalyzerSet
    publisher: Optional[ProgressPublisher] = None

    async def aclose(self) -> None:
        self.queue.clear()
        if self.publisher is not None:
            await self.publisher.aclose()


def build_runtime(session_factory=None, browser: Optional[BrowserService] = None) -> ScanRuntime:
    session_factory = session_factory or SessionLocal
    queue = HostQueue()
    publisher = ProgressPublisher() if settings.PUBLISH_PROGRESS_EVENTS and settings.REDIS_URL else None
    return ScanRuntime(
        store=ScanStore(session_factory),
        cache=UnifiedCache(durable=DurableCacheTier(session_factory)),
        queue=queue,
        analyzers=build_analyzers(queue, browser),
        publisher=publisher,
    )
