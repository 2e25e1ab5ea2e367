from datetime import datetime
from typing import Any, Dict

from sitescan.features.scan.services.browser.browser_service import BrowserService, capture_through_queue
from sitescan.features.scan.services.queue.host_queue import HostQueue
from sitescan.platform.logger import get_logger

logger = get_logger(__name__)


def calculate_performance_score(load_time: float) -> int:
    """
    Calculate performance score (0-100) based on load time.
    < 0.5s = 100
    > 10s = 0
    Linear interpolation in between.
    """
    if load_time <= 0.5:
        return 100
    if load_time >= 10.0:
        return 0

    slope = -100 / 9.5
    score = 100 + slope * (load_time - 0.5)
    return int(max(0, min(100, score)))


def get_performance_comment(score: int) -> str:
    if score >= 90:
        return "Excellent! The page loads very quickly."
    elif score >= 75:
        return "Good. The page load time is acceptable."
    elif score >= 50:
        return "Fair. The page could load faster."
    elif score >= 25:
        return "Poor. The page is slow to load."
    else:
        return "Critical. The page takes too long to load."


def build_performance_report(snapshot: Dict[str, Any]) -> Dict[str, Any]:
    load_time = float(snapshot.get("load_time") or 0.0)
    timing = snapshot.get("timing") or {}
    score = calculate_performance_score(load_time)

    issues = []
    if timing.get("ttfb", 0) > 800:
        issues.append({"type": "performance", "description": f"Slow server response (TTFB {int(timing['ttfb'])}ms)", "severity": "high"})
    if timing.get("resourceCount", 0) > 100:
        issues.append({"type": "performance", "description": f"{timing['resourceCount']} resources requested", "severity": "medium"})
    if timing.get("transferSize", 0) > 3 * 1024 * 1024:
        issues.append({"type": "performance", "description": "Document transfer exceeds 3 MB", "severity": "medium"})

    return {
        "score": score,
        "comment": get_performance_comment(score),
        "loadTime": round(load_time, 3),
        "ttfbMs": timing.get("ttfb"),
        "domContentLoadedMs": timing.get("domContentLoaded"),
        "loadEventMs": timing.get("load"),
        "resourceCount": timing.get("resourceCount"),
        "transferSize": timing.get("transferSize"),
        "issues": issues,
    }


async def analyze_perf(url: str, queue: HostQueue, browser: BrowserService) -> Dict[str, Any]:
    logger.info(f"Running performance analysis for: {url}")
    snapshot = await capture_through_queue(url, queue, browser, label="perf")
    report = build_performance_report(snapshot)
    logger.info(f"Performance analysis completed for {url} (score={report['score']})")
    return {
        "performance": report,
        "pageTitle": snapshot.get("page_title"),
        "finalUrl": snapshot.get("final_url"),
        "timestamp": datetime.utcnow().isoformat(),
        "url": url,
    }
