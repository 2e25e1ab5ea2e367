import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sitescan.features.scan.services.browser.browser_service import BrowserService, capture_through_queue
from sitescan.features.scan.services.queue.host_queue import HostQueue
from sitescan.platform.logger import get_logger

logger = get_logger(__name__)

PALETTE_SIZE = 8

_RGB_RE = re.compile(r"rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)(?:\s*,\s*([\d.]+))?\s*\)")


def rgb_to_hex(value: str) -> Optional[str]:
    """'rgb(255, 0, 0)' -> '#ff0000'. Fully transparent colours return None."""
    match = _RGB_RE.match((value or "").strip())
    if not match:
        return None
    red, green, blue, alpha = match.groups()
    if alpha is not None and float(alpha) == 0:
        return None
    return "#{:02x}{:02x}{:02x}".format(*(min(255, int(c)) for c in (red, green, blue)))


def _palette(counts: Dict[str, int]) -> List[Dict[str, Any]]:
    total = sum(counts.values())
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:PALETTE_SIZE]
    return [
        {"hex": hex_value, "count": count, "percentage": round(count / total * 100, 1)}
        for hex_value, count in ranked
    ]


def summarize_colors(samples: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    text: Dict[str, int] = {}
    background: Dict[str, int] = {}
    combined: Dict[str, int] = {}

    for sample in samples or []:
        hex_value = rgb_to_hex(sample.get("value", ""))
        if hex_value is None:
            continue
        count = int(sample.get("count", 1))
        bucket = background if sample.get("property") == "backgroundColor" else text
        bucket[hex_value] = bucket.get(hex_value, 0) + count
        combined[hex_value] = combined.get(hex_value, 0) + count

    return {
        "palette": _palette(combined) if combined else [],
        "textColors": _palette(text) if text else [],
        "backgroundColors": _palette(background) if background else [],
        "uniqueColors": len(combined),
    }


async def analyze_colors(url: str, queue: HostQueue, browser: BrowserService) -> Dict[str, Any]:
    """Colour palette from the shared per-host page capture."""
    logger.info(f"Running colors analysis for: {url}")
    snapshot = await capture_through_queue(url, queue, browser, label="colors")
    summary = summarize_colors(snapshot.get("color_samples"))
    logger.info(f"Colors analysis completed for {url} ({summary['uniqueColors']} colours)")
    return {
        "colors": summary,
        "finalUrl": snapshot.get("final_url"),
        "timestamp": datetime.utcnow().isoformat(),
        "url": url,
    }
