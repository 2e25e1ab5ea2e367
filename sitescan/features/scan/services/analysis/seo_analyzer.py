import asyncio
from datetime import datetime
from typing import Any, Dict, List
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from sitescan.features.scan.services.analysis.http_fetch import fetch_page, url_exists
from sitescan.platform.logger import get_logger

logger = get_logger(__name__)

TITLE_LENGTH = (30, 70)
DESCRIPTION_LENGTH = (120, 160)


def _check(name: str, passed: bool, detail: str, severity: str = "medium") -> Dict[str, Any]:
    return {"check": name, "passed": passed, "detail": detail, "severity": severity}


def analyze_seo_html(html: str, url: str) -> Dict[str, Any]:
    """
    Run the on-page SEO checks against raw HTML.

    The score is the share of passed checks, 0-100.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    checks: List[Dict[str, Any]] = []

    title = soup.title.get_text(strip=True) if soup.title else ""
    low, high = TITLE_LENGTH
    checks.append(_check(
        "title",
        low <= len(title) <= high,
        f"Title is {len(title)} characters (recommended {low}-{high})" if title else "Missing <title>",
        severity="high",
    ))

    description_tag = soup.find("meta", attrs={"name": "description"})
    description = (description_tag.get("content") or "").strip() if description_tag else ""
    low, high = DESCRIPTION_LENGTH
    checks.append(_check(
        "meta_description",
        low <= len(description) <= high,
        f"Meta description is {len(description)} characters (recommended {low}-{high})"
        if description else "Missing meta description",
        severity="high",
    ))

    h1_count = len(soup.find_all("h1"))
    checks.append(_check("h1", h1_count == 1, f"Found {h1_count} <h1> elements (expected exactly 1)"))

    canonical = soup.find("link", rel="canonical")
    checks.append(_check("canonical", canonical is not None, "Canonical link present" if canonical else "Missing canonical link", "low"))

    robots_meta = soup.find("meta", attrs={"name": "robots"})
    robots_content = (robots_meta.get("content") or "").lower() if robots_meta else ""
    checks.append(_check(
        "indexable",
        "noindex" not in robots_content,
        "Page is indexable" if "noindex" not in robots_content else "Page is marked noindex",
        severity="high",
    ))

    og_tags = {tag.get("property") for tag in soup.find_all("meta", property=True) if tag.get("property", "").startswith("og:")}
    missing_og = [tag for tag in ("og:title", "og:description", "og:image") if tag not in og_tags]
    checks.append(_check(
        "open_graph",
        not missing_og,
        "Open Graph tags present" if not missing_og else f"Missing {', '.join(missing_og)}",
        "low",
    ))

    images = soup.find_all("img")
    missing_alt = [img for img in images if not (img.get("alt") or "").strip()]
    checks.append(_check(
        "image_alt",
        not missing_alt,
        f"{len(missing_alt)} of {len(images)} images missing alt text",
    ))

    html_tag = soup.find("html")
    lang = html_tag.get("lang") if html_tag else None
    checks.append(_check("lang", bool(lang), f"Document language: {lang}" if lang else "Missing <html lang>", "low"))

    passed = sum(1 for c in checks if c["passed"])
    score = int(round(passed / len(checks) * 100))

    return {
        "score": score,
        "title": title or None,
        "metaDescription": description or None,
        "h1Count": h1_count,
        "imageCount": len(images),
        "checks": checks,
        "issues": [
            {"type": "seo", "description": c["detail"], "severity": c["severity"]}
            for c in checks if not c["passed"]
        ],
        "url": url,
    }


async def analyze_seo(url: str) -> Dict[str, Any]:
    logger.info(f"Running SEO analysis for: {url}")
    page = await fetch_page(url)
    report = analyze_seo_html(page.html, page.final_url)

    has_robots, has_sitemap = await asyncio.gather(
        url_exists(urljoin(page.final_url, "/robots.txt")),
        url_exists(urljoin(page.final_url, "/sitemap.xml")),
    )
    report["robotsTxt"] = has_robots
    report["sitemap"] = has_sitemap
    report["timestamp"] = datetime.utcnow().isoformat()

    logger.info(f"SEO analysis completed for {url} (score={report['score']})")
    return report
