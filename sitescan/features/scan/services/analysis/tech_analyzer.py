import re
from datetime import datetime
from typing import Any, Dict, List

from bs4 import BeautifulSoup

from sitescan.features.scan.services.analysis.http_fetch import fetch_page
from sitescan.platform.logger import get_logger

logger = get_logger(__name__)

# (pattern, technology, category) matched against script/link sources and inline markup
TECH_PATTERNS = [
    (re.compile(r"react(-dom)?(\.production)?(\.min)?\.js|data-reactroot|__react", re.I), "React", "JavaScript Framework"),
    (re.compile(r"vue(\.runtime)?(\.min)?\.js|data-v-[0-9a-f]{6,}", re.I), "Vue.js", "JavaScript Framework"),
    (re.compile(r"angular(\.min)?\.js|ng-version", re.I), "Angular", "JavaScript Framework"),
    (re.compile(r"/_next/|__NEXT_DATA__", re.I), "Next.js", "React Framework"),
    (re.compile(r"/_nuxt/|__NUXT__", re.I), "Nuxt.js", "Vue Framework"),
    (re.compile(r"gatsby", re.I), "Gatsby", "Static Site Generator"),
    (re.compile(r"svelte", re.I), "Svelte", "JavaScript Framework"),
    (re.compile(r"jquery(-\d[\d.]*)?(\.min)?\.js", re.I), "jQuery", "JavaScript Library"),
    (re.compile(r"lodash(\.min)?\.js", re.I), "Lodash", "Utility Library"),
    (re.compile(r"bootstrap(\.bundle)?(\.min)?\.(js|css)", re.I), "Bootstrap", "CSS Framework"),
    (re.compile(r"tailwind", re.I), "Tailwind CSS", "CSS Framework"),
    (re.compile(r"wp-content|wp-includes", re.I), "WordPress", "CMS"),
    (re.compile(r"cdn\.shopify\.com", re.I), "Shopify", "E-commerce"),
    (re.compile(r"googletagmanager\.com/gtag|google-analytics\.com", re.I), "Google Analytics", "Analytics"),
    (re.compile(r"googletagmanager\.com/gtm\.js", re.I), "Google Tag Manager", "Tag Manager"),
    (re.compile(r"connect\.facebook\.net", re.I), "Meta Pixel", "Analytics"),
    (re.compile(r"hotjar", re.I), "Hotjar", "User Analytics"),
    (re.compile(r"cdn\.jsdelivr\.net", re.I), "jsDelivr", "CDN"),
    (re.compile(r"unpkg\.com", re.I), "unpkg", "CDN"),
    (re.compile(r"cdnjs\.cloudflare\.com", re.I), "cdnjs", "CDN"),
]

SECURITY_HEADERS = {
    "content-security-policy": "csp",
    "strict-transport-security": "hsts",
    "x-frame-options": "xfo",
    "x-content-type-options": "xcto",
    "referrer-policy": "referrer",
    "permissions-policy": "permissions",
}

CDN_HEADERS = {
    "cf-ray": "Cloudflare",
    "x-amz-cf-id": "Amazon CloudFront",
    "x-fastly-request-id": "Fastly",
    "x-akamai-transformed": "Akamai",
    "x-vercel-id": "Vercel",
    "x-nf-request-id": "Netlify",
}


def detect_technologies(html: str, headers: Dict[str, str]) -> Dict[str, Any]:
    """
    Detect the tech stack, CDN and security header coverage of a page.

    `headers` must use lower-case names.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    sources = [tag.get("src") or tag.get("href") or "" for tag in soup.find_all(["script", "link"])]
    haystack = "\n".join(sources) + "\n" + (html or "")

    found: Dict[str, Dict[str, str]] = {}
    for pattern, name, category in TECH_PATTERNS:
        if name not in found and pattern.search(haystack):
            found[name] = {"technology": name, "category": category}

    generator = soup.find("meta", attrs={"name": re.compile(r"^generator$", re.I)})
    if generator and generator.get("content"):
        name = generator["content"].strip()
        found.setdefault(name, {"technology": name, "category": "Generator"})

    for header in ("server", "x-powered-by"):
        if headers.get(header):
            name = headers[header].strip()
            found.setdefault(name, {"technology": name, "category": "Server"})

    cdn = next((provider for header, provider in CDN_HEADERS.items() if header in headers), None)
    if cdn:
        found.setdefault(cdn, {"technology": cdn, "category": "CDN"})

    security_headers = {short: headers.get(name, "") for name, short in SECURITY_HEADERS.items()}
    issues: List[Dict[str, str]] = []
    for name, short in SECURITY_HEADERS.items():
        if not security_headers[short]:
            issues.append({
                "type": "security",
                "description": f"Missing {name} header",
                "severity": "medium" if short in ("csp", "hsts") else "low",
            })

    return {
        "techStack": list(found.values()),
        "securityHeaders": security_headers,
        "cdn": cdn is not None,
        "compression": headers.get("content-encoding", "") in ("gzip", "br", "deflate", "zstd"),
        "issues": issues,
    }


async def analyze_tech(url: str) -> Dict[str, Any]:
    logger.info(f"Running tech analysis for: {url}")
    page = await fetch_page(url)
    technologies = detect_technologies(page.html, page.headers)
    logger.info(f"Tech analysis completed for {url} ({len(technologies['techStack'])} technologies)")
    return {
        "technologies": technologies,
        "finalUrl": page.final_url,
        "timestamp": datetime.utcnow().isoformat(),
        "url": url,
    }
