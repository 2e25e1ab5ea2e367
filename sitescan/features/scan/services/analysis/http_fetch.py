import time
from dataclasses import dataclass
from typing import Dict, Optional

import httpx

from sitescan.platform.config import settings
from sitescan.platform.exceptions import AnalyzerError


@dataclass
class FetchedPage:
    url: str
    final_url: str
    status_code: int
    headers: Dict[str, str]
    html: str
    elapsed_ms: int


async def fetch_page(url: str, client: Optional[httpx.AsyncClient] = None) -> FetchedPage:
    """GET `url` following redirects. Network errors and HTTP >= 400 raise AnalyzerError."""
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            follow_redirects=True,
            headers={"User-Agent": settings.USER_AGENT},
        )
    try:
        start_time = time.monotonic()
        response = await client.get(url)
        elapsed_ms = int((time.monotonic() - start_time) * 1000)
    except httpx.HTTPError as e:
        raise AnalyzerError(f"Failed to fetch {url}: {e}") from e
    finally:
        if owns_client:
            await client.aclose()

    if response.status_code >= 400:
        raise AnalyzerError(f"{url} returned HTTP {response.status_code}")

    return FetchedPage(
        url=url,
        final_url=str(response.url),
        status_code=response.status_code,
        headers={k.lower(): v for k, v in response.headers.items()},
        html=response.text,
        elapsed_ms=elapsed_ms,
    )


async def url_exists(url: str, client: Optional[httpx.AsyncClient] = None) -> bool:
    """True when `url` answers with a 2xx status."""
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS, follow_redirects=True)
    try:
        response = await client.get(url)
        return 200 <= response.status_code < 300
    except httpx.HTTPError:
        return False
    finally:
        if owns_client:
            await client.aclose()
