from urllib.parse import urlparse
from typing import Tuple


def normalize_url(url: str) -> str:
    """Strip whitespace and a trailing slash; default the scheme to https."""
    url = url.strip()

    if "://" not in url:
        url = f"https://{url}"

    return url.rstrip("/")


def validate_url(url: str) -> Tuple[bool, str, str]:
    if not url or not url.strip():
        return False, "", "URL cannot be empty"

    normalized_url = normalize_url(url)

    try:
        parsed = urlparse(normalized_url)

        if parsed.scheme not in ['http', 'https']:
            return False, normalized_url, f"Invalid URL scheme: {parsed.scheme} (must be http or https)"

        if not parsed.netloc or not parsed.hostname:
            return False, normalized_url, "Invalid URL format: missing domain"

        return True, normalized_url, ""

    except ValueError as e:
        return False, normalized_url, f"URL parsing error: {str(e)}"
