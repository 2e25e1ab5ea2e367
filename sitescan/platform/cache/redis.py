from typing import Optional

from redis.asyncio import Redis

from sitescan.platform.config import settings


def get_redis(url: Optional[str] = None) -> Optional[Redis]:
    """Async Redis client for `url` (defaults to REDIS_URL). None when no URL is configured."""
    url = url or settings.REDIS_URL
    if not url:
        return None
    return Redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True
    )
