import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from sitescan.platform.cache.redis import get_redis

logger = logging.getLogger(__name__)

TASK_STARTED = "task_started"
TASK_COMPLETE = "task_complete"
TASK_FAILED = "task_failed"
SCAN_COMPLETE = "scan_complete"


class ProgressPublisher:
    """
    Best-effort scan progress events over Redis pub/sub.

    Publish failures are logged and swallowed; they never affect task state.
    """

    def __init__(self, client: Optional[Redis] = None, url: Optional[str] = None):
        self.client = client or get_redis(url)

    @staticmethod
    def channel(scan_id: str) -> str:
        return f"scan_progress:{scan_id}"

    async def publish(self, scan_id: str, event_type: str, data: Dict[str, Any] = None) -> bool:
        if self.client is None:
            return False

        message = {
            "event_type": event_type,
            "timestamp": datetime.utcnow().isoformat(),
            "scan_id": scan_id,
            **(data or {}),
        }
        try:
            await self.client.publish(self.channel(scan_id), json.dumps(message))
            logger.info(f"[{scan_id}] Published progress event: {event_type}")
            return True
        except (RedisError, OSError) as e:
            logger.error(f"[{scan_id}] Failed to publish progress event '{event_type}': {e}")
            return False

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()
