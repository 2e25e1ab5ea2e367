import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from sitescan.features.scan.workers.progress_publisher import ProgressPublisher


@pytest.mark.asyncio
async def test_publish_sends_json_to_scan_channel():
    client = AsyncMock()
    publisher = ProgressPublisher(client=client)

    assert await publisher.publish("scan_1", "task_complete", {"task_type": "seo"}) is True

    channel, message = client.publish.await_args.args
    assert channel == "scan_progress:scan_1"
    body = json.loads(message)
    assert body["event_type"] == "task_complete"
    assert body["scan_id"] == "scan_1"
    assert body["task_type"] == "seo"
    assert "timestamp" in body


@pytest.mark.asyncio
async def test_publish_failures_are_swallowed():
    client = AsyncMock()
    client.publish.side_effect = RedisConnectionError("redis is down")
    publisher = ProgressPublisher(client=client)

    assert await publisher.publish("scan_1", "scan_complete") is False


@pytest.mark.asyncio
async def test_publisher_without_redis_is_a_no_op():
    publisher = ProgressPublisher(client=None, url=None)
    assert publisher.client is None
    assert await publisher.publish("scan_1", "task_started") is False
    await publisher.aclose()
