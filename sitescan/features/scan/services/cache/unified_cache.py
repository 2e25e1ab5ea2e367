"""
Unified result cache.

Two tiers: a small in-process LRU for hot entries and the durable
analysis_cache table shared by every worker and API process. Concurrent
requests for the same key share one computation (single-flight), and the
durable expiry depends on whether the computed value looks successful.
"""
import asyncio
import hashlib
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from sitescan.features.scan.services.cache.durable_tier import DurableCacheTier
from sitescan.features.scan.services.cache.lru import LRUCache
from sitescan.platform.config import settings
from sitescan.platform.logger import get_logger

logger = get_logger(__name__)

DURABLE_FAULTS = (SQLAlchemyError, OSError, asyncio.TimeoutError)


def schema_tag(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        tag = value.get("schemaVersion")
        return str(tag) if tag is not None else None
    return None


def is_successful_result(value: Any) -> bool:
    """Only a non-empty object or list counts; a {"status": "pending"} envelope is cached as a failure."""
    if not isinstance(value, (dict, list)) or not value:
        return False
    if isinstance(value, dict) and value.get("status") == "pending":
        return False
    return True


class UnifiedCache:
    def __init__(
        self,
        durable: Optional[DurableCacheTier] = None,
        memory_size: int = None,
        memory_ttl: int = None,
        success_ttl: int = None,
        failure_ttl: int = None,
        schema_version: str = None,
    ):
        self.durable = durable
        self.memory = LRUCache(memory_size or settings.CACHE_MEMORY_SIZE)
        self.memory_ttl = memory_ttl or settings.CACHE_MEMORY_TTL_SECONDS
        self.success_ttl = success_ttl or settings.CACHE_SUCCESS_TTL_SECONDS
        self.failure_ttl = failure_ttl or settings.CACHE_FAILURE_TTL_SECONDS
        self.schema_version = schema_version or settings.CACHE_SCHEMA_VERSION
        self._in_flight: Dict[str, asyncio.Task] = {}

    @staticmethod
    def generate_cache_key(prefix: str, url: str) -> str:
        digest = hashlib.sha256(url.encode("utf-8")).hexdigest()
        return f"{prefix}_{digest}"

    def _schema_matches(self, tag: Optional[str]) -> bool:
        return tag is None or tag == self.schema_version

    async def get(self, prefix: str, url: str) -> Optional[Any]:
        """Memory tier first, then the durable tier (backfilling memory on a hit)."""
        key = self.generate_cache_key(prefix, url)

        entry = self.memory.get(key)
        if entry is not None:
            if self._schema_matches(entry.schema_version):
                logger.info(f"Memory cache hit for {key}")
                return entry.value
            logger.info(f"Schema mismatch in memory for {key} ({entry.schema_version} != {self.schema_version})")

        if self.durable is None:
            return None

        try:
            row = await self.durable.fetch(key)
        except DURABLE_FAULTS as e:
            logger.error(f"Durable cache unavailable on read for {key}: {e}")
            return None

        if row is None:
            return None
        if not self._schema_matches(row.schema_version):
            logger.info(f"Schema mismatch for {key} ({row.schema_version} != {self.schema_version}), treating as miss")
            return None

        logger.info(f"Durable cache hit for {key}")
        remaining = (row.expires_at - datetime.utcnow()).total_seconds()
        self.memory.set(
            key,
            row.audit_json,
            ttl_seconds=max(0.0, min(self.memory_ttl, remaining)),
            schema_version=row.schema_version,
        )
        return row.audit_json

    async def set(self, prefix: str, url: str, value: Any, succeeded: bool = True) -> None:
        key = self.generate_cache_key(prefix, url)
        ttl = self.success_ttl if succeeded else self.failure_ttl
        tag = schema_tag(value)

        self.memory.set(key, value, ttl_seconds=min(self.memory_ttl, ttl), schema_version=tag)

        if self.durable is None:
            return
        try:
            await self.durable.store(
                key,
                url,
                value,
                expires_at=datetime.utcnow() + timedelta(seconds=ttl),
                schema_version=tag,
            )
            logger.info(f"Stored {key} in durable cache (ttl={ttl}s)")
        except DURABLE_FAULTS as e:
            logger.error(f"Durable cache unavailable on write for {key}: {e}")

    async def get_or_compute(
        self,
        prefix: str,
        url: str,
        compute_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Return the cached value, or compute it once for all concurrent callers.

        Joiners share the in-flight computation's result or exception.
        Exceptions are not cached.
        """
        cached = await self.get(prefix, url)
        if cached is not None:
            return cached

        key = self.generate_cache_key(prefix, url)
        existing = self._in_flight.get(key)
        if existing is not None:
            logger.info(f"Concurrent request detected for {key}, joining")
            return await asyncio.shield(existing)

        # a computation may have finished while the durable read was pending
        entry = self.memory.get(key)
        if entry is not None and self._schema_matches(entry.schema_version):
            return entry.value

        logger.info(f"Starting fresh computation for {key}")
        task = asyncio.ensure_future(self._compute(prefix, url, key, compute_fn))
        self._in_flight[key] = task
        return await asyncio.shield(task)

    async def _compute(self, prefix, url, key, compute_fn) -> Any:
        try:
            result = await compute_fn()
            if isinstance(result, dict) and "schemaVersion" not in result:
                result = {**result, "schemaVersion": self.schema_version}
            await self.set(prefix, url, result, succeeded=is_successful_result(result))
            return result
        finally:
            self._in_flight.pop(key, None)

    async def invalidate(self, prefix: str, url: str) -> None:
        """Coarse: drops the whole memory tier. Durable rows run out their TTL."""
        key = self.generate_cache_key(prefix, url)
        self.memory.clear()
        logger.info(f"Invalidated cache for {key}")

    def clear_memory(self) -> None:
        self.memory.clear()
        logger.info("Cleared memory cache")

    def in_flight_keys(self) -> List[str]:
        return list(self._in_flight.keys())

    async def purge_expired(self) -> int:
        if self.durable is None:
            return 0
        removed = await self.durable.purge_expired()
        logger.info(f"Purged {removed} expired cache rows")
        return removed
