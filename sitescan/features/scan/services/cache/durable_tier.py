from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select, delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from sitescan.features.scan.models.analysis_cache import AnalysisCache


class DurableCacheTier:
    """analysis_cache table access. Errors propagate; UnifiedCache decides how to degrade."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def fetch(self, key: str) -> Optional[AnalysisCache]:
        """Unexpired row for `key`, if any."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(AnalysisCache)
                .where(
                    AnalysisCache.url_hash == key,
                    AnalysisCache.expires_at > datetime.utcnow(),
                )
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def store(
        self,
        key: str,
        url: str,
        value: Any,
        expires_at: datetime,
        schema_version: Optional[str] = None,
    ) -> None:
        async with self.session_factory() as db:
            insert = sqlite_insert if db.get_bind().dialect.name == "sqlite" else pg_insert
            stmt = insert(AnalysisCache).values(
                url_hash=key,
                original_url=url,
                audit_json=value,
                schema_version=schema_version,
                created_at=datetime.utcnow(),
                expires_at=expires_at,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["url_hash"],
                set_={
                    "original_url": stmt.excluded.original_url,
                    "audit_json": stmt.excluded.audit_json,
                    "schema_version": stmt.excluded.schema_version,
                    "created_at": stmt.excluded.created_at,
                    "expires_at": stmt.excluded.expires_at,
                },
            )
            await db.execute(stmt)
            await db.commit()

    async def purge_expired(self, now: datetime = None) -> int:
        now = now or datetime.utcnow()
        async with self.session_factory() as db:
            result = await db.execute(
                delete(AnalysisCache)
                .where(AnalysisCache.expires_at <= now)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            return result.rowcount or 0
