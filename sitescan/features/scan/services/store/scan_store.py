import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sitescan.features.scan.models.scan import Scan, ScanState, ScanStatus
from sitescan.features.scan.models.scan_task import (
    ScanTask,
    TaskStatus,
    TaskType,
    TERMINAL_TASK_STATUSES,
    UNSETTLED_TASK_STATUSES,
)
from sitescan.platform.db.session import SessionLocal
from sitescan.platform.exceptions import ScanNotFoundError, StoreUnavailableError

logger = logging.getLogger(__name__)

CONNECTION_FAULTS = (OperationalError, InterfaceError, DisconnectionError, OSError)


class ScanStore:
    """
    Persistence for scans, their aggregate status and their tasks.

    Every state transition is a single conditional UPDATE so that several
    worker processes can share one database safely.
    """

    def __init__(self, session_factory=None):
        self.session_factory = session_factory or SessionLocal

    @asynccontextmanager
    async def _session(self):
        """Session whose connection-level failures surface as StoreUnavailableError."""
        try:
            async with self.session_factory() as db:
                yield db
        except CONNECTION_FAULTS as e:
            raise StoreUnavailableError(f"Scan store unreachable: {e}") from e

    # ── Scan creation ─────────────────────────────

    async def create_scan(
        self,
        url: str,
        user_id: Optional[str] = None,
        task_types: Iterable[TaskType] = None,
    ) -> Tuple[Scan, ScanStatus, List[ScanTask]]:
        """Insert the scan, its status row and one queued task per type in one transaction."""
        async with self._session() as db:
            created = await self._add_scan(db, url, user_id, task_types)
            await db.commit()
        scan, status, tasks = created
        logger.info(f"[{scan.id}] Scan created for {url} with {len(tasks)} tasks")
        return created

    async def rerun_scan(self, scan_id: str) -> Tuple[Scan, ScanStatus, List[ScanTask]]:
        """
        Retry a scan by creating a new one for the same URL and task types.

        The previous scan is marked inactive and stamped with `last_run_at`;
        its tasks are left untouched.
        """
        async with self._session() as db:
            previous = await db.get(Scan, scan_id)
            if previous is None:
                raise ScanNotFoundError(scan_id)
            result = await db.execute(select(ScanTask.type).where(ScanTask.scan_id == scan_id))
            task_types = list(result.scalars().all()) or None

            previous.active = False
            previous.last_run_at = datetime.utcnow()
            created = await self._add_scan(db, previous.url, previous.user_id, task_types)
            await db.commit()
        logger.info(f"[{scan_id}] Re-run as scan {created[0].id}")
        return created

    @staticmethod
    async def _add_scan(db: AsyncSession, url, user_id, task_types):
        task_types = list(dict.fromkeys(TaskType(t) for t in (task_types or TaskType)))
        scan = Scan(url=url, user_id=user_id, active=True)
        db.add(scan)
        await db.flush()  # Get the scan ID

        status = ScanStatus(scan_id=scan.id, status=ScanState.queued, progress=0)
        tasks = [ScanTask(scan_id=scan.id, type=task_type, status=TaskStatus.queued) for task_type in task_types]
        db.add(status)
        db.add_all(tasks)
        await db.flush()
        return scan, status, tasks

    # ── Task state transitions ────────────────────

    async def claim_next_queued_task(self) -> Optional[ScanTask]:
        """
        Atomically move the oldest queued task to running and return it.

        Conditional UPDATE ... WHERE status = 'queued' RETURNING *, so two
        workers can never claim the same row.
        """
        oldest_queued = (
            select(ScanTask.task_id)
            .where(ScanTask.status == TaskStatus.queued)
            .order_by(ScanTask.created_at, ScanTask.task_id)
            .limit(1)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(ScanTask)
            .where(ScanTask.task_id == oldest_queued, ScanTask.status == TaskStatus.queued)
            .values(status=TaskStatus.running, started_at=datetime.utcnow())
            .returning(ScanTask)
            .execution_options(synchronize_session=False)
        )
        async with self._session() as db:
            result = await db.execute(stmt)
            task = result.scalar_one_or_none()
            await db.commit()
        return task

    async def set_task_status(self, task_id: str, status: TaskStatus, payload: dict = None) -> bool:
        """
        Update a task unless it is already terminal.

        Returns False when the row is missing or already complete/failed.
        """
        values = {"status": status}
        if payload is not None:
            values["payload"] = payload
        if status in TERMINAL_TASK_STATUSES:
            values["finished_at"] = datetime.utcnow()
        elif status == TaskStatus.running:
            values["started_at"] = datetime.utcnow()

        stmt = (
            update(ScanTask)
            .where(ScanTask.task_id == task_id, ScanTask.status.notin_(TERMINAL_TASK_STATUSES))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._session() as db:
            result = await db.execute(stmt)
            updated = result.rowcount == 1
            await db.commit()
        if not updated:
            logger.warning(f"Task {task_id} not moved to {status.value} (missing or already terminal)")
        return updated

    async def requeue_stale_tasks(self, older_than_seconds: int) -> int:
        """Return running tasks whose worker died back to queued. Terminal rows are never touched."""
        cutoff = datetime.utcnow() - timedelta(seconds=older_than_seconds)
        stmt = (
            update(ScanTask)
            .where(ScanTask.status == TaskStatus.running, ScanTask.started_at < cutoff)
            .values(status=TaskStatus.queued, started_at=None)
            .execution_options(synchronize_session=False)
        )
        async with self._session() as db:
            result = await db.execute(stmt)
            count = result.rowcount or 0
            await db.commit()
        if count:
            logger.warning(f"Requeued {count} stale running tasks")
        return count

    # ── Counters ──────────────────────────────────

    async def count_remaining_queued_tasks(self, scan_id: str) -> int:
        return await self._count_tasks(scan_id, ScanTask.status == TaskStatus.queued)

    async def count_unsettled_tasks(self, scan_id: str) -> int:
        """Tasks still queued or running."""
        return await self._count_tasks(scan_id, ScanTask.status.in_(UNSETTLED_TASK_STATUSES))

    async def count_tasks(self, scan_id: str) -> int:
        return await self._count_tasks(scan_id)

    async def _count_tasks(self, scan_id: str, *criteria) -> int:
        async with self._session() as db:
            result = await db.execute(
                select(func.count()).select_from(ScanTask).where(ScanTask.scan_id == scan_id, *criteria)
            )
            return result.scalar_one()

    # ── Aggregate status ──────────────────────────

    async def set_scan_status(self, scan_id: str, status: ScanState, progress: Optional[int] = None) -> bool:
        """
        Move the aggregate status forward.

        A scan that is already complete is never updated again, which makes
        completion happen at most once. Progress never moves backwards: an
        update carrying a lower progress than the stored one is skipped.
        """
        values = {"status": status, "updated_at": datetime.utcnow()}
        criteria = [ScanStatus.scan_id == scan_id, ScanStatus.status != ScanState.complete]
        if progress is not None:
            values["progress"] = max(0, min(100, int(progress)))
            criteria.append(ScanStatus.progress <= values["progress"])

        stmt = (
            update(ScanStatus)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._session() as db:
            result = await db.execute(stmt)
            updated = result.rowcount == 1
            await db.commit()
        return updated

    # ── Reads ─────────────────────────────────────

    async def ping(self) -> bool:
        try:
            async with self._session() as db:
                await db.execute(select(1))
            return True
        except (StoreUnavailableError, SQLAlchemyError) as e:
            logger.error(f"Database ping failed: {e}")
            return False

    async def get_scan(self, scan_id: str) -> Optional[Scan]:
        async with self._session() as db:
            return await db.get(Scan, scan_id)

    async def get_scan_status(self, scan_id: str) -> Optional[ScanStatus]:
        async with self._session() as db:
            return await db.get(ScanStatus, scan_id)

    async def get_task(self, scan_id: str, task_type: TaskType) -> Optional[ScanTask]:
        async with self._session() as db:
            result = await db.execute(
                select(ScanTask).where(ScanTask.scan_id == scan_id, ScanTask.type == task_type).limit(1)
            )
            return result.scalar_one_or_none()

    async def list_tasks(self, scan_id: str) -> List[ScanTask]:
        async with self._session() as db:
            result = await db.execute(
                select(ScanTask).where(ScanTask.scan_id == scan_id).order_by(ScanTask.created_at, ScanTask.task_id)
            )
            return list(result.scalars().all())
