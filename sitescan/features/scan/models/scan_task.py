from sqlalchemy import Column, String, DateTime, ForeignKey, Index, Enum, JSON, UniqueConstraint
import enum

from sitescan.platform.db.base import Base, TimestampMixin, new_id


class TaskType(enum.Enum):
    """Analysis types a scan is split into"""
    tech = "tech"
    colors = "colors"
    seo = "seo"
    perf = "perf"


class TaskStatus(enum.Enum):
    """Task state machine: queued -> running -> complete | failed"""
    queued = "queued"
    running = "running"
    complete = "complete"
    failed = "failed"


TERMINAL_TASK_STATUSES = (TaskStatus.complete, TaskStatus.failed)
UNSETTLED_TASK_STATUSES = (TaskStatus.queued, TaskStatus.running)


class ScanTask(TimestampMixin, Base):
    """
    One (scan, analysis type) unit of work.

    `payload` holds {"error": ...} for failed tasks and a pointer to the
    cached result for completed ones.
    """
    __tablename__ = "scan_tasks"

    task_id = Column(String, primary_key=True, default=new_id)
    scan_id = Column(String, ForeignKey("scans.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Enum(TaskType), nullable=False)
    status = Column(Enum(TaskStatus), default=TaskStatus.queued, nullable=False)
    payload = Column(JSON, nullable=True)

    started_at = Column(DateTime, nullable=True)
    finished_at = Column(DateTime, nullable=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TASK_STATUSES

    __table_args__ = (
        UniqueConstraint("scan_id", "type", name="uq_scan_tasks_scan_type"),
        Index("idx_scan_tasks_status_created", "status", "created_at"),
    )
