from sqlalchemy import Column, String, Boolean, Integer, DateTime, ForeignKey, Enum, CheckConstraint
from datetime import datetime
import enum

from sitescan.platform.db.base import Base, TimestampMixin, new_id


class ScanState(enum.Enum):
    """Aggregate scan status"""
    queued = "queued"
    running = "running"
    complete = "complete"
    failed = "failed"


class Scan(TimestampMixin, Base):
    """
    One user-submitted URL analysis request.

    Only `last_run_at` and `active` change after creation (on re-run).
    Rows are never deleted here; retention is handled elsewhere.
    """
    __tablename__ = "scans"

    id = Column(String, primary_key=True, default=new_id, index=True)
    url = Column(String(2048), nullable=False, index=True)
    user_id = Column(String, nullable=True, index=True)
    active = Column(Boolean, default=True, nullable=False)
    last_run_at = Column(DateTime, nullable=True)


class ScanStatus(TimestampMixin, Base):
    """Aggregate status row, 1:1 with Scan. Written only by the task worker."""
    __tablename__ = "scan_status"

    scan_id = Column(String, ForeignKey("scans.id", ondelete="CASCADE"), primary_key=True)
    status = Column(Enum(ScanState), default=ScanState.queued, nullable=False, index=True)
    progress = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("progress >= 0 AND progress <= 100", name="check_progress_range"),
    )
