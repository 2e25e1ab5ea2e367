from datetime import datetime

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import declarative_base
from uuid_extension import uuid7

Base = declarative_base()


def new_id() -> str:
    """Time-ordered string id (uuid7) for primary keys."""
    return str(uuid7())


class TimestampMixin:
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

# Note: Models import this Base. Do not import models here to avoid circular imports.
# Alembic migrations live under alembic/versions.
