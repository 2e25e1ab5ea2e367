from sqlalchemy import Column, Integer, String, DateTime, JSON

from sitescan.platform.db.base import Base, TimestampMixin


class AnalysisCache(TimestampMixin, Base):
    """
    Durable tier of the result cache.

    Keyed by "{prefix}_{sha256(url)}" and shared by every scan that targets
    the same URL and analysis type. Rows are overwritten in place and expire
    through `expires_at`.
    """
    __tablename__ = "analysis_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    url_hash = Column(String(255), nullable=False, unique=True, index=True)
    original_url = Column(String(2048), nullable=False)
    audit_json = Column(JSON, nullable=False)
    schema_version = Column(String(32), nullable=True)
    expires_at = Column(DateTime, nullable=False, index=True)
