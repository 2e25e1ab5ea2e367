from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from sitescan.platform.config import settings


def build_engine(database_url: str = None):
    database_url = database_url or settings.DATABASE_URL
    options = dict(echo=False, future=True, pool_pre_ping=True)
    if not database_url.startswith("sqlite"):
        options.update(
            pool_recycle=1800,
            pool_size=20,
            max_overflow=30,  # (burst capacity)
            pool_timeout=30,
        )
    return create_async_engine(database_url, **options)


engine = build_engine()
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)