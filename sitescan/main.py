import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from sitescan.api_routers.v1 import api_router
from sitescan.features.health.routes.health import router as health_router
from sitescan.features.scan.services.cache.durable_tier import DurableCacheTier
from sitescan.features.scan.services.cache.unified_cache import UnifiedCache
from sitescan.features.scan.services.store.scan_store import ScanStore
from sitescan.platform.db.session import SessionLocal, engine
from sitescan.platform.exceptions import add_exception_handlers

# Configure logging to show INFO level messages
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def create_app(store: Optional[ScanStore] = None, cache: Optional[UnifiedCache] = None) -> FastAPI:
    owns_engine = store is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_engine:
            await engine.dispose()

    app = FastAPI(
        title="SiteScan API",
        description="Asynchronous website scan orchestration",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.scan_store = store or ScanStore(SessionLocal)
    app.state.result_cache = cache or UnifiedCache(durable=DurableCacheTier(SessionLocal))

    # Root endpoint for basic info
    @app.get("/", tags=["Info"])
    def root():
        return {
            "app_name": "SiteScan API",
            "description": "Queue website scans and read their analysis results.",
            "version": "1.0.0",
            "docs_url": "/docs",
            "api_base": "/api/v1",
        }

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    add_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()
