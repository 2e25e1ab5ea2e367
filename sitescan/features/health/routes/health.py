from fastapi import APIRouter, Request, status
from sitescan.platform.response import api_response


router = APIRouter()

@router.get("/health", tags=["health"])
async def health_check(request: Request):
    database_ok = await request.app.state.scan_store.ping()
    if not database_ok:
        return api_response(
            data={"status": "degraded", "service": "SiteScan", "database": "unreachable"},
            message="Database is unreachable",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    return api_response(
        data={"status": "ok", "service": "SiteScan", "database": "ok"},
        message="Service is healthy",
        status_code=status.HTTP_200_OK,
    )
