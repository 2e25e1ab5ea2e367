from typing import Any, Optional

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def api_response(
    *,
    data: Optional[Any] = None,
    message: str = "Operation successful",
    status_code: int = status.HTTP_200_OK,
) -> JSONResponse:
    """
    Single envelope for every API response.
    status is "pending" for 202 (work still queued or running),
    "success" below 400 and "error" otherwise.
    """
    if status_code == status.HTTP_202_ACCEPTED:
        status_str = "pending"
    elif status_code < 400:
        status_str = "success"
    else:
        status_str = "error"
    data = jsonable_encoder(data) if data is not None else {}

    return JSONResponse(
        status_code=status_code,
        content={
            "status_code": status_code,
            "status": status_str,
            "message": message,
            "data": data,
        },
    )
