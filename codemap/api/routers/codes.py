"""
Codes Router - compress and decompress endpoints.

compress stores a payload under its SHA-256 content key and returns the
key; decompress looks a key up and returns the payload.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from codemap.api.dependencies import get_service
from codemap.api.models import CodeResponse, error_body
from codemap.service import CodeMapService
from codemap.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["codes"])


@router.post("/compress", response_model=CodeResponse, response_model_exclude_none=True)
async def compress(
    request: Request,
    service: CodeMapService = Depends(get_service),
):
    """Store a payload and return its content key.

    Body: ``{"payload": "<non-empty string>"}``

    Returns:
        200 with ``{"code": 0, "data": "<key>"}``; 400 for a malformed body
        or payload; 500 if no backend accepted the write.
    """
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content=error_body("Invalid JSON body"))

    payload = body.get("payload") if isinstance(body, dict) else None
    if not isinstance(payload, str) or len(payload) == 0:
        return JSONResponse(status_code=400, content=error_body("payload must be a non-empty string"))

    key = await service.compress(payload)
    return CodeResponse(code=0, data=key)


@router.get("/decompress", response_model=CodeResponse, response_model_exclude_none=True)
@router.get("/depress", response_model=CodeResponse, response_model_exclude_none=True, include_in_schema=False)
async def decompress(
    payload: Optional[str] = Query(None, description="Content key returned by compress"),
    service: CodeMapService = Depends(get_service),
):
    """Return the payload stored under a content key.

    A key that is unknown and a key whose backends are all down both
    answer 404.
    """
    if not payload:
        return JSONResponse(status_code=400, content=error_body("Missing payload parameter"))

    original = await service.decompress(payload)
    if original is None:
        return JSONResponse(status_code=404, content=error_body("short code not found"))

    return CodeResponse(code=0, data=original)
