"""
Admin Router - record listing and removal.

Listing reads the replica only; the primary cannot enumerate its keys.
Mounted only when ADMIN_API_ENABLED is set; the routes carry no
authentication and are meant for internal networks.
"""

from fastapi import APIRouter, Depends, Response

from codemap.api.dependencies import get_storage
from codemap.api.models import RecordResponse, RecordsResponse
from codemap.storage import HybridStorage
from codemap.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["admin"])


@router.get("/records", response_model=RecordsResponse)
async def list_records(storage: HybridStorage = Depends(get_storage)) -> RecordsResponse:
    """List unexpired records held by the replica.

    An unreachable or missing replica yields an empty list.
    """
    records = await storage.list()
    return RecordsResponse(
        count=len(records),
        records=[
            RecordResponse(key=r.key, payload=r.payload, expires_at=r.expires_at)
            for r in records
        ],
    )


@router.delete("/records/{key}", status_code=204)
async def delete_record(key: str, storage: HybridStorage = Depends(get_storage)) -> Response:
    """Remove a key from every backend, best effort."""
    await storage.delete(key)
    logger.info(f"Deleted record {key}")
    return Response(status_code=204)
