"""
Pydantic request/response models for the codemap API.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Compress / Decompress Models
# ============================================================================

class CodeResponse(BaseModel):
    """Envelope used by the compress and decompress routes.

    code is 0 on success and 1 on failure.
    """
    code: int = 0
    data: Optional[str] = None
    message: Optional[str] = None


def error_body(message: str) -> dict:
    return CodeResponse(code=1, message=message).model_dump(exclude_none=True)


# ============================================================================
# Admin Models
# ============================================================================

class RecordResponse(BaseModel):
    """A stored record as held by the replica."""
    key: str
    payload: str
    expires_at: int


class RecordsResponse(BaseModel):
    count: int
    records: List[RecordResponse]


# ============================================================================
# System Response Models
# ============================================================================

class ServiceHealth(BaseModel):
    """Individual backend health status."""
    name: str
    role: str
    healthy: bool
    latency_ms: Optional[float] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    """Storage health status."""
    status: str = Field(description="healthy, degraded or unhealthy")
    timestamp: datetime
    services: List[ServiceHealth]


class StatusResponse(BaseModel):
    """API status information."""
    version: str
    uptime_seconds: float
    backend: str
    pending_background_tasks: int = 0
