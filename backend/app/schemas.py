from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


def utc_iso(ts: Optional[float] = None) -> str:
    """ISO-8601 UTC with millisecond precision and a trailing Z."""
    dt = datetime.now(timezone.utc) if ts is None else datetime.fromtimestamp(ts, timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ---------- Success metadata ----------

class GatewayMeta(BaseModel):
    """
    Attached under `gateway` to every fresh (non-cached) upstream passthrough.
    """
    name: str
    version: str
    response_time: int = Field(..., ge=0, description="Upstream round trip in ms.")
    cached: bool = False
    server: Optional[str] = None
    timestamp: str = Field(default_factory=utc_iso)


# ---------- Error bodies ----------

class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    example: Optional[str] = None


class UpstreamErrorResponse(BaseModel):
    success: bool = False
    error: str
    details: str = "Failed to fetch from Virtusim API"
    gateway: str
    timestamp: str = Field(default_factory=utc_iso)
