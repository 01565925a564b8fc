"""
Pydantic schemas.

Why:
- Validation of inbound write payloads (lengths, required fields)
- Defines the shape of an ingestion result entry
"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Literal, Optional


class ReportCreate(BaseModel):
    """Citizen hazard report. Only location_id and type are required."""
    model_config = ConfigDict(str_strip_whitespace=True)

    location_id: int
    type: str = Field(..., min_length=1, max_length=32)
    severity: Optional[str] = Field(None, max_length=16)
    note: Optional[str] = None
    photo_url: Optional[str] = Field(None, max_length=255)
    # Defaults to "now" at insert time
    reported_at: Optional[datetime] = None


class DeviceTokenUpsert(BaseModel):
    """Expo push token registration, keyed by expo_token."""
    model_config = ConfigDict(str_strip_whitespace=True)

    expo_token: str = Field(..., min_length=1, max_length=255)
    platform: Optional[str] = Field(None, max_length=16)
    location_id: Optional[int] = None


class IngestResult(BaseModel):
    """
    One entry per location of an ingestion run.
    ok entries carry forecast_id/alerts_created, error entries carry message.
    """
    location_id: int
    status: Literal["ok", "error"]
    forecast_id: Optional[int] = None
    alerts_created: Optional[int] = None
    message: Optional[str] = None


class IngestResponse(BaseModel):
    results: List[IngestResult]
