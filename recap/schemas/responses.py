"""Response schemas for the API."""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class CreateRecapResponse(BaseModel):
    """Stored recap video."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    video_url: str = Field(alias="videoUrl")
    path: str


class ErrorResponse(BaseModel):
    error: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    ffmpeg_available: bool
    ffmpeg_version: Optional[str] = None
    uptime_seconds: float
