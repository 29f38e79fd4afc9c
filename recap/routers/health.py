"""Health and system status API router."""

import asyncio
import time
from fastapi import APIRouter, Depends

from recap.config import settings
from recap.dependencies import get_ffmpeg_runtime
from recap.schemas.responses import HealthResponse
from recap.utils import FFmpegRuntime

router = APIRouter(tags=["system"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse)
async def health_check(runtime: FFmpegRuntime = Depends(get_ffmpeg_runtime)):
    """Basic health check endpoint."""
    available = await asyncio.to_thread(runtime.is_supported)

    return HealthResponse(
        status="healthy" if available else "degraded",
        version=settings.version,
        ffmpeg_available=available,
        ffmpeg_version=await asyncio.to_thread(runtime.version) if available else None,
        uptime_seconds=time.time() - _start_time
    )
