"""Business logic services."""

from .recap_service import (
    PipelineState,
    RecapOptions,
    RecapPipeline,
    RecapResult,
    create_video_recap,
)
from .upload_client import RecapUploadClient, UploadOutcome
from .upload_service import RecapUploadService

__all__ = [
    "PipelineState",
    "RecapOptions",
    "RecapPipeline",
    "RecapResult",
    "create_video_recap",
    "RecapUploadClient",
    "UploadOutcome",
    "RecapUploadService",
]
