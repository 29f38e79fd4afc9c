"""Recap video upload API router."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from recap.dependencies import get_optional_user_id, get_upload_service
from recap.schemas.requests import CreateRecapRequest
from recap.schemas.responses import CreateRecapResponse, ErrorResponse
from recap.services import RecapUploadService
from recap.utils import decode_data_url

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/videos", tags=["videos"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post(
    "/create",
    response_model=CreateRecapResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def create_recap_video(
    request: CreateRecapRequest,
    user_id: Optional[str] = Depends(get_optional_user_id),
    service: RecapUploadService = Depends(get_upload_service),
):
    """
    Store a recap video rendered by a client.

    The caller must belong to the family, and every photo URL must be a
    photo of that family. The video arrives as a base64 data URL.
    """
    if not user_id:
        return _error(401, "Unauthorized")

    if not request.family_id or not request.photo_urls or not request.video_blob:
        return _error(400, "Missing required fields: familyId, photoUrls, videoBlob")

    try:
        if not service.is_family_member(request.family_id, user_id):
            return _error(403, "You are not a member of this family")

        if not service.photos_belong_to_family(request.family_id, request.photo_urls):
            return _error(400, "Invalid photo URLs provided")
    except Exception as e:
        logger.error(f"Recap ownership check failed: {e}")
        return _error(500, "Internal server error")

    try:
        video_bytes = decode_data_url(request.video_blob)
    except ValueError as e:
        logger.warning(f"Rejected recap payload: {e}")
        return _error(400, "Invalid video data")

    try:
        path, public_url = service.store(request.family_id, video_bytes)
    except Exception as e:
        logger.error(f"Recap upload error: {e}")
        return _error(500, "Failed to upload video")

    logger.info(f"User {user_id} stored recap {path} for family {request.family_id}")
    return CreateRecapResponse(success=True, video_url=public_url, path=path)
