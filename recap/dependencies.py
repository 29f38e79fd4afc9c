"""FastAPI dependency injection."""

import logging
from fastapi import Depends, HTTPException, Header
from functools import lru_cache
from typing import Optional

from supabase import Client, create_client

from recap.config import settings
from recap.services import RecapUploadService
from recap.utils import FFmpegRuntime

logger = logging.getLogger(__name__)


@lru_cache()
def get_supabase_client() -> Client:
    """Service-role client used for storage writes."""
    if not settings.supabase_url:
        raise HTTPException(status_code=503, detail="Storage is not configured")
    return create_client(
        settings.supabase_url,
        settings.supabase_service_role_key or settings.supabase_anon_key,
    )


@lru_cache()
def get_ffmpeg_runtime() -> FFmpegRuntime:
    return FFmpegRuntime()


def get_upload_service(
    client: Client = Depends(get_supabase_client)
) -> RecapUploadService:
    """Get upload service instance."""
    return RecapUploadService(client)


# Auth dependency
async def get_current_user_id(
    authorization: Optional[str] = Header(None)
) -> str:
    """
    Extract user ID from authorization header.

    The bearer token is a Supabase JWT, verified against Supabase auth.
    """
    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required"
        )

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=401,
            detail="Invalid authorization format"
        )

    token = authorization[7:]

    if not settings.supabase_url:
        raise HTTPException(status_code=401, detail="Auth is not configured")

    try:
        supabase = create_client(
            settings.supabase_url,
            settings.supabase_anon_key
        )
        user = supabase.auth.get_user(token)
    except Exception as e:
        logger.warning(f"Token verification failed: {e}")
        raise HTTPException(status_code=401, detail=str(e))

    if user and user.user:
        return user.user.id

    raise HTTPException(status_code=401, detail="Invalid token")


async def get_optional_user_id(
    authorization: Optional[str] = Header(None)
) -> Optional[str]:
    """Optional auth - returns None if not authenticated."""
    if not authorization:
        return None

    try:
        return await get_current_user_id(authorization)
    except HTTPException:
        return None
