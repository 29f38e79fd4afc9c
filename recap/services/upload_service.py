"""Persisting finished recap videos to Supabase storage."""

import logging
import time
from typing import Optional, Sequence

from supabase import Client

from recap.config import settings

logger = logging.getLogger(__name__)


class RecapUploadService:
    """Checks family ownership and stores recap videos."""

    def __init__(self, client: Client, bucket: Optional[str] = None):
        self._client = client
        self._bucket = bucket or settings.recap_bucket

    def is_family_member(self, family_id: str, user_id: str) -> bool:
        result = self._client.table('family_members').select('id').eq(
            'family_id', family_id
        ).eq('user_id', user_id).limit(1).execute()
        return bool(result.data)

    def photos_belong_to_family(self, family_id: str, photo_urls: Sequence[str]) -> bool:
        """True if every photo URL is a photo of this family."""
        result = self._client.table('photos').select('id, url').eq(
            'family_id', family_id
        ).in_('url', list(photo_urls)).execute()

        known = {row['url'] for row in (result.data or [])}
        return set(photo_urls) <= known

    def store(self, family_id: str, video_bytes: bytes) -> tuple[str, str]:
        """Upload the video and return (storage_path, public_url)."""
        storage_path = f'{family_id}/recap-{int(time.time() * 1000)}.webm'
        bucket = self._client.storage.from_(self._bucket)
        bucket.upload(
            path=storage_path,
            file=video_bytes,
            file_options={'content-type': 'video/webm', 'upsert': 'false'},
        )
        public_url = bucket.get_public_url(storage_path)
        logger.info(f'Stored recap {storage_path} ({len(video_bytes)} bytes)')
        return storage_path, public_url
