"""Client side of the recap upload sink."""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx

from recap.utils.transport import encode_data_url

logger = logging.getLogger(__name__)


@dataclass
class UploadOutcome:
    video_url: Optional[str] = None
    path: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RecapUploadClient:
    """Posts a finished recap to the API as a base64 data URL."""

    def __init__(
        self,
        api_url: str,
        token: str,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 300.0,
    ):
        self._api_url = api_url.rstrip('/')
        self._token = token
        self._http = http
        self._timeout = timeout

    async def upload(
        self,
        family_id: str,
        photo_urls: Sequence[str],
        video_bytes: bytes,
        mime_type: str = 'video/webm',
    ) -> UploadOutcome:
        payload = {
            'familyId': family_id,
            'photoUrls': list(photo_urls),
            'videoBlob': encode_data_url(video_bytes, mime_type),
        }
        try:
            response = await self._post(payload)
        except httpx.HTTPError as e:
            logger.error(f'Recap upload failed: {e}')
            return UploadOutcome(error=f'Upload failed: {e}')

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code != 200:
            error = data.get('error') or f'Upload failed: {response.status_code}'
            logger.error(f'Recap upload rejected: {error}')
            return UploadOutcome(error=error)

        logger.info(f"Recap uploaded to {data.get('path')}")
        return UploadOutcome(video_url=data.get('videoUrl'), path=data.get('path'))

    async def _post(self, payload: dict) -> httpx.Response:
        url = f'{self._api_url}/api/v1/videos/create'
        headers = {'Authorization': f'Bearer {self._token}'}
        if self._http is not None:
            return await self._http.post(url, json=payload, headers=headers)
        async with httpx.AsyncClient(timeout=self._timeout) as http:
            return await http.post(url, json=payload, headers=headers)
