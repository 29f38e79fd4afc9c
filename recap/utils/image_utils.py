"""Image loading for the recap pipeline."""

import asyncio
import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Optional

import httpx
from PIL import Image, ImageOps

from recap.config import settings
from recap.exceptions import ImageLoadError
from recap.utils.transport import decode_data_url

logger = logging.getLogger(__name__)


@dataclass
class DecodedImage:
    """An in-memory RGB raster, owned by the pipeline until its frames render."""

    width: int
    height: int
    raster: Image.Image

    @property
    def aspect(self) -> float:
        return self.width / self.height


def resize_image(image: Image.Image, max_size: int) -> Image.Image:
    """Shrink image so its longest side is at most ``max_size``, keeping aspect ratio."""
    width, height = image.size
    if max(width, height) <= max_size:
        return image

    ratio = max_size / max(width, height)
    new_size = (max(1, round(width * ratio)), max(1, round(height * ratio)))
    return image.resize(new_size, Image.Resampling.LANCZOS)


def decode_image(data: bytes, max_dimension: Optional[int] = None) -> Image.Image:
    """Decode image bytes into an upright RGB Pillow image."""
    img = Image.open(BytesIO(data))
    img.load()
    # Fix EXIF orientation before measuring aspect ratio
    img = ImageOps.exif_transpose(img)
    if max_dimension:
        img = resize_image(img, max_dimension)
    if img.mode != 'RGB':
        img = img.convert('RGB')
    return img


class ImageLoader:
    """Fetches and decodes one image reference at a time.

    Supports http(s) URLs, base64 data URLs and local file paths. A failure
    is reported as ``ImageLoadError`` carrying the 1-based position; there
    is no retry here.
    """

    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        max_dimension: Optional[int] = None,
    ):
        self._http = http
        self._timeout = timeout or settings.image_fetch_timeout
        self._max_dimension = max_dimension or settings.max_image_dimension

    async def load(self, ref: str, index: int) -> DecodedImage:
        """Load the image at zero-based ``index`` of the timeline."""
        try:
            data = await self._read(ref)
            # Decoding and LANCZOS shrink are CPU-bound; keep them off the event loop
            img = await asyncio.to_thread(decode_image, data, self._max_dimension)
        except Exception as e:
            logger.error(f'Failed to load photo {index + 1}: {e}')
            raise ImageLoadError(index + 1) from e

        logger.debug(f'Loaded photo {index + 1}: {img.width}x{img.height}')
        return DecodedImage(width=img.width, height=img.height, raster=img)

    async def _read(self, ref: str) -> bytes:
        if ref.startswith(('http://', 'https://')):
            return await self._download(ref)
        if ref.startswith('data:'):
            return decode_data_url(ref)
        return Path(ref).read_bytes()

    async def _download(self, url: str) -> bytes:
        if self._http is not None:
            resp = await self._http.get(url)
        else:
            async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as http:
                resp = await http.get(url)
        resp.raise_for_status()

        content_type = resp.headers.get('content-type', '').lower()
        if content_type.startswith('video/'):
            raise ValueError(f"URL is a video, not an image: {content_type}")
        return resp.content
