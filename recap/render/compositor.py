"""
Frame compositing for recap videos.

This module handles:
- The RGB raster surface that the encoder samples frames from
- Aspect-preserving placement of a photo on the output canvas
- Fade-through-black opacity (black background stays opaque)
- The per-image fade curve
"""

import logging
from dataclasses import dataclass

import numpy as np
from PIL import Image

from recap.exceptions import ResourceAllocationError
from recap.utils.image_utils import DecodedImage

logger = logging.getLogger(__name__)


class RasterSurface:
    """In-memory RGB frame buffer (height x width x 3, uint8)."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.pixels = np.zeros((height, width, 3), dtype=np.uint8)
        self.frames_rendered = 0

    @property
    def frame_size(self) -> int:
        return self.width * self.height * 3

    def frame_bytes(self) -> bytes:
        """Snapshot of the most recently rendered frame as raw rgb24."""
        return self.pixels.tobytes()


def allocate_surface(width: int, height: int) -> RasterSurface:
    """Allocate the output surface.

    Raises ResourceAllocationError if the dimensions are unusable or the
    buffer cannot be allocated.
    """
    if width <= 0 or height <= 0:
        logger.error(f'Invalid surface size {width}x{height}')
        raise ResourceAllocationError()
    try:
        return RasterSurface(width, height)
    except (MemoryError, ValueError) as e:
        logger.error(f'Surface allocation failed for {width}x{height}: {e}')
        raise ResourceAllocationError() from e


@dataclass
class Placement:
    """Where a scaled image lands on the canvas (offsets may be negative)."""

    x: float
    y: float
    width: float
    height: float


def compute_placement(img_w: int, img_h: int, out_w: int, out_h: int) -> Placement:
    """Scale preserving aspect ratio and center on the canvas."""
    img_aspect = img_w / img_h
    canvas_aspect = out_w / out_h

    if img_aspect > canvas_aspect:
        # Image is wider than canvas
        height = out_h
        width = height * img_aspect
        return Placement(x=(out_w - width) / 2, y=0, width=width, height=height)

    # Image is taller than canvas
    width = out_w
    height = width / img_aspect
    return Placement(x=0, y=(out_h - height) / 2, width=width, height=height)


def fit_image(image: DecodedImage, out_w: int, out_h: int) -> np.ndarray:
    """Render the image at full opacity on a black canvas.

    Computed once per photo; every frame of that photo is this array
    scaled by its opacity.
    """
    placement = compute_placement(image.width, image.height, out_w, out_h)
    size = (max(1, round(placement.width)), max(1, round(placement.height)))
    scaled = image.raster.resize(size, Image.Resampling.LANCZOS)

    canvas = Image.new('RGB', (out_w, out_h), (0, 0, 0))
    canvas.paste(scaled, (round(placement.x), round(placement.y)))
    return np.asarray(canvas, dtype=np.uint8)


def render_frame(surface: RasterSurface, placed: np.ndarray, opacity: float) -> None:
    """Draw a fitted image onto the surface at the given opacity.

    Over an opaque black background, drawing at opacity ``a`` is ``a * pixel``.
    """
    opacity = min(max(opacity, 0.0), 1.0)
    if opacity >= 1.0:
        np.copyto(surface.pixels, placed)
    elif opacity <= 0.0:
        surface.pixels.fill(0)
    else:
        np.multiply(placed, opacity, out=surface.pixels, casting='unsafe')
    surface.frames_rendered += 1


def fade_opacity(frame: int, total_frames: int, fade_in_frames: int, fade_out_frames: int) -> float:
    """Opacity of ``frame`` within an image's ``total_frames``.

    A zero-length fade means immediate full opacity, never a division by zero.
    """
    if fade_in_frames > 0 and frame < fade_in_frames:
        return frame / fade_in_frames
    if fade_out_frames > 0 and frame > total_frames - fade_out_frames:
        return (total_frames - frame) / fade_out_frames
    return 1.0
