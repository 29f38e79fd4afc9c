"""
Timeline driver for recap videos.

Walks the photos in order: load, fit to the canvas, then render one frame per
tick at ``1000 / fps`` ms, yielding to the event loop between ticks. The
encoder session samples the surface independently on its own clock.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, Optional, Protocol, Sequence

from recap.render.compositor import RasterSurface, fade_opacity, fit_image, render_frame
from recap.utils.image_utils import DecodedImage

logger = logging.getLogger(__name__)

MAX_FADE_FRACTION = 0.5

ProgressCallback = Callable[[int], None]


class ImageSource(Protocol):
    async def load(self, ref: str, index: int) -> DecodedImage: ...


def clamp_fade(fraction: float, name: str = "fade") -> float:
    """Clamp a fade fraction to [0, 0.5] so fade-in and fade-out never overlap."""
    clamped = min(max(fraction, 0.0), MAX_FADE_FRACTION)
    if clamped != fraction:
        logger.warning(f'{name} fraction {fraction} out of range, clamped to {clamped}')
    return clamped


@dataclass(frozen=True)
class TimelineConfig:
    """Timing and geometry for one recap."""

    image_count: int
    per_image_duration_ms: int
    fps: int
    fade_in_fraction: float
    fade_out_fraction: float
    width: int
    height: int

    @property
    def frames_per_image(self) -> int:
        return math.floor((self.per_image_duration_ms / 1000) * self.fps)

    @property
    def fade_in_frames(self) -> int:
        return math.floor(self.frames_per_image * self.fade_in_fraction)

    @property
    def fade_out_frames(self) -> int:
        return math.floor(self.frames_per_image * self.fade_out_fraction)

    @property
    def tick_seconds(self) -> float:
        return 1 / self.fps

    @property
    def total_duration_ms(self) -> int:
        return self.image_count * self.per_image_duration_ms


@dataclass(frozen=True)
class FrameDescriptor:
    image_index: int
    local_frame_index: int
    opacity: float


def iter_frames(config: TimelineConfig, image_index: int) -> Iterator[FrameDescriptor]:
    """Yield the frames of one image with their fade opacity."""
    total = config.frames_per_image
    for frame in range(total):
        yield FrameDescriptor(
            image_index=image_index,
            local_frame_index=frame,
            opacity=fade_opacity(frame, total, config.fade_in_frames, config.fade_out_frames),
        )


def progress_percent(completed: int, total: int) -> int:
    """Percentage rounded half-up."""
    return math.floor(completed / total * 100 + 0.5)


class TimelineDriver:
    """Drives the compositor across all images at a fixed fps."""

    def __init__(
        self,
        config: TimelineConfig,
        loader: ImageSource,
        surface: RasterSurface,
        on_progress: Optional[ProgressCallback] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self._loader = loader
        self._surface = surface
        self._on_progress = on_progress
        self._sleep = sleep
        self.completed_images = 0

    async def run(self, photos: Sequence[str]) -> None:
        """Render every photo in order.

        Any ImageLoadError aborts the run immediately; later photos are
        never loaded or rendered.
        """
        total = len(photos)
        for i, ref in enumerate(photos):
            image = await self._loader.load(ref, i)
            await self._animate(image, i)
            del image

            self.completed_images = i + 1
            progress = progress_percent(i + 1, total)
            logger.info(f'Photo {i + 1}/{total} rendered ({progress}%)')
            if self._on_progress:
                self._on_progress(progress)

    async def _animate(self, image: DecodedImage, index: int) -> None:
        cfg = self.config
        placed = await asyncio.to_thread(fit_image, image, cfg.width, cfg.height)
        for frame in iter_frames(cfg, index):
            render_frame(self._surface, placed, frame.opacity)
            await self._sleep(cfg.tick_seconds)
