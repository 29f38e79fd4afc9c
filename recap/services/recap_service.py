"""Video recap generation.

Turns an ordered list of photos into a single WebM video with fade
transitions and optional looping background music, entirely in-process.

Lifecycle::

    Idle -> Validating -> Preparing -> Running -> Finalizing -> Completed | Failed

Finalizing stops the encoder session and releases the music track exactly
once, whether the run succeeded, failed, timed out or was cancelled. Every
failure reaches the caller as one ``RecapError`` subclass.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional, Sequence, TypeVar

from recap.config import settings
from recap.exceptions import (
    CorruptOutputError,
    EmptyOutputError,
    EncoderInitError,
    RecapCancelledError,
    RecapError,
    RecapTimeoutError,
    UnsupportedRuntimeError,
    ValidationError,
    classify_encoder_error,
)
from recap.render.audio_mixer import AudioMixer, AudioTrackHandle
from recap.render.compositor import RasterSurface, allocate_surface
from recap.render.encoder import CodecProfile, EncoderSession, negotiate_codec, open_ffmpeg_session
from recap.render.timeline import ImageSource, ProgressCallback, TimelineConfig, TimelineDriver, clamp_fade
from recap.utils.ffmpeg import FFmpegRuntime
from recap.utils.image_utils import ImageLoader
from recap.utils.transient import TransientReference

logger = logging.getLogger(__name__)

T = TypeVar("T")

SessionFactory = Callable[
    [RasterSurface, CodecProfile, TimelineConfig, Optional[AudioTrackHandle]],
    Awaitable[EncoderSession],
]


class PipelineState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    PREPARING = "preparing"
    RUNNING = "running"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = (PipelineState.COMPLETED, PipelineState.FAILED)


@dataclass
class RecapOptions:
    """Inputs for one recap. ``duration`` is per photo, in milliseconds."""

    photos: Sequence[str]
    duration: int = field(default_factory=lambda: settings.recap_photo_duration_ms)
    width: int = field(default_factory=lambda: settings.recap_width)
    height: int = field(default_factory=lambda: settings.recap_height)
    fps: int = field(default_factory=lambda: settings.recap_fps)
    fade_in_duration: float = field(default_factory=lambda: settings.recap_fade_in)
    fade_out_duration: float = field(default_factory=lambda: settings.recap_fade_out)
    music_url: Optional[str] = field(default_factory=lambda: settings.recap_music_url)
    on_progress: Optional[ProgressCallback] = None


@dataclass
class RecapResult:
    """The finished video. The caller must release ``reference``."""

    buffer: bytes
    mime_type: str
    total_duration_ms: int
    reference: TransientReference

    @property
    def url(self) -> str:
        return self.reference.url

    def release(self) -> None:
        self.reference.release()


async def _open_default_session(
    surface: RasterSurface,
    profile: CodecProfile,
    config: TimelineConfig,
    audio: Optional[AudioTrackHandle],
) -> EncoderSession:
    return await open_ffmpeg_session(
        surface,
        profile,
        fps=config.fps,
        audio=audio,
        bitrate=settings.recap_video_bitrate,
    )


class RecapPipeline:
    """One recap run. Instances are single-use and share nothing."""

    def __init__(
        self,
        options: RecapOptions,
        runtime: Optional[FFmpegRuntime] = None,
        image_loader: Optional[ImageSource] = None,
        audio_mixer: Optional[AudioMixer] = None,
        session_factory: Optional[SessionFactory] = None,
        timeout_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.options = options
        self._runtime = runtime or FFmpegRuntime()
        self._image_loader = image_loader or ImageLoader()
        self._audio_mixer = audio_mixer or AudioMixer(runtime=self._runtime)
        self._session_factory = session_factory or _open_default_session
        self._timeout = (
            timeout_seconds if timeout_seconds is not None else settings.recap_timeout_seconds
        )
        self._sleep = sleep

        self._state = PipelineState.IDLE
        self.history: list[PipelineState] = [PipelineState.IDLE]
        self.profile: Optional[CodecProfile] = None
        self.error: Optional[RecapError] = None
        self._abort_requested = False
        self._drive_task: Optional[asyncio.Task] = None
        self._finalized = False
        self._deadline = 0.0

    @property
    def state(self) -> PipelineState:
        return self._state

    def cancel(self) -> bool:
        """Abort the run. Returns False once it has started finalizing."""
        if self._finalized or self._state in TERMINAL_STATES or self._abort_requested:
            return False
        logger.info(f'Recap cancel requested in state {self._state.value}')
        self._abort_requested = True
        if self._drive_task is not None and not self._drive_task.done():
            self._drive_task.cancel()
        return True

    async def run(self) -> RecapResult:
        """Produce the recap, or raise exactly one ``RecapError``."""
        if self._state is not PipelineState.IDLE:
            raise RuntimeError('RecapPipeline can only run once')

        try:
            result = await self._run()
        except RecapError as exc:
            self._fail(exc)
            raise
        except asyncio.CancelledError:
            # Cancelled from outside; cleanup already ran
            self._transition(PipelineState.FAILED)
            raise
        except Exception as exc:
            error = classify_encoder_error(exc)
            logger.exception(f'Unexpected recap failure: {exc}')
            self._fail(error)
            raise error from exc

        self._transition(PipelineState.COMPLETED)
        logger.info(
            f'Recap completed: {len(result.buffer)} bytes, {result.total_duration_ms}ms'
        )
        return result

    async def _run(self) -> RecapResult:
        self._deadline = asyncio.get_running_loop().time() + self._timeout
        self._transition(PipelineState.VALIDATING)
        config = await self._validate()

        self._transition(PipelineState.PREPARING)
        surface = allocate_surface(config.width, config.height)

        async with self._encoding_scope(surface, config) as session:
            self._transition(PipelineState.RUNNING)
            await session.start()
            await self._drive(config, surface)

        return self._collect(session, config)

    async def _validate(self) -> TimelineConfig:
        opts = self.options
        count = len(opts.photos) if opts.photos else 0
        if count == 0:
            raise ValidationError.no_images()
        if count > settings.recap_max_photos:
            raise ValidationError.too_many_images(settings.recap_max_photos)
        if opts.fps <= 0 or opts.duration <= 0:
            raise ValidationError.invalid_options()

        # Capability checks run ffmpeg; keep them off the event loop
        if not await asyncio.to_thread(self._runtime.is_supported):
            raise UnsupportedRuntimeError()

        return TimelineConfig(
            image_count=count,
            per_image_duration_ms=opts.duration,
            fps=opts.fps,
            fade_in_fraction=clamp_fade(opts.fade_in_duration, 'fade-in'),
            fade_out_fraction=clamp_fade(opts.fade_out_duration, 'fade-out'),
            width=opts.width,
            height=opts.height,
        )

    @asynccontextmanager
    async def _encoding_scope(
        self, surface: RasterSurface, config: TimelineConfig
    ) -> AsyncIterator[EncoderSession]:
        """Acquire music + encoder session; release both on every exit."""
        audio: Optional[AudioTrackHandle] = None
        session: Optional[EncoderSession] = None
        try:
            audio = await self._within_deadline(
                self._audio_mixer.try_load(self.options.music_url)
            )
            self.profile = await asyncio.to_thread(negotiate_codec, self._runtime)
            logger.info(f'Using codec {self.profile.mime_type}')
            try:
                session = await self._session_factory(surface, self.profile, config, audio)
            except RecapError:
                raise
            except Exception as e:
                raise EncoderInitError() from e
            yield session
        except BaseException:
            await self._finalize(session, audio, force=True)
            raise
        else:
            await self._finalize(session, audio, force=False)

    async def _finalize(
        self,
        session: Optional[EncoderSession],
        audio: Optional[AudioTrackHandle],
        *,
        force: bool,
    ) -> None:
        if self._finalized:
            return
        self._finalized = True
        self._transition(PipelineState.FINALIZING)
        try:
            if session is not None:
                if force:
                    try:
                        await session.stop(force=True)
                    except Exception as e:
                        logger.warning(f'Encoder stop during failure cleanup raised: {e}')
                else:
                    await session.stop()
        finally:
            if audio is not None:
                audio.release()

    async def _drive(self, config: TimelineConfig, surface: RasterSurface) -> None:
        if self._abort_requested:
            raise RecapCancelledError()

        driver = TimelineDriver(
            config,
            self._image_loader,
            surface,
            on_progress=self.options.on_progress,
            sleep=self._sleep,
        )
        self._drive_task = asyncio.create_task(driver.run(self.options.photos))
        try:
            await self._within_deadline(self._drive_task)
        except asyncio.CancelledError:
            if self._abort_requested:
                raise RecapCancelledError()
            raise

    async def _within_deadline(self, aw: Awaitable[T]) -> T:
        """Await ``aw`` under the run's single wall-clock ceiling."""
        remaining = max(0.0, self._deadline - asyncio.get_running_loop().time())
        try:
            return await asyncio.wait_for(aw, timeout=remaining)
        except asyncio.TimeoutError as e:
            logger.error(f'Recap exceeded {self._timeout}s ceiling in state {self._state.value}')
            raise RecapTimeoutError() from e

    def _collect(self, session: EncoderSession, config: TimelineConfig) -> RecapResult:
        if not session.chunks:
            raise EmptyOutputError()
        buffer = b''.join(session.chunks)
        if not buffer:
            raise CorruptOutputError()

        profile = self.profile
        reference = TransientReference.create(buffer, suffix=f'.{profile.container}')
        return RecapResult(
            buffer=buffer,
            mime_type=profile.container_mime,
            total_duration_ms=config.total_duration_ms,
            reference=reference,
        )

    def _transition(self, state: PipelineState) -> None:
        logger.debug(f'Recap state {self._state.value} -> {state.value}')
        self._state = state
        self.history.append(state)

    def _fail(self, error: RecapError) -> None:
        self.error = error
        logger.error(f'Recap failed [{error.code}]: {error.message}')
        self._transition(PipelineState.FAILED)


async def create_video_recap(
    options: RecapOptions,
    runtime: Optional[FFmpegRuntime] = None,
) -> RecapResult:
    """Run a recap pipeline with default collaborators."""
    pipeline = RecapPipeline(options, runtime=runtime)
    return await pipeline.run()
