"""
Incremental video encoding with FFmpeg.

The session runs one FFmpeg process for the whole recap. A capture task
samples the raster surface at the session's own fps and writes raw rgb24
frames to stdin; compressed WebM bytes are read from stdout and kept as
chunks in arrival order.

Codec selection is a first-match scan over an ordered preference list,
falling back to the container's default encoders.
"""

import asyncio
import logging
import signal
from collections import deque
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from recap.config import settings
from recap.exceptions import EncoderInitError
from recap.render.audio_mixer import AudioMixer, AudioTrackHandle
from recap.render.compositor import RasterSurface

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


class EncoderRuntimeError(RuntimeError):
    """Raw failure reported by the encoder process."""


@dataclass(frozen=True)
class CodecProfile:
    """A container/codec pair the encoder may be asked to produce."""

    mime_type: str
    container: str
    video_codec: Optional[str] = None
    audio_codec: Optional[str] = None
    video_args: tuple[str, ...] = ()

    @property
    def container_mime(self) -> str:
        return self.mime_type.split(';', 1)[0]


# Most efficient first
WEBM_PREFERENCES: tuple[CodecProfile, ...] = (
    CodecProfile(
        mime_type='video/webm;codecs=vp9',
        container='webm',
        video_codec='libvpx-vp9',
        audio_codec='libopus',
        video_args=('-deadline', 'realtime', '-cpu-used', '8', '-row-mt', '1'),
    ),
    CodecProfile(
        mime_type='video/webm;codecs=vp8',
        container='webm',
        video_codec='libvpx',
        audio_codec='libvorbis',
        video_args=('-deadline', 'realtime', '-cpu-used', '8'),
    ),
)

# Whatever FFmpeg picks by default for the container
WEBM_BASIC = CodecProfile(mime_type='video/webm', container='webm')


class CodecRuntime(Protocol):
    def supports_container(self, container: str) -> bool: ...

    def supports_encoder(self, encoder: str) -> bool: ...


def negotiate_codec(
    runtime: CodecRuntime,
    preferences: Sequence[CodecProfile] = WEBM_PREFERENCES,
    basic: CodecProfile = WEBM_BASIC,
) -> CodecProfile:
    """Pick the first supported profile, else the basic container form.

    Raises EncoderInitError only if the container itself is unsupported.
    """
    for profile in preferences:
        if not runtime.supports_container(profile.container):
            continue
        if profile.video_codec is None or runtime.supports_encoder(profile.video_codec):
            return profile

    if runtime.supports_container(basic.container):
        logger.warning(f'No preferred codec available, falling back to {basic.mime_type}')
        return basic

    raise EncoderInitError()


class EncoderSession(Protocol):
    """What the pipeline needs from an encoder session."""

    chunks: list[bytes]
    bytes_total: int

    async def start(self) -> None: ...

    async def stop(self, force: bool = False) -> bytes: ...


class FFmpegEncoderSession:
    """A live FFmpeg encode fed from a raster surface."""

    def __init__(
        self,
        surface: RasterSurface,
        profile: CodecProfile,
        fps: int,
        bitrate: Optional[int] = None,
        audio: Optional[AudioTrackHandle] = None,
        ffmpeg_path: Optional[str] = None,
    ):
        self.surface = surface
        self.profile = profile
        self.fps = fps
        self.bitrate = bitrate or settings.recap_video_bitrate
        self.audio = audio
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path

        self.chunks: list[bytes] = []
        self.bytes_total = 0
        self.frames_captured = 0

        self._proc: Optional[asyncio.subprocess.Process] = None
        self._capture_task: Optional[asyncio.Task] = None
        self._stdout_task: Optional[asyncio.Task] = None
        self._stderr_task: Optional[asyncio.Task] = None
        self._stderr_tail: deque[str] = deque(maxlen=20)
        self._stop_lock = asyncio.Lock()
        self._stopping = False
        self._stopped = False
        self._failure: Optional[EncoderRuntimeError] = None

    def build_command(self) -> list[str]:
        """Assemble the FFmpeg command line."""
        s = self.surface
        cmd = [
            self.ffmpeg_path, '-y',
            '-hide_banner', '-loglevel', 'error',
            '-f', 'rawvideo',
            '-pix_fmt', 'rgb24',
            '-s', f'{s.width}x{s.height}',
            '-framerate', str(self.fps),
            '-i', 'pipe:0',
        ]
        if self.audio:
            cmd.extend(AudioMixer.input_args(self.audio))

        cmd.extend(['-map', '0:v:0'])
        if self.profile.video_codec:
            cmd.extend(['-c:v', self.profile.video_codec])
        cmd.extend(self.profile.video_args)
        cmd.extend(['-b:v', str(self.bitrate), '-pix_fmt', 'yuv420p'])

        if self.audio:
            cmd.extend(AudioMixer.output_args(1, self.profile.audio_codec))

        cmd.extend(['-f', self.profile.container, 'pipe:1'])
        return cmd

    async def open(self) -> "FFmpegEncoderSession":
        """Spawn the encoder process. Raises EncoderInitError on failure."""
        cmd = self.build_command()
        logger.debug(f"FFmpeg command: {' '.join(cmd)}")
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f'Failed to start FFmpeg: {e}')
            raise EncoderInitError() from e

        self._stdout_task = asyncio.create_task(self._read_output())
        self._stderr_task = asyncio.create_task(self._read_stderr())
        logger.info(f'Encoder opened ({self.profile.mime_type}, {self.bitrate} bps)')
        return self

    async def start(self) -> None:
        """Begin sampling the surface at the session's fps."""
        if self._proc is None:
            raise EncoderRuntimeError('Encoder session is not open')
        if self._capture_task is None:
            self._capture_task = asyncio.create_task(self._capture_loop())

    async def stop(self, force: bool = False) -> bytes:
        """Drain the encoder and return the final chunk.

        Safe to call repeatedly; only the first call shuts the process down.
        ``force`` kills the process instead of draining it.
        """
        async with self._stop_lock:
            if not self._stopped:
                try:
                    await self._shutdown(force)
                finally:
                    self._stopped = True

        if self._failure is not None:
            raise self._failure
        return self.chunks[-1] if self.chunks else b''

    async def _shutdown(self, force: bool) -> None:
        self._stopping = True
        if self._capture_task is not None:
            self._capture_task.cancel()
            await asyncio.gather(self._capture_task, return_exceptions=True)

        proc = self._proc
        if proc is None:
            return

        if force:
            if proc.returncode is None:
                proc.kill()
        elif proc.stdin is not None and not proc.stdin.is_closing():
            proc.stdin.close()
            try:
                await proc.stdin.wait_closed()
            except (BrokenPipeError, ConnectionResetError):
                pass

        await asyncio.gather(self._stdout_task, self._stderr_task, return_exceptions=True)
        returncode = await proc.wait()
        logger.info(
            f'Encoder stopped (rc={returncode}, frames={self.frames_captured}, '
            f'bytes={self.bytes_total})'
        )

        if force or returncode == 0:
            return
        if returncode < 0:
            try:
                sig_name = signal.Signals(-returncode).name
            except ValueError:
                sig_name = str(-returncode)
            err_msg = f'FFmpeg killed by signal {sig_name} (likely out of memory)'
        else:
            err_msg = '\n'.join(self._stderr_tail) or f'exit code {returncode}'
        self._failure = self._failure or EncoderRuntimeError(
            f'FFmpeg failed (rc={returncode}): {err_msg}'
        )

    async def _capture_loop(self) -> None:
        loop = asyncio.get_running_loop()
        interval = 1 / self.fps
        next_tick = loop.time()
        stdin = self._proc.stdin
        try:
            while not self._stopping:
                stdin.write(self.surface.frame_bytes())
                await stdin.drain()
                self.frames_captured += 1
                # Never burst to catch up; a slow encoder just gets fewer frames
                next_tick = max(next_tick + interval, loop.time())
                await asyncio.sleep(next_tick - loop.time())
        except (BrokenPipeError, ConnectionResetError) as e:
            # FFmpeg went away; its exit code decides whether that is a failure
            logger.warning(f'Encoder input closed while capturing: {e}')

    async def _read_output(self) -> None:
        while True:
            chunk = await self._proc.stdout.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            self.chunks.append(chunk)
            self.bytes_total += len(chunk)

    async def _read_stderr(self) -> None:
        async for line in self._proc.stderr:
            text = line.decode(errors='replace').rstrip()
            if text:
                self._stderr_tail.append(text)


async def open_ffmpeg_session(
    surface: RasterSurface,
    profile: CodecProfile,
    fps: int,
    audio: Optional[AudioTrackHandle] = None,
    bitrate: Optional[int] = None,
) -> FFmpegEncoderSession:
    """Create and open an FFmpeg session."""
    session = FFmpegEncoderSession(
        surface=surface,
        profile=profile,
        fps=fps,
        bitrate=bitrate,
        audio=audio,
    )
    return await session.open()
