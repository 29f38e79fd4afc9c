"""
Pytest fixtures for recap tests.

The pipeline is exercised against in-memory fakes for the FFmpeg runtime,
the encoder session, the image loader and the audio mixer, so most tests
need neither network access nor an FFmpeg binary.

Tests that drive a real FFmpeg process are marked with @requires_ffmpeg
and skipped when ffmpeg is not on PATH.
"""

import asyncio
import shutil
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

import pytest
from PIL import Image

from recap.exceptions import ImageLoadError
from recap.render.audio_mixer import AudioTrackHandle
from recap.utils.image_utils import DecodedImage

requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None,
    reason="ffmpeg not installed"
)


# =============================================================================
# Fakes
# =============================================================================


class FakeRuntime:
    """Stand-in for FFmpegRuntime with configurable capabilities."""

    def __init__(
        self,
        supported: bool = True,
        containers: tuple = ("webm",),
        encoders: tuple = ("libvpx-vp9", "libvpx", "libopus", "libvorbis"),
    ):
        self.supported = supported
        self.containers = set(containers)
        self.encoders = set(encoders)
        self.probe_calls = 0
        self.threads: set[int] = set()

    def is_supported(self) -> bool:
        self.threads.add(threading.get_ident())
        return self.supported

    def supports_container(self, container: str) -> bool:
        return container in self.containers

    def supports_encoder(self, encoder: str) -> bool:
        return encoder in self.encoders

    def probe_duration(self, file_path: str) -> float:
        self.threads.add(threading.get_ident())
        self.probe_calls += 1
        return 12.0


class FakeEncoderSession:
    """Records start/stop calls; emits ``output`` chunks when stopped."""

    def __init__(
        self,
        output=(b"\x1aE\xdf\xa3", b"cluster"),
        stop_error: Optional[str] = None,
        on_stop: Optional[Callable[[], None]] = None,
    ):
        self.output = list(output)
        self.stop_error = stop_error
        self.on_stop = on_stop
        self.chunks: list[bytes] = []
        self.bytes_total = 0
        self.start_calls = 0
        self.stop_calls: list[bool] = []

    async def start(self) -> None:
        self.start_calls += 1

    async def stop(self, force: bool = False) -> bytes:
        self.stop_calls.append(force)
        if self.on_stop is not None:
            self.on_stop()
        if len(self.stop_calls) == 1 and not force:
            self.chunks.extend(self.output)
            self.bytes_total = sum(len(c) for c in self.chunks)
        if self.stop_error:
            raise RuntimeError(self.stop_error)
        return self.chunks[-1] if self.chunks else b""


class SessionFactory:
    """Session factory that hands out one prepared FakeEncoderSession."""

    def __init__(self, session: Optional[FakeEncoderSession] = None, error: Optional[Exception] = None):
        self.session = session or FakeEncoderSession()
        self.error = error
        self.calls = []

    async def __call__(self, surface, profile, config, audio):
        self.calls.append((surface, profile, config, audio))
        if self.error is not None:
            raise self.error
        return self.session


class FakeImageLoader:
    """Returns small solid images; fails at ``fail_at`` (zero-based).

    ``delay`` adds network-like latency to every load.
    """

    def __init__(
        self,
        fail_at: Optional[int] = None,
        size=(64, 48),
        gate_at: Optional[int] = None,
        delay: float = 0.0,
    ):
        self.fail_at = fail_at
        self.delay = delay
        self.size = size
        self.gate_at = gate_at
        self.gate_reached = asyncio.Event()
        self.gate = asyncio.Event()
        self.requested: list[int] = []

    async def load(self, ref: str, index: int) -> DecodedImage:
        self.requested.append(index)
        if self.delay:
            await asyncio.sleep(self.delay)
        if index == self.gate_at:
            self.gate_reached.set()
            await self.gate.wait()
        if index == self.fail_at:
            raise ImageLoadError(index + 1)
        raster = Image.new("RGB", self.size, (200, 100, 50))
        return DecodedImage(width=self.size[0], height=self.size[1], raster=raster)


@dataclass
class CountingTrack(AudioTrackHandle):
    release_calls: int = field(default=0, init=False)

    def release(self) -> None:
        self.release_calls += 1
        super().release()


class FakeAudioMixer:
    """Returns a CountingTrack, or None when ``available`` is False.

    ``delay`` simulates a slow music download.
    """

    def __init__(self, available: bool = True, delay: float = 0.0):
        self.available = available
        self.delay = delay
        self.track: Optional[CountingTrack] = None
        self.urls: list = []

    async def try_load(self, url):
        self.urls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.available or not url:
            return None
        self.track = CountingTrack(path=Path("/nonexistent/music.mp3"), duration_s=12.0)
        return self.track


async def instant_sleep(_seconds: float) -> None:
    # Still yield so cancellation and timeouts can land between frames
    await asyncio.sleep(0)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture
def session_factory() -> SessionFactory:
    return SessionFactory()


@pytest.fixture
def audio_mixer() -> FakeAudioMixer:
    return FakeAudioMixer()


@pytest.fixture
def image_file(tmp_path) -> Path:
    """A 400x300 JPEG on disk."""
    path = tmp_path / "photo.jpg"
    Image.new("RGB", (400, 300), (10, 120, 240)).save(path, "JPEG")
    return path


@pytest.fixture
def tone_file(tmp_path) -> Path:
    """A 1 second sine wave WAV, rendered with ffmpeg."""
    path = tmp_path / "tone.wav"
    subprocess.run(
        ["ffmpeg", "-y", "-hide_banner", "-loglevel", "error",
         "-f", "lavfi", "-i", "sine=frequency=440:duration=1:sample_rate=48000", str(path)],
        check=True,
        capture_output=True,
    )
    return path
