"""
Background music for recap videos.

Music is optional: ``try_load`` never raises. Any download or decode
failure is logged and the recap proceeds silently. A loaded track is
looped by the encoder to fill the whole timeline.
"""

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import httpx

from recap.config import settings
from recap.utils.ffmpeg import FFmpegRuntime

logger = logging.getLogger(__name__)


@dataclass
class AudioTrackHandle:
    """A decodable background track, owned by one pipeline run."""

    path: Path
    duration_s: float
    loop: bool = True
    owns_file: bool = False
    released: bool = field(default=False, init=False)

    def release(self) -> None:
        """Release the track. Safe to call more than once."""
        if self.released:
            return
        self.released = True
        if self.owns_file:
            try:
                os.unlink(self.path)
            except FileNotFoundError:
                pass
        logger.debug(f'Released audio track {self.path}')


class AudioMixer:
    """Loads background music and routes it into the encoder's audio input."""

    def __init__(
        self,
        runtime: Optional[FFmpegRuntime] = None,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self._runtime = runtime or FFmpegRuntime()
        self._http = http
        self._timeout = timeout

    async def try_load(self, url: Optional[str]) -> Optional[AudioTrackHandle]:
        """Load a track, or return None if it is unavailable."""
        if not url:
            return None

        downloaded: Optional[Path] = None
        try:
            if url.startswith(('http://', 'https://')):
                downloaded = await self._download(url)
                path = downloaded
            else:
                path = Path(url)
                if not path.exists():
                    raise FileNotFoundError(f'Music file not found: {url}')

            # ffprobe blocks; keep it off the event loop
            duration = await asyncio.to_thread(self._runtime.probe_duration, str(path))
            if duration <= 0:
                raise ValueError(f'Music has no duration: {url}')
        except Exception as e:
            logger.warning(f'Failed to load background music, continuing without audio: {e}')
            if downloaded is not None:
                downloaded.unlink(missing_ok=True)
            return None
        except asyncio.CancelledError:
            if downloaded is not None:
                downloaded.unlink(missing_ok=True)
            raise

        logger.info(f'Background music loaded ({duration:.1f}s, looping)')
        return AudioTrackHandle(path=path, duration_s=duration, owns_file=downloaded is not None)

    async def _download(self, url: str) -> Path:
        suffix = Path(url.split('?')[0]).suffix or '.mp3'
        fd, name = tempfile.mkstemp(prefix='recap-music-', suffix=suffix)
        os.close(fd)
        dest = Path(name)
        try:
            if self._http is not None:
                resp = await self._http.get(url)
            else:
                async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as http:
                    resp = await http.get(url)
            resp.raise_for_status()
            dest.write_bytes(resp.content)
        except BaseException:
            # Includes cancellation by the pipeline deadline
            dest.unlink(missing_ok=True)
            raise
        return dest

    @staticmethod
    def input_args(track: AudioTrackHandle) -> list[str]:
        """FFmpeg input arguments for the track (looped when requested)."""
        args = []
        if track.loop:
            args.extend(['-stream_loop', '-1'])
        args.extend(['-i', str(track.path)])
        return args

    @staticmethod
    def output_args(input_index: int, codec: Optional[str]) -> list[str]:
        """Map the track into the output.

        The looped track is endless, so ``-shortest`` lets the video stream
        decide where the output ends: when the encoder's stdin is closed.
        """
        args = ['-map', f'{input_index}:a:0']
        if codec:
            args.extend(['-c:a', codec])
        args.extend(['-b:a', settings.recap_audio_bitrate, '-shortest'])
        return args
