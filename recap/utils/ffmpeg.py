"""FFmpeg runtime detection and probing."""

import json
import logging
import shutil
import subprocess
from typing import Optional

from recap.config import settings

logger = logging.getLogger(__name__)


def _parse_capability_table(output: str) -> set[str]:
    """Parse the table printed by ``ffmpeg -encoders`` / ``ffmpeg -muxers``.

    Rows look like `` V....D libvpx-vp9   libvpx VP9`` (encoders) or
    ``  E webm            WebM`` (muxers). The header ends with a ``--`` line.
    """
    names: set[str] = set()
    in_table = False
    for line in output.splitlines():
        stripped = line.strip()
        if not in_table:
            if stripped.startswith("--"):
                in_table = True
            continue
        parts = stripped.split()
        if len(parts) < 2:
            continue
        names.update(parts[1].split(","))
    return names


class FFmpegRuntime:
    """Capability probe for the local FFmpeg installation.

    Results are cached per instance; create a new runtime to re-probe.
    """

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        ffprobe_path: Optional[str] = None,
    ):
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path
        self.ffprobe_path = ffprobe_path or settings.ffprobe_path
        self._available: Optional[bool] = None
        self._encoders: Optional[set[str]] = None
        self._muxers: Optional[set[str]] = None

    def is_supported(self) -> bool:
        """Check if FFmpeg is installed and runnable."""
        if self._available is None:
            self._available = self._check_ffmpeg()
        return self._available

    def _check_ffmpeg(self) -> bool:
        if shutil.which(self.ffmpeg_path) is None:
            return False
        try:
            result = subprocess.run(
                [self.ffmpeg_path, "-version"],
                capture_output=True,
                text=True
            )
            return result.returncode == 0
        except (FileNotFoundError, PermissionError):
            return False

    def version(self) -> Optional[str]:
        """First line of ``ffmpeg -version``, or None if unavailable."""
        if not self.is_supported():
            return None
        result = subprocess.run(
            [self.ffmpeg_path, "-version"],
            capture_output=True,
            text=True
        )
        return result.stdout.split("\n")[0] if result.returncode == 0 else None

    def encoders(self) -> set[str]:
        if self._encoders is None:
            self._encoders = self._list("-encoders")
        return self._encoders

    def muxers(self) -> set[str]:
        if self._muxers is None:
            self._muxers = self._list("-muxers")
        return self._muxers

    def _list(self, flag: str) -> set[str]:
        if not self.is_supported():
            return set()
        result = subprocess.run(
            [self.ffmpeg_path, "-hide_banner", flag],
            capture_output=True,
            text=True
        )
        if result.returncode != 0:
            logger.warning(f"ffmpeg {flag} failed: {result.stderr[-300:]}")
            return set()
        return _parse_capability_table(result.stdout)

    def supports_container(self, container: str) -> bool:
        return container in self.muxers()

    def supports_encoder(self, encoder: str) -> bool:
        return encoder in self.encoders()

    def probe_duration(self, file_path: str) -> float:
        """Get media duration in seconds using ffprobe.

        Raises RuntimeError if the file cannot be decoded.
        """
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            file_path
        ]

        result = subprocess.run(cmd, capture_output=True, text=True)
        if result.returncode != 0:
            raise RuntimeError(f"ffprobe failed: {result.stderr[-300:]}")

        data = json.loads(result.stdout)
        audio_stream = next(
            (s for s in data.get("streams", []) if s.get("codec_type") == "audio"),
            None
        )
        if not audio_stream:
            raise RuntimeError("No audio stream found")

        return float(data.get("format", {}).get("duration", 0))
