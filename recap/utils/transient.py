"""Short-lived local handles to finished recap buffers."""

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


class TransientReference:
    """A temporary file holding a buffer for local playback or download.

    The caller owns it and must call ``release()`` (or use it as a context
    manager). Releasing twice is harmless.
    """

    def __init__(self, path: Path):
        self.path = path
        self._released = False

    @classmethod
    def create(cls, buffer: bytes, suffix: str = '.webm') -> "TransientReference":
        fd, name = tempfile.mkstemp(prefix='recap-', suffix=suffix)
        with os.fdopen(fd, 'wb') as f:
            f.write(buffer)
        return cls(Path(name))

    @property
    def url(self) -> str:
        return self.path.as_uri()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self.path.unlink(missing_ok=True)
        logger.debug(f'Released transient reference {self.path}')

    def __enter__(self) -> "TransientReference":
        return self

    def __exit__(self, *exc) -> None:
        self.release()
