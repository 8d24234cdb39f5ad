"""
Audio sink interface.

The playback machine drives a sink but never decodes audio itself. A sink
reports the natural end of a song by calling the `on_end` callback it was
given in `start()`; it must not call it after `stop()` or another `start()`.
"""

import threading
import time
from pathlib import Path
from typing import Callable, Optional, Protocol

from loguru import logger


class SinkError(Exception):
    """Raised when the sink cannot start or control playback."""

    pass


class AudioSink(Protocol):
    def start(
        self,
        path: Path,
        start: float,
        end: Optional[float],
        on_end: Callable[[], None],
    ) -> None: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def stop(self) -> None: ...

    def seek(self, seconds: float) -> None: ...

    def elapsed(self) -> float: ...

    def set_volume(self, volume: int) -> None: ...

    def close(self) -> None: ...


class NullSink:
    """Sink that only keeps time; used when no audio output is wanted.

    `finish()` simulates the song reaching its end.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.path: Optional[Path] = None
        self.volume = 50
        self._on_end: Optional[Callable[[], None]] = None
        self._offset = 0.0
        self._resumed_at: Optional[float] = None

    def start(self, path, start, end, on_end) -> None:
        with self._lock:
            self.path = Path(path)
            self._on_end = on_end
            self._offset = start
            self._resumed_at = time.monotonic()
        logger.debug(f"Null sink playing {path} from {start:.3f}s")

    def pause(self) -> None:
        with self._lock:
            if self._resumed_at is not None:
                self._offset += time.monotonic() - self._resumed_at
                self._resumed_at = None

    def resume(self) -> None:
        with self._lock:
            if self._resumed_at is None and self.path is not None:
                self._resumed_at = time.monotonic()

    def stop(self) -> None:
        with self._lock:
            self.path = None
            self._on_end = None
            self._offset = 0.0
            self._resumed_at = None

    def seek(self, seconds: float) -> None:
        with self._lock:
            self._offset = seconds
            if self._resumed_at is not None:
                self._resumed_at = time.monotonic()

    def elapsed(self) -> float:
        with self._lock:
            if self._resumed_at is None:
                return self._offset
            return self._offset + time.monotonic() - self._resumed_at

    def set_volume(self, volume: int) -> None:
        self.volume = volume

    def close(self) -> None:
        self.stop()

    def finish(self) -> None:
        """Report the end of the current song, as a real output would."""
        with self._lock:
            on_end = self._on_end
            self._on_end = None
        if on_end is not None:
            on_end()
