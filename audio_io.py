"""Microphone capture for recording mantras and listening for recitations."""

from __future__ import annotations

import logging
import queue
import time
from typing import Iterator, Optional

import numpy as np

from mantra_dsp import DEFAULT_FRAME_SIZE

try:
    import sounddevice as sd
except (ImportError, OSError):
    # OSError: the package is installed but PortAudio is missing.
    sd = None

logger = logging.getLogger(__name__)

# Pause between arming the listener and opening the microphone.
DEFAULT_START_DELAY_SECONDS = 0.5


class AudioIOError(RuntimeError):
    """Raised when audio I/O cannot be performed."""


def is_available() -> bool:
    """Return True when sounddevice backend is available."""
    return sd is not None


def _require_backend() -> None:
    if not is_available():
        raise AudioIOError("sounddevice is not installed")


def record_audio(fs: int, duration_seconds: float) -> np.ndarray:
    """Record a mono mantra and return it as a 1-D float32 array."""
    _require_backend()
    if duration_seconds <= 0:
        raise ValueError("Recording duration must be positive")
    recording = sd.rec(int(round(duration_seconds * fs)), samplerate=fs, channels=1, dtype="float32")
    sd.wait()
    return recording[:, 0].copy()


class MicrophoneFrameStream:
    """Live microphone input cut into consecutive, non-overlapping frames.

    The device may deliver blocks of any length. Samples are buffered until
    ``frame_size`` of them are available, so every frame yielded by
    :meth:`frames` can be passed straight to
    :meth:`mantra_listener.MantraListener.process_frame`. Opening the
    microphone waits ``start_delay`` seconds first so the key press that
    started listening is not captured.
    """

    def __init__(
        self,
        fs: int,
        frame_size: int = DEFAULT_FRAME_SIZE,
        start_delay: float = DEFAULT_START_DELAY_SECONDS,
    ):
        _require_backend()
        if frame_size < 2:
            raise ValueError("frame_size must be at least 2 samples")
        self.fs = fs
        self.frame_size = frame_size
        self.start_delay = start_delay
        self._blocks: queue.Queue[np.ndarray] = queue.Queue()
        self._pending = np.empty(0, dtype=np.float32)
        self._stream = None

    def _on_audio(self, indata, frames, time_info, status):
        if status:
            logger.warning("Input stream status: %s", status)
        self._blocks.put(indata[:, 0].copy())

    def start(self) -> None:
        """Wait for the start delay, then open the microphone."""
        if self._stream is not None:
            return
        if self.start_delay > 0:
            time.sleep(self.start_delay)
        self._stream = sd.InputStream(
            samplerate=self.fs,
            channels=1,
            dtype="float32",
            blocksize=self.frame_size,
            callback=self._on_audio,
        )
        self._stream.start()
        logger.debug("Input stream started: fs=%d frame_size=%d", self.fs, self.frame_size)

    def stop(self) -> None:
        """Close the microphone and drop any partial frame."""
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None
        self.clear()

    def clear(self) -> None:
        """Discard queued blocks and buffered samples."""
        while True:
            try:
                self._blocks.get_nowait()
            except queue.Empty:
                break
        self._pending = np.empty(0, dtype=np.float32)

    def frames(self, timeout: Optional[float] = None) -> Iterator[np.ndarray]:
        """Yield every full frame that can be assembled from captured audio.

        With a timeout, waits up to that many seconds for the first block
        when nothing is queued; leftover samples stay buffered for the next
        call.
        """
        wait = timeout
        while True:
            while self._pending.size >= self.frame_size:
                frame = self._pending[: self.frame_size]
                self._pending = self._pending[self.frame_size :]
                yield frame
            try:
                if wait is None:
                    block = self._blocks.get_nowait()
                else:
                    block = self._blocks.get(timeout=wait)
            except queue.Empty:
                return
            wait = None
            self._pending = np.concatenate([self._pending, block])

    def __enter__(self) -> "MicrophoneFrameStream":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
