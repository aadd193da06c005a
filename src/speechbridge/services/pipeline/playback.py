"""
Audio playback buffer interface and an in-process PCM implementation.

The scheduler only ever reads the buffer's state and never clears or
reorders it. ``PcmPlaybackBuffer`` models a streaming audio scheduler:
every appended chunk is scheduled to start at the later of "now" and the
end of what is already queued, so ``end_of_queue_time`` only moves forward
and ``remaining_duration`` drains in real time.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Protocol, runtime_checkable

from .models import PlaybackBufferState

logger = logging.getLogger(__name__)

AudioListener = Callable[[bytes, float], None]


@runtime_checkable
class AudioPlaybackBuffer(Protocol):
    """Interface the scheduler and synthesis paths depend on."""

    def get_state(self) -> PlaybackBufferState:
        ...

    def append(self, pcm: bytes) -> None:
        ...


class PcmPlaybackBuffer:
    """
    Thread-safe playback timeline for 16-bit mono PCM audio.

    Attributes:
        sample_rate: Samples per second of appended audio
        sample_width: Bytes per sample (2 for PCM16)
    """

    def __init__(
        self,
        sample_rate: int = 24000,
        sample_width: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.sample_rate = sample_rate
        self.sample_width = sample_width
        self._clock = clock
        self._lock = threading.RLock()
        self._end_of_queue_time = 0.0
        self._total_seconds = 0.0
        self._listeners: List[AudioListener] = []

    def add_listener(self, listener: AudioListener) -> None:
        """Register a callback receiving ``(pcm, start_time)`` for each append."""
        self._listeners.append(listener)

    def remove_listener(self, listener: AudioListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def duration_of(self, pcm: bytes) -> float:
        return len(pcm) / float(self.sample_rate * self.sample_width)

    def append(self, pcm: bytes) -> None:
        """Schedule decoded audio after everything already queued."""
        if len(pcm) % self.sample_width != 0:
            logger.warning("Dropping trailing byte(s) to keep PCM sample alignment")
            pcm = pcm[: len(pcm) - (len(pcm) % self.sample_width)]
        if not pcm:
            return

        duration = self.duration_of(pcm)
        with self._lock:
            start = max(self._clock(), self._end_of_queue_time)
            self._end_of_queue_time = start + duration
            self._total_seconds += duration

        logger.debug(f"Queued {duration:.2f}s of audio starting at {start:.2f}")
        for listener in list(self._listeners):
            try:
                listener(pcm, start)
            except Exception as e:
                logger.error(f"Audio listener failed: {e}", exc_info=True)

    def get_state(self) -> PlaybackBufferState:
        with self._lock:
            end = self._end_of_queue_time
            remaining = max(0.0, end - self._clock())
        return PlaybackBufferState(end_of_queue_time=end, remaining_duration=remaining)

    @property
    def total_seconds(self) -> float:
        """Total audio appended since creation."""
        return self._total_seconds


__all__ = ["AudioListener", "AudioPlaybackBuffer", "PcmPlaybackBuffer"]
