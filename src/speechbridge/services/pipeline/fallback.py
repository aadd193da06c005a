"""
Fallback Path for failed primary synthesis.

The segment's raw text, stripped of its speaker label, is sent once through
a simpler single-voice channel. Failures surface as ``FallbackError`` and
are not retried at this layer.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol, Union

from .errors import FallbackError
from .models import Segment
from .synthesis import AudioPayload, SpeechSynthesizer
from .text_segmenter import strip_speaker_label

logger = logging.getLogger(__name__)


class FallbackChannel(Protocol):
    """
    A lower-fidelity synthesis channel.

    Returns the audio to append, or None when the channel plays the audio
    itself.
    """

    async def send_text(self, text: str) -> Optional[AudioPayload]:
        ...


class SingleVoiceChannel:
    """One prebuilt voice, no speaker table."""

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        voice: Union[str, Callable[[], str]] = "Charon",
    ):
        self.synthesizer = synthesizer
        self._voice = voice

    @property
    def voice(self) -> str:
        return self._voice() if callable(self._voice) else self._voice

    async def send_text(self, text: str) -> Optional[AudioPayload]:
        return await self.synthesizer.synthesize(text, {"Narrator": self.voice})


class FallbackPath:
    """Submits a simplified request when the primary path fails."""

    def __init__(self, channel: FallbackChannel):
        self.channel = channel

    async def submit(self, segment: Segment) -> Optional[AudioPayload]:
        """
        Send the segment's raw text through the fallback channel.

        Raises:
            FallbackError: If the channel fails or there is nothing to say
        """
        text = strip_speaker_label(segment.raw_text).strip()
        if not text:
            raise FallbackError(f"Segment {segment.sequence} has no speakable raw text")

        try:
            payload = await self.channel.send_text(text)
        except Exception as e:
            raise FallbackError(f"Fallback failed for segment {segment.sequence}: {e}") from e

        logger.info(f"Fallback submitted segment {segment.sequence}: {text[:50]}...")
        return payload


__all__ = ["FallbackChannel", "FallbackPath", "SingleVoiceChannel"]
