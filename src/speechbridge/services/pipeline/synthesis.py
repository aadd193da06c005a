"""
Synthesis Client Adapter.

Wraps a single call to the speech provider: annotated text plus an optional
speaker-to-voice table in, decoded PCM audio out, or a ``SynthesisError``.
The adapter never retries; the scheduler hands failures to the fallback
path instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Protocol

import httpx

from speechbridge.schemas.speech_settings import MAX_SPEAKERS
from speechbridge.services.gemini_client import GeminiClient, extract_inline_audio

from .errors import SynthesisError

logger = logging.getLogger(__name__)

_TRANSIENT_STATUS = {408, 429, 500, 502, 503, 504}


@dataclass(frozen=True)
class AudioPayload:
    """Decoded PCM16 mono audio returned by a provider."""

    data: bytes
    sample_rate: int

    @property
    def duration(self) -> float:
        if not self.sample_rate:
            return 0.0
        return len(self.data) / float(self.sample_rate * 2)


class SpeechSynthesizer(Protocol):
    async def synthesize(
        self,
        text: str,
        voices: Optional[Mapping[str, str]] = None,
    ) -> AudioPayload:
        ...


def build_speech_config(voices: Optional[Mapping[str, str]]) -> Dict[str, Any]:
    """Translate a speaker voice table into a Gemini ``speechConfig``."""
    if not voices:
        return {}
    if len(voices) > MAX_SPEAKERS:
        raise ValueError(f"At most {MAX_SPEAKERS} speakers are supported")
    if len(voices) == 1:
        voice_name = next(iter(voices.values()))
        return {"voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice_name}}}
    return {
        "multiSpeakerVoiceConfig": {
            "speakerVoiceConfigs": [
                {
                    "speaker": speaker,
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice}},
                }
                for speaker, voice in voices.items()
            ]
        }
    }


def build_speech_request(text: str, voices: Optional[Mapping[str, str]]) -> Dict[str, Any]:
    generation_config: Dict[str, Any] = {"responseModalities": ["AUDIO"]}
    speech_config = build_speech_config(voices)
    if speech_config:
        generation_config["speechConfig"] = speech_config
    return {
        "contents": [{"parts": [{"text": text}]}],
        "generationConfig": generation_config,
    }


class GeminiSpeechSynthesizer:
    """
    Primary multi-speaker synthesis through the Gemini TTS model.

    Attributes:
        client: Gemini REST client (owns the HTTP timeout)
        model: TTS model name
        default_sample_rate: Used when the response omits the rate
    """

    def __init__(self, client: GeminiClient, model: str, default_sample_rate: int = 24000):
        self.client = client
        self.model = model
        self.default_sample_rate = default_sample_rate

    async def synthesize(
        self,
        text: str,
        voices: Optional[Mapping[str, str]] = None,
    ) -> AudioPayload:
        """
        Synthesize text into PCM audio.

        Args:
            text: Annotated segment text (may carry a speaker label)
            voices: Speaker label to prebuilt voice name, up to 4 entries

        Returns:
            Decoded audio payload

        Raises:
            SynthesisError: On provider, quota, transport or format errors
        """
        try:
            body = build_speech_request(text, voices)
            response = await self.client.generate_content(self.model, body)
            audio, sample_rate = extract_inline_audio(response)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code if e.response is not None else None
            raise SynthesisError(
                f"Provider returned HTTP {status}",
                status_code=status,
                retryable=status in _TRANSIENT_STATUS,
            ) from e
        except httpx.HTTPError as e:
            raise SynthesisError(f"Provider request failed: {e}", retryable=True) from e
        except ValueError as e:
            raise SynthesisError(f"Malformed provider response: {e}") from e
        except Exception as e:
            raise SynthesisError(f"Unexpected provider failure: {e!r}") from e

        if not audio:
            raise SynthesisError("Provider returned empty audio")

        payload = AudioPayload(data=audio, sample_rate=sample_rate or self.default_sample_rate)
        logger.info(
            f"Synthesized {payload.duration:.2f}s of audio for text: {text[:50]}..."
        )
        return payload


__all__ = [
    "AudioPayload",
    "GeminiSpeechSynthesizer",
    "SpeechSynthesizer",
    "build_speech_config",
    "build_speech_request",
]
