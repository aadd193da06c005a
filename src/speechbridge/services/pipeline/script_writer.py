"""Translate and diarize accepted text into a speaker-labelled script."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from speechbridge.schemas.speech_settings import SPEAKER_LABELS
from speechbridge.services.gemini_client import GeminiClient, extract_text

logger = logging.getLogger(__name__)

DEFAULT_SPEAKER = SPEAKER_LABELS[0]

_PROMPT_TEMPLATE = """You are a strict translator and script formatter.
TASK:
1. Translate the following text into [{language}].
2. Identify distinct speakers.
3. Assign a label {labels} to them based on context or names in the source.
4. If only one speaker is detected, use '{default}' as default.
5. Rewrite the text strictly in the format: "Speaker Label: Translated Text", one line per utterance.
6. Do NOT add any markdown, intro, or outro.
7. Maintain stage directions in parentheses if present, translated.

Source Text: "{text}"
"""


def build_prompt(text: str, language: str) -> str:
    labels = ", ".join(f"'{label}'" for label in SPEAKER_LABELS)
    return _PROMPT_TEMPLATE.format(
        language=language,
        labels=labels,
        default=DEFAULT_SPEAKER,
        text=text,
    )


class ScriptWriter:
    """Turns raw transcript text into ``Speaker: text`` lines."""

    def __init__(self, client: Optional[GeminiClient], model: str):
        self.client = client
        self.model = model

    async def prepare(self, text: str, language: str, translate: bool = True) -> str:
        """
        Translate and label text for multi-speaker synthesis.

        Any failure degrades to the untranslated text read by the default
        speaker, so script preparation never blocks the pipeline.
        """
        if not translate:
            return text
        if self.client is None or not self.client.configured:
            return f"{DEFAULT_SPEAKER}: {text}"

        body = {"contents": [{"parts": [{"text": build_prompt(text, language or "English")}]}]}
        try:
            response = await self.client.generate_content(self.model, body)
            script = extract_text(response).strip()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Diarization/Translation failed: {e}")
            return f"{DEFAULT_SPEAKER}: {text}"

        if not script:
            logger.warning("Diarization returned no text, reading source as-is")
            return f"{DEFAULT_SPEAKER}: {text}"
        return script


__all__ = ["DEFAULT_SPEAKER", "ScriptWriter", "build_prompt"]
