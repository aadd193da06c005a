"""
Text Segmenter for the Read-Aloud Pipeline.

This module splits accepted transcript text into speakable fragments,
applies the configured delivery style, and humanizes long passages with a
periodic filler cue.

Architecture:
    accepted text → TextSegmenter.segment() → WorkQueue

Fragments are paragraphs: the text is split on line breaks, trimmed, and
empty lines are dropped. Style markers are stage directions understood by
the synthesis model; they are placed after a leading speaker label so the
label still selects the voice.

Usage:
    segmenter = TextSegmenter()

    for segment in segmenter.segment(script, VoiceStyle.BREATHY):
        queue.append(segment)
"""

import re
from typing import Dict, Iterator, Optional, Tuple

from speechbridge.schemas.speech_settings import VoiceStyle

from .models import Segment

# Leading "Male 1:" / "Female 2:" label written by script preparation
SPEAKER_LABEL_PATTERN = re.compile(r"^((?:Male|Female) \d:)\s*", re.IGNORECASE)

FILLER_TEXT = "[clears throat]"


class TextSegmenter:
    """
    Stateful segmenter producing ordered, annotated segments.

    The filler counter and the sequence counter live on the instance and are
    not reset between calls, so fillers land after every third fragment
    across the lifetime of the pipeline.

    Attributes:
        filler_every: Number of content fragments between filler cues
        filler_text: The filler fragment inserted
    """

    # (prefix, suffix) markers per style
    STYLE_MARKERS: Dict[VoiceStyle, Tuple[str, str]] = {
        VoiceStyle.NATURAL: ("", ""),
        VoiceStyle.BREATHY: ("[soft inhale]", "[pause]"),
        VoiceStyle.DRAMATIC: ("[slowly]", "[long pause]"),
    }

    _LINE_BREAKS = re.compile(r"\r?\n+")

    def __init__(self, filler_every: int = 3, filler_text: str = FILLER_TEXT):
        self.filler_every = filler_every
        self.filler_text = filler_text
        self._fragment_count = 0
        self._sequence = 0

    def segment(
        self,
        text: str,
        style: VoiceStyle = VoiceStyle.NATURAL,
    ) -> Iterator[Segment]:
        """
        Yield segments for one accepted text, in source order.

        Args:
            text: Accepted source text (possibly multi-line)
            style: Delivery style used to annotate each fragment

        Yields:
            Content segments, with a filler segment after every
            ``filler_every``-th content fragment
        """
        if not text:
            return

        for line in self._LINE_BREAKS.split(text):
            fragment = line.strip()
            if not fragment:
                continue

            yield self._next_segment(fragment, self.annotate(fragment, style))
            self._fragment_count += 1

            if self.filler_every > 0 and self._fragment_count % self.filler_every == 0:
                yield self._next_segment(self.filler_text, self.filler_text, is_filler=True)

    def annotate(self, fragment: str, style: VoiceStyle) -> str:
        """Wrap a fragment with the style's lead-in and pause markers."""
        prefix, suffix = self.STYLE_MARKERS.get(style, ("", ""))
        if not prefix and not suffix:
            return fragment

        label: Optional[str] = None
        body = fragment
        match = SPEAKER_LABEL_PATTERN.match(fragment)
        if match:
            label = match.group(1)
            body = fragment[match.end():]

        parts = [p for p in (label, prefix, body, suffix) if p]
        return " ".join(parts)

    def _next_segment(self, raw: str, annotated: str, is_filler: bool = False) -> Segment:
        segment = Segment(
            raw_text=raw,
            annotated_text=annotated,
            sequence=self._sequence,
            is_filler=is_filler,
        )
        self._sequence += 1
        return segment

    def reset(self) -> None:
        """Reset counters for reuse."""
        self._fragment_count = 0
        self._sequence = 0

    @property
    def fragment_count(self) -> int:
        """Content fragments emitted across all calls."""
        return self._fragment_count

    @property
    def total_segments(self) -> int:
        """Segments emitted across all calls, fillers included."""
        return self._sequence


def strip_speaker_label(text: str) -> str:
    """Remove a leading speaker label such as ``Male 1:``."""
    return SPEAKER_LABEL_PATTERN.sub("", text, count=1)
