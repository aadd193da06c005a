"""Tests for the text segmenter."""

import pytest

from speechbridge.schemas.speech_settings import VoiceStyle
from speechbridge.services.pipeline.text_segmenter import (
    FILLER_TEXT,
    TextSegmenter,
    strip_speaker_label,
)


def test_splits_on_line_breaks_and_drops_blank_lines():
    segmenter = TextSegmenter(filler_every=0)

    segments = list(segmenter.segment("first\n\n  second  \r\nthird\n"))

    assert [s.raw_text for s in segments] == ["first", "second", "third"]
    assert [s.sequence for s in segments] == [0, 1, 2]


def test_empty_text_yields_nothing():
    segmenter = TextSegmenter()

    assert list(segmenter.segment("")) == []
    assert list(segmenter.segment("\n \n")) == []


def test_filler_after_every_third_fragment():
    segmenter = TextSegmenter()

    segments = list(segmenter.segment("\n".join(f"line {i}" for i in range(7))))

    assert len(segments) == 7 + 2
    fillers = [i for i, s in enumerate(segments) if s.is_filler]
    assert fillers == [3, 7]
    assert segments[3].raw_text == FILLER_TEXT
    assert segments[3].annotated_text == FILLER_TEXT


def test_filler_counter_spans_calls():
    segmenter = TextSegmenter()

    first = list(segmenter.segment("a\nb"))
    second = list(segmenter.segment("c\nd"))

    assert not any(s.is_filler for s in first)
    assert [s.raw_text for s in second] == ["c", FILLER_TEXT, "d"]
    assert [s.sequence for s in first + second] == [0, 1, 2, 3, 4]
    assert segmenter.fragment_count == 4
    assert segmenter.total_segments == 5


@pytest.mark.parametrize(
    "style, expected",
    [
        (VoiceStyle.NATURAL, "Hello there"),
        (VoiceStyle.BREATHY, "[soft inhale] Hello there [pause]"),
        (VoiceStyle.DRAMATIC, "[slowly] Hello there [long pause]"),
    ],
)
def test_style_markers(style, expected):
    segmenter = TextSegmenter(filler_every=0)

    (segment,) = segmenter.segment("Hello there", style)

    assert segment.raw_text == "Hello there"
    assert segment.annotated_text == expected


def test_markers_follow_speaker_label():
    segmenter = TextSegmenter(filler_every=0)

    (segment,) = segmenter.segment("Female 1: Kumusta ka?", VoiceStyle.BREATHY)

    assert segment.annotated_text == "Female 1: [soft inhale] Kumusta ka? [pause]"
    assert segment.raw_text == "Female 1: Kumusta ka?"


def test_reset_restarts_counters():
    segmenter = TextSegmenter()
    list(segmenter.segment("a\nb\nc"))
    segmenter.reset()

    (segment,) = segmenter.segment("d")

    assert segment.sequence == 0
    assert segmenter.fragment_count == 1


def test_strip_speaker_label():
    assert strip_speaker_label("Male 2: Good evening") == "Good evening"
    assert strip_speaker_label("No label here") == "No label here"
    assert strip_speaker_label("Narrator: hi") == "Narrator: hi"
