"""
Read-Aloud Pipeline Package.

This package contains the modules that turn transcript updates into paced
speech:

- deduplicator: Identity gate shared by the push and poll channels
- script_writer: Translation + speaker labelling of accepted text
- text_segmenter: Splits text into styled, speakable segments
- work_queue: FIFO between the segmenter and the scheduler
- synthesis / fallback: Primary multi-speaker and single-voice providers
- scheduler: Playback-aware pacing loop
- controller: Lifecycle wiring and start/stop triggers

Architecture Overview:

    ┌────────────┐   ┌──────────────┐   ┌─────────────┐   ┌──────────────┐
    │ push / poll│──▶│ Deduplicator │──▶│ ScriptWriter│──▶│ TextSegmenter│
    └────────────┘   └──────────────┘   └─────────────┘   └──────────────┘
                                                                 │
                                                                 ▼
    ┌──────────────┐   ┌────────────────┐   ┌───────────┐  ┌───────────┐
    │PlaybackBuffer│◀──│ Synthesizer /  │◀──│ Scheduler │◀─│ WorkQueue │
    └──────────────┘   │ FallbackPath   │   └───────────┘  └───────────┘
           │           └────────────────┘         ▲
           └──────────── get_state() ─────────────┘

The next synthesis request is issued once buffered playback drops below the
low-water mark, so provider latency hides behind the tail of the current
segment.
"""

from .controller import PipelineController, build_pipeline
from .deduplicator import ChangeDeduplicator
from .errors import FallbackError, PipelineError, SynthesisError, TranscriptSourceError
from .fallback import FallbackPath, SingleVoiceChannel
from .models import (
    ConnectionStatus,
    EventType,
    PipelineEvent,
    PipelineRunState,
    PlaybackBufferState,
    SchedulerState,
    Segment,
    SourceUpdate,
)
from .playback import AudioPlaybackBuffer, PcmPlaybackBuffer
from .scheduler import PacingConfig, PacingScheduler
from .script_writer import ScriptWriter
from .synthesis import AudioPayload, GeminiSpeechSynthesizer
from .text_segmenter import TextSegmenter
from .work_queue import WorkQueue

__all__ = [
    "AudioPayload",
    "AudioPlaybackBuffer",
    "ChangeDeduplicator",
    "ConnectionStatus",
    "EventType",
    "FallbackError",
    "FallbackPath",
    "GeminiSpeechSynthesizer",
    "PacingConfig",
    "PacingScheduler",
    "PcmPlaybackBuffer",
    "PipelineController",
    "PipelineError",
    "PipelineEvent",
    "PipelineRunState",
    "PlaybackBufferState",
    "SchedulerState",
    "ScriptWriter",
    "Segment",
    "SingleVoiceChannel",
    "SourceUpdate",
    "SynthesisError",
    "TextSegmenter",
    "TranscriptSourceError",
    "WorkQueue",
    "build_pipeline",
]
