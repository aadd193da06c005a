"""Tests for the pipeline lifecycle controller."""

from __future__ import annotations

import asyncio
from typing import List, Optional
from unittest.mock import AsyncMock

import pytest

from speechbridge.schemas.speech_settings import SpeechSettings, VoiceStyle
from speechbridge.services.pipeline.controller import PipelineController
from speechbridge.services.pipeline.deduplicator import ChangeDeduplicator
from speechbridge.services.pipeline.models import (
    ConnectionStatus,
    EventType,
    PipelineRunState,
    PlaybackBufferState,
    SchedulerState,
    SourceUpdate,
)
from speechbridge.services.pipeline.scheduler import PacingConfig, PacingScheduler
from speechbridge.services.pipeline.synthesis import AudioPayload
from speechbridge.services.pipeline.text_segmenter import TextSegmenter
from speechbridge.services.pipeline.work_queue import WorkQueue

FAST = PacingConfig(
    arrival_poll_interval=0.005,
    arrival_timeout=1.0,
    pipelining_poll_interval=0.005,
    pipelining_timeout=1.0,
)


class FakePlayback:
    def __init__(self):
        self.end = 0.0
        self.chunks: List[bytes] = []

    def get_state(self) -> PlaybackBufferState:
        return PlaybackBufferState(self.end, 0.0)

    def append(self, pcm: bytes) -> None:
        self.chunks.append(pcm)
        self.end += 1.0


class FakeSynthesizer:
    def __init__(self):
        self.calls: List[str] = []
        self.started = asyncio.Event()
        self.gate: Optional[asyncio.Event] = None

    async def synthesize(self, text, voices=None):
        self.calls.append(text)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        return AudioPayload(b"\x00\x00", 24000)


def _make_controller(
    synthesizer: Optional[FakeSynthesizer] = None,
    script_writer=None,
    drain_queue_on_disconnect: bool = False,
    speech: Optional[SpeechSettings] = None,
):
    queue = WorkQueue()
    run_state = PipelineRunState()
    playback = FakePlayback()
    synthesizer = synthesizer or FakeSynthesizer()
    speech = speech or SpeechSettings(voice_style=VoiceStyle.NATURAL)
    events = []

    async def sink(event):
        events.append(event)

    scheduler = PacingScheduler(
        queue=queue,
        run_state=run_state,
        synthesizer=synthesizer,
        fallback=AsyncMock(),
        playback=playback,
        config=FAST,
        on_event=sink,
    )
    controller = PipelineController(
        queue=queue,
        run_state=run_state,
        deduplicator=ChangeDeduplicator(),
        segmenter=TextSegmenter(filler_every=0),
        scheduler=scheduler,
        playback=playback,
        options=speech.synthesis_options,
        script_writer=script_writer,
        on_event=sink,
        drain_queue_on_disconnect=drain_queue_on_disconnect,
    )
    return controller, synthesizer, playback, events


async def _wait_idle(controller: PipelineController, timeout: float = 2.0) -> None:
    async def _poll():
        while controller._tasks or controller.run_state.is_processing:
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.mark.asyncio
async def test_enqueue_while_disconnected_waits_for_connect():
    controller, synth, playback, _ = _make_controller()

    assert controller.enqueue_text("one\ntwo") == 2
    await asyncio.sleep(0.02)
    assert synth.calls == []
    assert len(controller.queue) == 2

    await controller.connect()
    await _wait_idle(controller)

    assert synth.calls == ["one", "two"]
    assert len(playback.chunks) == 2
    assert len(controller.queue) == 0


@pytest.mark.asyncio
async def test_enqueue_into_empty_queue_starts_scheduler():
    controller, synth, _, _ = _make_controller()
    await controller.connect()

    controller.enqueue_text("hello")
    await _wait_idle(controller)

    assert synth.calls == ["hello"]
    assert controller.scheduler.state is SchedulerState.IDLE


@pytest.mark.asyncio
async def test_enqueue_while_processing_reuses_running_loop():
    synth = FakeSynthesizer()
    synth.gate = asyncio.Event()
    controller, _, _, _ = _make_controller(synthesizer=synth)
    await controller.connect()

    controller.enqueue_text("first")
    await asyncio.wait_for(synth.started.wait(), timeout=1.0)
    controller.enqueue_text("second")

    assert controller.ensure_running() is False
    assert len(controller._tasks) == 1

    synth.gate.set()
    await _wait_idle(controller)
    assert synth.calls == ["first", "second"]


@pytest.mark.asyncio
async def test_disconnect_keeps_queue_and_reconnect_resumes():
    synth = FakeSynthesizer()
    synth.gate = asyncio.Event()
    controller, _, playback, events = _make_controller(synthesizer=synth)
    await controller.connect()
    controller.enqueue_text("a\nb\nc")
    await asyncio.wait_for(synth.started.wait(), timeout=1.0)

    await controller.disconnect()
    assert controller.run_state.is_processing is False
    assert controller.scheduler.state is SchedulerState.STOPPED

    synth.gate.set()
    await _wait_idle(controller)
    # "a" was in flight: popped, its audio discarded
    assert [s.raw_text for s in controller.queue.snapshot()] == ["b", "c"]
    assert playback.chunks == []

    await controller.connect()
    await _wait_idle(controller)

    assert synth.calls == ["a", "b", "c"]
    assert len(playback.chunks) == 2
    details = [e.detail for e in events if e.type is EventType.STATE_CHANGED]
    assert "disconnected" in details and details.count("connected") == 2


@pytest.mark.asyncio
async def test_quick_reconnect_does_not_lose_queued_segments():
    synth = FakeSynthesizer()
    synth.gate = asyncio.Event()
    controller, _, playback, _ = _make_controller(synthesizer=synth)
    await controller.connect()
    controller.enqueue_text("a\nb")
    await asyncio.wait_for(synth.started.wait(), timeout=1.0)

    # Reconnect while the orphaned loop is still inside its call
    await controller.disconnect()
    await controller.connect()
    await asyncio.sleep(0.01)
    synth.gate.set()
    await _wait_idle(controller)

    assert "b" in synth.calls
    assert len(controller.queue) == 0
    assert controller.run_state.is_processing is False


@pytest.mark.asyncio
async def test_drain_queue_on_disconnect_option():
    controller, synth, _, _ = _make_controller(drain_queue_on_disconnect=True)
    controller.enqueue_text("x\ny")
    await controller.connect()
    await controller.disconnect()
    await _wait_idle(controller)

    assert len(controller.queue) == 0

    await controller.connect()
    await _wait_idle(controller)
    assert controller.run_state.is_connected is True


@pytest.mark.asyncio
async def test_set_connection_dispatches():
    controller, _, _, _ = _make_controller()

    await controller.set_connection(ConnectionStatus.CONNECTED)
    assert controller.run_state.is_connected is True

    await controller.set_connection(ConnectionStatus.DISCONNECTED)
    assert controller.run_state.is_connected is False


@pytest.mark.asyncio
async def test_ingest_deduplicates_and_uses_script_writer():
    writer = AsyncMock()
    writer.prepare.return_value = "Male 1: Hello po\nFemale 1: Salamat"
    speech = SpeechSettings(voice_style=VoiceStyle.NATURAL, language="Tagalog")
    controller, synth, _, events = _make_controller(script_writer=writer, speech=speech)
    await controller.connect()

    update = SourceUpdate(id="row-1", text="Hello\nThanks")
    assert await controller.ingest(update) is True
    assert await controller.ingest(update) is False
    await _wait_idle(controller)

    writer.prepare.assert_awaited_once_with("Hello\nThanks", "Tagalog", True)
    assert synth.calls == ["Male 1: Hello po", "Female 1: Salamat"]
    accepted = [e for e in events if e.type is EventType.SOURCE_ACCEPTED]
    assert len(accepted) == 1 and accepted[0].detail == "row-1"
    prepared = [e for e in events if e.type is EventType.SCRIPT_PREPARED]
    assert [(e.text, e.detail) for e in prepared] == [
        ("Male 1: Hello po\nFemale 1: Salamat", "row-1")
    ]


@pytest.mark.asyncio
async def test_enqueue_applies_configured_style():
    speech = SpeechSettings(voice_style=VoiceStyle.DRAMATIC)
    controller, _, _, _ = _make_controller(speech=speech)

    controller.enqueue_text("Male 1: Listen")
    controller.enqueue_text("Quiet", VoiceStyle.NATURAL)

    annotated = [s.annotated_text for s in controller.queue.snapshot()]
    assert annotated == ["Male 1: [slowly] Listen [long pause]", "Quiet"]


@pytest.mark.asyncio
async def test_status_and_shutdown():
    synth = FakeSynthesizer()
    synth.gate = asyncio.Event()
    controller, _, _, _ = _make_controller(synthesizer=synth)
    await controller.connect()
    controller.enqueue_text("long text")
    await asyncio.wait_for(synth.started.wait(), timeout=1.0)

    status = controller.status()
    assert status["connection"] == "connected"
    assert status["is_processing"] is True
    assert status["queue_length"] == 1
    assert status["playback"] == {"end_of_queue_time": 0.0, "remaining_duration": 0.0}

    await controller.shutdown(timeout=0.05)
    await asyncio.sleep(0)

    assert controller._tasks == set()
    assert controller.run_state.is_processing is False


def test_build_pipeline_reads_voices_from_speech_settings(tmp_path):
    from speechbridge.config import Settings
    from speechbridge.schemas.speech_settings import SpeechSettingsUpdate
    from speechbridge.services.gemini_client import GeminiClient
    from speechbridge.services.pipeline.controller import build_pipeline
    from speechbridge.services.pipeline.playback import PcmPlaybackBuffer
    from speechbridge.services.speech_settings import SpeechSettingsService

    settings = Settings(_env_file=None, gemini_api_key=None, dedup_history_size=8)
    service = SpeechSettingsService(tmp_path / "speech.json")
    controller = build_pipeline(settings, service, GeminiClient(settings))

    assert isinstance(controller.playback, PcmPlaybackBuffer)
    assert controller.deduplicator.history_size == 8
    assert controller.scheduler._voices()["Female 1"] == "Aoede"

    service.update_settings(SpeechSettingsUpdate(fallback_voice="Kore", speaker_voices={"Male 1": "Puck"}))

    assert controller.scheduler._voices() == {"Male 1": "Puck"}
    assert controller.scheduler.fallback.channel.voice == "Kore"


@pytest.mark.asyncio
async def test_ingest_nowait_returns_before_script_is_ready():
    release = asyncio.Event()

    async def slow_prepare(text, language, translate=True):
        await release.wait()
        return f"Male 1: {text}"

    writer = AsyncMock()
    writer.prepare.side_effect = slow_prepare
    controller, synth, _, events = _make_controller(script_writer=writer)
    await controller.connect()

    first = await asyncio.wait_for(
        controller.ingest_nowait(SourceUpdate(id="row-1", text="one")), timeout=0.5
    )
    second = await controller.ingest_nowait(SourceUpdate(id="row-2", text="two"))
    duplicate = await controller.ingest_nowait(SourceUpdate(id="row-2", text="two"))

    assert (first, second, duplicate) == (True, True, False)
    assert len(controller.queue) == 0
    assert [e.detail for e in events if e.type is EventType.SOURCE_ACCEPTED] == ["row-1", "row-2"]

    release.set()
    await _wait_idle(controller)

    # Acceptance order is kept across background preparations
    assert synth.calls == ["Male 1: one", "Male 1: two"]


@pytest.mark.asyncio
async def test_failed_background_preparation_is_logged_not_raised():
    writer = AsyncMock()
    writer.prepare.side_effect = RuntimeError("writer bug")
    controller, synth, _, _ = _make_controller(script_writer=writer)
    await controller.connect()

    assert await controller.ingest_nowait(SourceUpdate(id="row-1", text="one")) is True
    await _wait_idle(controller)

    assert synth.calls == []
    assert controller._tasks == set()


@pytest.mark.asyncio
async def test_crashed_scheduler_is_not_respawned():
    controller, synth, _, _ = _make_controller()

    def broken_voices():
        raise RuntimeError("voice table unavailable")

    controller.scheduler._voices = broken_voices
    await controller.connect()
    controller.enqueue_text("a\nb\nc")
    await _wait_idle(controller)
    await asyncio.sleep(0.05)

    assert isinstance(controller.scheduler.last_error, RuntimeError)
    assert synth.calls == []
    # Only the crashed head is consumed; the rest waits for the next trigger
    assert [s.raw_text for s in controller.queue.snapshot()] == ["b", "c"]
    assert controller._tasks == set()
    assert controller.run_state.is_processing is False

    controller.scheduler._voices = None
    controller.enqueue_text("d")
    await _wait_idle(controller)

    assert synth.calls == ["b", "c", "d"]
