"""
Lifecycle Controller for the read-aloud pipeline.

Wires deduplication, script preparation, segmentation and the pacing
scheduler together, and starts or stops the scheduler as text arrives and
the connection comes and goes. Producers only ever append to the queue;
synthesis happens exclusively inside the scheduler task.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import TYPE_CHECKING, Any, Callable, Coroutine, Dict, Optional, Set

from speechbridge.schemas.speech_settings import SynthesisOptions, VoiceStyle

from .deduplicator import ChangeDeduplicator
from .fallback import FallbackPath, SingleVoiceChannel
from .models import (
    ConnectionStatus,
    EventType,
    PipelineEvent,
    PipelineRunState,
    SourceUpdate,
)
from .playback import AudioPlaybackBuffer, PcmPlaybackBuffer
from .scheduler import EventSink, PacingConfig, PacingScheduler
from .script_writer import ScriptWriter
from .synthesis import GeminiSpeechSynthesizer
from .text_segmenter import TextSegmenter
from .work_queue import WorkQueue

if TYPE_CHECKING:
    from speechbridge.config import Settings
    from speechbridge.services.event_broadcaster import EventBroadcaster
    from speechbridge.services.gemini_client import GeminiClient
    from speechbridge.services.speech_settings import SpeechSettingsService

logger = logging.getLogger(__name__)

SynthesisOptionsProvider = Callable[[], SynthesisOptions]


class PipelineController:
    """
    Owns one pipeline instance and its single scheduler task.

    Start triggers: text enqueued into an empty queue, or the connection
    becoming available while segments are waiting. A disconnect stops the
    scheduler at once; in-flight calls are left to finish but their audio is
    discarded.
    """

    def __init__(
        self,
        *,
        queue: WorkQueue,
        run_state: PipelineRunState,
        deduplicator: ChangeDeduplicator,
        segmenter: TextSegmenter,
        scheduler: PacingScheduler,
        playback: AudioPlaybackBuffer,
        options: SynthesisOptionsProvider,
        script_writer: Optional[ScriptWriter] = None,
        on_event: Optional[EventSink] = None,
        drain_queue_on_disconnect: bool = False,
    ):
        self.queue = queue
        self.run_state = run_state
        self.deduplicator = deduplicator
        self.segmenter = segmenter
        self.scheduler = scheduler
        self.playback = playback
        self.script_writer = script_writer
        self.drain_queue_on_disconnect = drain_queue_on_disconnect
        self._options = options
        self._on_event = on_event
        self._ingest_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

    # Producers -----------------------------------------------------------

    async def ingest(self, update: SourceUpdate) -> bool:
        """
        Accept an update and wait until its script is queued.

        Used by the polling channel, which reads the next row only after
        the previous one is on the queue.

        Returns:
            True if the update was new and its segments were queued
        """
        text = await self._accept(update)
        if text is None:
            return False
        await self._prepare(update.id, text)
        return True

    async def ingest_nowait(self, update: SourceUpdate) -> bool:
        """
        Accept an update and prepare its script in a background task.

        Used by the webhook, which must answer before the script model does.

        Returns:
            True if the update was new and preparation was started
        """
        text = await self._accept(update)
        if text is None:
            return False
        self._spawn(self._prepare_in_background(update.id, text))
        return True

    async def _accept(self, update: SourceUpdate) -> Optional[str]:
        text = self.deduplicator.accept(update)
        if text is not None:
            await self._emit(PipelineEvent(EventType.SOURCE_ACCEPTED, text=text, detail=update.id))
        return text

    async def _prepare(self, update_id: str, text: str) -> None:
        # Serialize preparation so scripts are queued in acceptance order
        async with self._ingest_lock:
            options = self._options()
            script = text
            if self.script_writer is not None:
                script = await self.script_writer.prepare(text, options.language, options.translate)
            await self._emit(
                PipelineEvent(EventType.SCRIPT_PREPARED, text=script, detail=update_id)
            )
            self.enqueue_text(script, options.voice_style)

    async def _prepare_in_background(self, update_id: str, text: str) -> None:
        try:
            await self._prepare(update_id, text)
        except asyncio.CancelledError:
            logger.info(f"Preparation of {update_id} cancelled")
            raise
        except Exception as e:
            logger.error(f"Failed to prepare update {update_id}: {e}", exc_info=True)

    def enqueue_text(self, text: str, style: Optional[VoiceStyle] = None) -> int:
        """Segment text onto the queue and start the scheduler if needed."""
        if style is None:
            style = self._options().voice_style

        before = len(self.queue)
        became_non_empty = self.queue.extend(self.segmenter.segment(text, style))
        added = len(self.queue) - before
        if added:
            logger.info(f"Queued {added} segment(s), queue length {len(self.queue)}")
        if became_non_empty or added:
            self.ensure_running()
        return added

    # Lifecycle -----------------------------------------------------------

    def ensure_running(self) -> bool:
        """Start a scheduler task unless one is already draining the queue."""
        if not self.run_state.is_connected or not self.queue:
            return False
        if self.run_state.is_processing:
            return False

        self._spawn(self._run_scheduler())
        return True

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_scheduler(self) -> None:
        owned = await self.scheduler.run()
        if not owned:
            return
        if self.scheduler.last_error is not None:
            # Restarted only by the next enqueue or reconnect
            logger.warning(
                f"Scheduler stopped on error, {len(self.queue)} segment(s) left queued"
            )
            return
        # Segments appended while the loop was winding down
        if self.queue and self.run_state.is_connected and not self.scheduler.stopped:
            self.ensure_running()

    async def set_connection(self, status: ConnectionStatus) -> None:
        if status is ConnectionStatus.CONNECTED:
            await self.connect()
        else:
            await self.disconnect()

    async def connect(self) -> None:
        if self.run_state.is_connected:
            return
        self.run_state.connection_status = ConnectionStatus.CONNECTED
        self.scheduler.resume()
        logger.info("Pipeline connected")
        await self._emit(PipelineEvent(EventType.STATE_CHANGED, detail="connected"))
        self.ensure_running()

    async def disconnect(self) -> None:
        if not self.run_state.is_connected:
            return
        self.scheduler.stop()
        self.run_state.teardown()
        dropped = self.queue.clear() if self.drain_queue_on_disconnect else 0
        logger.info(
            f"Pipeline disconnected ({len(self.queue)} segment(s) kept, {dropped} dropped)"
        )
        await self._emit(PipelineEvent(EventType.STATE_CHANGED, detail="disconnected"))

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Stop the scheduler and wait for its task to wind down."""
        self.scheduler.stop()
        self.run_state.teardown()
        tasks = list(self._tasks)
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    def status(self) -> Dict[str, Any]:
        playback = self.playback.get_state()
        return {
            "connection": self.run_state.connection_status.value,
            "is_processing": self.run_state.is_processing,
            "scheduler_state": self.scheduler.state.value,
            "queue_length": len(self.queue),
            "last_accepted_id": self.deduplicator.last_accepted_id,
            "playback": {
                "end_of_queue_time": playback.end_of_queue_time,
                "remaining_duration": playback.remaining_duration,
            },
        }

    async def _emit(self, event: PipelineEvent) -> None:
        if self._on_event is None:
            return
        try:
            await self._on_event(event)
        except Exception as e:
            logger.error(f"Event sink failed for {event.type.value}: {e}")


def build_pipeline(
    settings: "Settings",
    speech_settings_service: "SpeechSettingsService",
    gemini_client: "GeminiClient",
    broadcaster: Optional["EventBroadcaster"] = None,
    playback: Optional[AudioPlaybackBuffer] = None,
) -> PipelineController:
    """Assemble a controller with the Gemini synthesis stack."""
    if playback is None:
        playback = PcmPlaybackBuffer(sample_rate=settings.audio_sample_rate)
    if broadcaster is not None and isinstance(playback, PcmPlaybackBuffer):
        playback.add_listener(broadcaster.forward_audio)

    on_event = broadcaster.publish if broadcaster is not None else None

    synthesizer = GeminiSpeechSynthesizer(
        gemini_client,
        settings.tts_model,
        default_sample_rate=settings.audio_sample_rate,
    )
    def _options() -> SynthesisOptions:
        return speech_settings_service.get_settings().synthesis_options()

    channel = SingleVoiceChannel(synthesizer, voice=lambda: _options().fallback_voice)

    queue = WorkQueue()
    run_state = PipelineRunState()

    def _voices() -> Dict[str, str]:
        return dict(_options().speaker_voices)

    scheduler = PacingScheduler(
        queue=queue,
        run_state=run_state,
        synthesizer=synthesizer,
        fallback=FallbackPath(channel),
        playback=playback,
        config=PacingConfig.from_settings(settings),
        voices=_voices,
        on_event=on_event,
    )

    return PipelineController(
        queue=queue,
        run_state=run_state,
        deduplicator=ChangeDeduplicator(history_size=settings.dedup_history_size),
        segmenter=TextSegmenter(),
        scheduler=scheduler,
        playback=playback,
        options=_options,
        script_writer=ScriptWriter(gemini_client, settings.script_model),
        on_event=on_event,
        drain_queue_on_disconnect=settings.drain_queue_on_disconnect,
    )


__all__ = ["PipelineController", "SynthesisOptionsProvider", "build_pipeline"]
