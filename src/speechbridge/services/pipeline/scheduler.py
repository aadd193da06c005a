"""
Playback-Aware Pacing Scheduler.

This module drains the work queue one segment at a time, submitting each to
the synthesis provider and pacing the next submission against the playback
buffer rather than the wall clock.

Architecture:
    WorkQueue → PacingScheduler.run() → synthesizer / fallback → playback buffer
                        ▲                                           │
                        └──────────── get_state() polling ──────────┘

Per segment:
1. Peek the head; empty text is popped and skipped without a provider call
2. Snapshot the buffer, then synthesize (fallback on failure, never retry)
3. Pop the head: submission is at-most-once
4. Wait (bounded) until the buffer's end-of-queue time moves forward
5. Wait (bounded) until remaining playback drops below the low-water mark,
   so the next request overlaps the tail of the current audio

Every wait is a timed wait on a stop event, so a disconnect ends the loop
within one poll interval instead of after a full sleep.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Mapping, Optional

from .errors import FallbackError, SynthesisError
from .fallback import FallbackPath
from .models import (
    EventType,
    PipelineEvent,
    PipelineRunState,
    PlaybackBufferState,
    SchedulerState,
    Segment,
)
from .playback import AudioPlaybackBuffer
from .synthesis import AudioPayload, SpeechSynthesizer
from .work_queue import WorkQueue

if TYPE_CHECKING:
    from speechbridge.config import Settings

logger = logging.getLogger(__name__)

EventSink = Callable[[PipelineEvent], Awaitable[None]]
VoiceTableProvider = Callable[[], Mapping[str, str]]


@dataclass(frozen=True)
class PacingConfig:
    """Timing contract of the scheduler's two wait loops."""

    arrival_poll_interval: float = 0.1
    arrival_epsilon: float = 0.1
    arrival_timeout: float = 15.0
    pipelining_poll_interval: float = 0.2
    low_water_seconds: float = 3.0
    pipelining_timeout: float = 120.0

    @classmethod
    def from_settings(cls, settings: "Settings") -> "PacingConfig":
        return cls(
            arrival_poll_interval=settings.arrival_poll_interval,
            arrival_epsilon=settings.arrival_epsilon,
            arrival_timeout=settings.arrival_timeout,
            pipelining_poll_interval=settings.pipelining_poll_interval,
            low_water_seconds=settings.low_water_seconds,
            pipelining_timeout=settings.pipelining_timeout,
        )


class PacingScheduler:
    """
    Single-consumer loop pacing synthesis against playback.

    Only one ``run`` may be active at a time; the guard is the shared
    ``PipelineRunState`` flag, claimed atomically on entry and released on
    every exit path.

    Attributes:
        state: Current ``SchedulerState``
        config: Pacing intervals, thresholds and timeouts
        last_error: Exception that ended the most recent owned run, if any
    """

    def __init__(
        self,
        queue: WorkQueue,
        run_state: PipelineRunState,
        synthesizer: SpeechSynthesizer,
        fallback: FallbackPath,
        playback: AudioPlaybackBuffer,
        config: Optional[PacingConfig] = None,
        voices: Optional[VoiceTableProvider] = None,
        on_event: Optional[EventSink] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.queue = queue
        self.run_state = run_state
        self.synthesizer = synthesizer
        self.fallback = fallback
        self.playback = playback
        self.config = config or PacingConfig()
        self._voices = voices
        self._on_event = on_event
        self._clock = clock
        self._stop_event = asyncio.Event()
        self.state = SchedulerState.IDLE
        self.last_error: Optional[Exception] = None

    # Lifecycle -----------------------------------------------------------

    def stop(self) -> None:
        """Force the terminal state; the active loop exits at its next check."""
        self._stop_event.set()
        self.state = SchedulerState.STOPPED

    def resume(self) -> None:
        """
        Leave the stopped state so the loop can be started again.

        A fresh stop event is installed, so a loop still finishing an
        in-flight call from before the stop keeps seeing its own (set)
        event and exits.
        """
        if self._stop_event.is_set():
            self._stop_event = asyncio.Event()
        if self.state is SchedulerState.STOPPED:
            self.state = SchedulerState.IDLE

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def _can_continue(self, stop: asyncio.Event) -> bool:
        return self.run_state.is_connected and not stop.is_set()

    async def run(self) -> bool:
        """
        Drain the queue until it is empty or the connection drops.

        Returns:
            True if this call owned the loop, False if another loop was
            already active (or the connection is down)
        """
        stop = self._stop_event
        if not self._can_continue(stop):
            return False
        if not self.run_state.try_begin(owner=stop):
            logger.debug("Scheduler loop already active, ignoring start trigger")
            return False

        self.last_error = None
        logger.info(f"Scheduler loop started with {len(self.queue)} queued segment(s)")
        try:
            await self._drain(stop)
        except asyncio.CancelledError:
            logger.info("Scheduler task cancelled")
            raise
        except Exception as e:
            self.last_error = e
            logger.error(f"Error in processing loop: {e}", exc_info=True)
        finally:
            self.run_state.end(owner=stop)
            if stop is self._stop_event:
                if self._can_continue(stop):
                    self.state = SchedulerState.IDLE
                else:
                    self.state = SchedulerState.STOPPED
            logger.info(f"Scheduler loop exited ({self.state.value})")
        return True

    # Loop ----------------------------------------------------------------

    async def _drain(self, stop: asyncio.Event) -> None:
        while self._can_continue(stop):
            segment = self.queue.peek()
            if segment is None:
                break

            await self._set_state(SchedulerState.DISPATCHING)

            if not segment.annotated_text.strip():
                self.queue.pop_if_head(segment)
                await self._emit(PipelineEvent(EventType.SEGMENT_SKIPPED, sequence=segment.sequence))
                continue

            pre_send = self.playback.get_state()
            try:
                route = await self._submit(segment, stop)
            finally:
                # Popped on every exit path, including errors
                self.queue.pop_if_head(segment)

            if not self._can_continue(stop):
                logger.info(f"Disconnected while submitting segment {segment.sequence}")
                break

            await self._emit(
                PipelineEvent(
                    EventType.SEGMENT_SUBMITTED,
                    sequence=segment.sequence,
                    text=segment.annotated_text,
                    detail=route,
                )
            )

            # Nothing can arrive when both paths failed
            if route != "failed":
                await self._set_state(SchedulerState.AWAITING_AUDIO_ARRIVAL)
                arrived = await self._await_arrival(pre_send, stop)
                if arrived is None:
                    break
                if arrived:
                    await self._emit(PipelineEvent(EventType.SEGMENT_ARRIVED, sequence=segment.sequence))
                else:
                    logger.warning(
                        f"Timeout waiting for audio of segment {segment.sequence} "
                        f"after {self.config.arrival_timeout:.1f}s"
                    )
                    await self._emit(
                        PipelineEvent(EventType.SEGMENT_TIMED_OUT, sequence=segment.sequence)
                    )

            await self._set_state(SchedulerState.PIPELINING)
            if await self._await_low_water(stop) is None:
                break

        if self._can_continue(stop):
            await self._set_state(SchedulerState.DRAINING)
            await self._set_state(SchedulerState.IDLE)

    async def _submit(self, segment: Segment, stop: asyncio.Event) -> str:
        """
        Submit one segment through the primary path, falling back once.

        Returns:
            "primary", "fallback" or "failed"
        """
        voices = self._voices() if self._voices else None

        try:
            payload = await self.synthesizer.synthesize(segment.annotated_text, voices)
        except SynthesisError as e:
            logger.warning(f"Synthesis failed for segment {segment.sequence}: {e}")
            await self._emit(
                PipelineEvent(EventType.SYNTHESIS_FAILED, sequence=segment.sequence, detail=str(e))
            )
        except Exception as e:
            logger.error(f"Unexpected synthesis error for segment {segment.sequence}: {e}", exc_info=True)
            await self._emit(
                PipelineEvent(EventType.SYNTHESIS_FAILED, sequence=segment.sequence, detail=repr(e))
            )
        else:
            self._deliver(segment, payload, stop)
            return "primary"

        if not self._can_continue(stop):
            return "failed"

        try:
            payload = await self.fallback.submit(segment)
        except FallbackError as e:
            logger.error(f"Fallback failed, dropping segment {segment.sequence}: {e}")
            await self._emit(
                PipelineEvent(EventType.FALLBACK_FAILED, sequence=segment.sequence, detail=str(e))
            )
            return "failed"

        self._deliver(segment, payload, stop)
        return "fallback"

    def _deliver(
        self,
        segment: Segment,
        payload: Optional[AudioPayload],
        stop: asyncio.Event,
    ) -> None:
        if payload is None:
            return
        if not self._can_continue(stop):
            logger.info(f"Discarding audio for segment {segment.sequence} after disconnect")
            return
        self.playback.append(payload.data)

    # Waits ---------------------------------------------------------------

    @staticmethod
    async def _pause(stop: asyncio.Event, interval: float) -> bool:
        """Sleep for one poll interval. Returns True if stopped meanwhile."""
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
        except asyncio.TimeoutError:
            return False
        return True

    async def _await_arrival(
        self,
        baseline: PlaybackBufferState,
        stop: asyncio.Event,
    ) -> Optional[bool]:
        """
        Wait until new audio lands in the playback buffer.

        Returns:
            True on arrival, False on timeout, None if the loop must exit
        """
        target = baseline.end_of_queue_time + self.config.arrival_epsilon
        deadline = self._clock() + self.config.arrival_timeout

        while True:
            if not self._can_continue(stop):
                return None
            if self.playback.get_state().end_of_queue_time > target:
                return True
            if self._clock() >= deadline:
                return False
            if await self._pause(stop, self.config.arrival_poll_interval):
                return None

    async def _await_low_water(self, stop: asyncio.Event) -> Optional[bool]:
        """
        Wait until buffered playback falls below the low-water threshold.

        Returns:
            True when below threshold, False on timeout, None if the loop
            must exit
        """
        deadline = self._clock() + self.config.pipelining_timeout

        while True:
            if not self._can_continue(stop):
                return None
            remaining = self.playback.get_state().remaining_duration
            if remaining <= 0 or remaining < self.config.low_water_seconds:
                return True
            if self._clock() >= deadline:
                logger.warning(
                    f"Playback still has {remaining:.1f}s buffered after "
                    f"{self.config.pipelining_timeout:.0f}s, continuing"
                )
                return False
            if await self._pause(stop, self.config.pipelining_poll_interval):
                return None

    # Events --------------------------------------------------------------

    async def _set_state(self, state: SchedulerState) -> None:
        if state is self.state:
            return
        self.state = state
        await self._emit(PipelineEvent(EventType.STATE_CHANGED, detail=state.value))

    async def _emit(self, event: PipelineEvent) -> None:
        if self._on_event is None:
            return
        try:
            await self._on_event(event)
        except Exception as e:
            logger.error(f"Event sink failed for {event.type.value}: {e}")


__all__ = ["EventSink", "PacingConfig", "PacingScheduler", "VoiceTableProvider"]
