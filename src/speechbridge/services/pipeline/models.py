"""Data model shared by the speech pipeline components."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ConnectionStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class SchedulerState(str, Enum):
    """Lifecycle states of the pacing scheduler."""

    IDLE = "idle"
    DISPATCHING = "dispatching"
    AWAITING_AUDIO_ARRIVAL = "awaiting_audio_arrival"
    PIPELINING = "pipelining"
    DRAINING = "draining"
    STOPPED = "stopped"


class EventType(str, Enum):
    SOURCE_ACCEPTED = "source_accepted"
    SCRIPT_PREPARED = "script_prepared"
    SEGMENT_SKIPPED = "segment_skipped"
    SEGMENT_SUBMITTED = "segment_submitted"
    SEGMENT_ARRIVED = "segment_arrived"
    SEGMENT_TIMED_OUT = "segment_timed_out"
    SYNTHESIS_FAILED = "synthesis_failed"
    FALLBACK_FAILED = "fallback_failed"
    STATE_CHANGED = "state_changed"


@dataclass(frozen=True)
class SourceUpdate:
    """One observation of the external transcript source."""

    id: str
    text: str
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "SourceUpdate":
        """Build an update from a ``transcripts`` row."""
        updated_at = record.get("updated_at")
        if isinstance(updated_at, str):
            try:
                updated_at = datetime.fromisoformat(updated_at.replace("Z", "+00:00"))
            except ValueError:
                updated_at = None
        return cls(
            id=str(record.get("id") or ""),
            text=record.get("full_transcript_text") or "",
            updated_at=updated_at,
        )


@dataclass(frozen=True)
class Segment:
    """A speakable fragment queued for synthesis."""

    raw_text: str
    annotated_text: str
    sequence: int
    is_filler: bool = False


@dataclass(frozen=True)
class PlaybackBufferState:
    """Snapshot of the playback buffer, valid for a single decision."""

    end_of_queue_time: float
    remaining_duration: float


class PipelineRunState:
    """
    Process-wide guard for the single active scheduler loop.

    ``try_begin`` is the only way to claim the loop: it checks and sets
    ``is_processing`` under one lock so concurrent trigger sources cannot
    both win. The claim may carry an owner token; ``end`` with a token only
    releases the flag if that owner still holds it, so a loop orphaned by a
    disconnect cannot release a newer loop's claim.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._is_processing = False
        self._owner: Optional[object] = None
        self.connection_status = ConnectionStatus.DISCONNECTED

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    @property
    def is_connected(self) -> bool:
        return self.connection_status is ConnectionStatus.CONNECTED

    def try_begin(self, owner: Optional[object] = None) -> bool:
        with self._lock:
            if self._is_processing:
                return False
            self._is_processing = True
            self._owner = owner
            return True

    def end(self, owner: Optional[object] = None) -> None:
        with self._lock:
            if owner is not None and owner is not self._owner:
                return
            self._is_processing = False
            self._owner = None

    def teardown(self) -> None:
        """Force the guard back to idle after a disconnect."""
        with self._lock:
            self._is_processing = False
            self._owner = None
            self.connection_status = ConnectionStatus.DISCONNECTED


@dataclass
class PipelineEvent:
    """Observability event emitted to downstream consumers."""

    type: EventType
    sequence: Optional[int] = None
    text: Optional[str] = None
    detail: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_message(self) -> dict[str, Any]:
        message: dict[str, Any] = {
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.sequence is not None:
            message["sequence"] = self.sequence
        if self.text is not None:
            message["text"] = self.text
        if self.detail is not None:
            message["detail"] = self.detail
        return message


__all__ = [
    "ConnectionStatus",
    "EventType",
    "PipelineEvent",
    "PipelineRunState",
    "PlaybackBufferState",
    "SchedulerState",
    "Segment",
    "SourceUpdate",
]
