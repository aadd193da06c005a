"""Request and response models for the pipeline API."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from speechbridge.schemas.speech_settings import VoiceStyle


class TranscriptWebhookPayload(BaseModel):
    """Supabase database webhook body for the transcripts table."""

    type: Literal["INSERT", "UPDATE", "DELETE"]
    table: str
    schema_: str = Field(default="public", alias="schema")
    record: Optional[dict[str, Any]] = None
    old_record: Optional[dict[str, Any]] = None


class TextSubmission(BaseModel):
    """Text pushed directly into the queue, bypassing deduplication."""

    text: str = Field(..., min_length=1)
    voice_style: VoiceStyle | None = Field(default=None)


class IngestResult(BaseModel):
    accepted: bool
    queued: int = Field(default=0, description="Segments queued before the response was sent.")
    queue_length: int


class PlaybackSnapshot(BaseModel):
    end_of_queue_time: float
    remaining_duration: float


class PipelineStatus(BaseModel):
    connection: Literal["connected", "disconnected"]
    is_processing: bool
    scheduler_state: str
    queue_length: int
    last_accepted_id: Optional[str] = None
    playback: PlaybackSnapshot
