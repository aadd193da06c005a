"""Pipeline control, transcript webhook and event stream endpoints."""

import logging
import uuid
from typing import Optional

from fastapi import (
    APIRouter,
    Depends,
    Header,
    HTTPException,
    Query,
    Request,
    WebSocket,
    WebSocketDisconnect,
)

from speechbridge.schemas.pipeline import (
    IngestResult,
    PipelineStatus,
    TextSubmission,
    TranscriptWebhookPayload,
)
from speechbridge.services.event_broadcaster import EventBroadcaster
from speechbridge.services.pipeline import PipelineController, SourceUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Pipeline"])


def get_controller(request: Request) -> PipelineController:
    """Get the pipeline controller from app state."""
    controller = getattr(request.app.state, "pipeline_controller", None)
    if controller is None:
        raise HTTPException(status_code=503, detail="Pipeline is not initialized")
    return controller


def verify_webhook_secret(
    request: Request,
    x_webhook_secret: Optional[str] = Header(default=None),
) -> None:
    """Reject webhook calls without the configured shared secret."""
    expected = getattr(request.app.state, "webhook_secret", None)
    if expected and x_webhook_secret != expected:
        raise HTTPException(status_code=401, detail="Invalid webhook secret")


@router.get("/pipeline/status", response_model=PipelineStatus)
async def pipeline_status(
    controller: PipelineController = Depends(get_controller),
) -> PipelineStatus:
    return PipelineStatus.model_validate(controller.status())


@router.post("/pipeline/connect", response_model=PipelineStatus)
async def connect_pipeline(
    controller: PipelineController = Depends(get_controller),
) -> PipelineStatus:
    await controller.connect()
    return PipelineStatus.model_validate(controller.status())


@router.post("/pipeline/disconnect", response_model=PipelineStatus)
async def disconnect_pipeline(
    controller: PipelineController = Depends(get_controller),
) -> PipelineStatus:
    await controller.disconnect()
    return PipelineStatus.model_validate(controller.status())


@router.post("/pipeline/text", response_model=IngestResult)
async def submit_text(
    payload: TextSubmission,
    controller: PipelineController = Depends(get_controller),
) -> IngestResult:
    """Queue text for reading without going through the transcript source."""
    queued = controller.enqueue_text(payload.text, payload.voice_style)
    return IngestResult(accepted=queued > 0, queued=queued, queue_length=len(controller.queue))


@router.post(
    "/transcripts/webhook",
    response_model=IngestResult,
    dependencies=[Depends(verify_webhook_secret)],
)
async def transcript_webhook(
    payload: TranscriptWebhookPayload,
    controller: PipelineController = Depends(get_controller),
) -> IngestResult:
    """Push channel: Supabase database webhook for transcript changes."""
    if payload.type == "DELETE" or not payload.record:
        return IngestResult(accepted=False, queue_length=len(controller.queue))

    update = SourceUpdate.from_record(payload.record)
    # Script preparation continues in the background
    accepted = await controller.ingest_nowait(update)
    return IngestResult(accepted=accepted, queue_length=len(controller.queue))


@router.websocket("/pipeline/events")
async def pipeline_events(
    websocket: WebSocket,
    client_id: Optional[str] = Query(default=None),
    audio: bool = Query(default=True),
):
    """Stream pipeline events (and optionally audio chunks) to a consumer."""
    broadcaster: Optional[EventBroadcaster] = getattr(
        websocket.app.state, "event_broadcaster", None
    )
    if broadcaster is None:
        await websocket.close(code=1011)
        return

    subscriber_id = client_id or uuid.uuid4().hex
    subscriber = await broadcaster.connect(
        websocket, subscriber_id, receive_audio=audio, replay=20
    )
    try:
        while True:
            # Subscribers only listen; incoming frames are keep-alives
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"Event stream closed by {subscriber_id}")
    finally:
        broadcaster.disconnect(subscriber_id, subscriber)
