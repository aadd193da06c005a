"""Application factory for the FastAPI service."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import PROJECT_ROOT, Settings, get_settings
from .routers.pipeline import router as pipeline_router
from .routers.settings import router as settings_router
from .services.event_broadcaster import EventBroadcaster
from .services.gemini_client import GeminiClient
from .services.pipeline import build_pipeline
from .services.speech_settings import SpeechSettingsService
from .services.transcript_source import SupabaseTranscriptSource, TranscriptPoller

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    """Configure logging based on LOG_LEVEL environment variable."""
    # Load .env file first to ensure LOG_FILE is available
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handlers: list[logging.Handler] = []

    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    # Always add console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True,  # Override any existing configuration
    )

    logging.getLogger("speechbridge").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    # Quiet per-request client logs unless debugging
    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def _resolve_under(base: Path, p: Path) -> Path:
    # Allow absolute paths as-is (useful for tests and external mounts).
    if p.is_absolute():
        return p.resolve()
    resolved = (base / p).resolve()
    if not resolved.is_relative_to(base):
        raise ValueError(f"Configured path {resolved} escapes project root {base}")
    return resolved


def create_app(settings: Settings | None = None) -> FastAPI:
    # Configure logging first thing
    _configure_logging()

    settings = settings or get_settings()

    speech_settings_service = SpeechSettingsService(
        _resolve_under(PROJECT_ROOT, settings.speech_settings_path)
    )
    broadcaster = EventBroadcaster(sample_rate=settings.audio_sample_rate)
    gemini_client = GeminiClient(settings)
    controller = build_pipeline(
        settings,
        speech_settings_service,
        gemini_client,
        broadcaster=broadcaster,
    )

    poller: TranscriptPoller | None = None
    if settings.supabase_configured:
        poller = TranscriptPoller(
            SupabaseTranscriptSource(settings),
            controller.ingest,
            interval=settings.poll_interval_seconds,
        )
    else:
        logger.warning("Supabase is not configured; only webhook and manual text input are active")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.autoconnect:
            await controller.connect()
        if poller is not None:
            poller.start()
        try:
            yield
        finally:
            if poller is not None:
                await poller.stop()
            # Add timeout to prevent hanging during shutdown (especially in tests)
            try:
                await asyncio.wait_for(controller.shutdown(), timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning("Pipeline shutdown timed out after 10s")
            except Exception as exc:
                logger.warning("Error during pipeline shutdown: %s", exc)
            await GeminiClient.close_http_client()

    app = FastAPI(
        title="Speech Bridge",
        version="0.1.0",
        description="Reads live transcripts aloud with playback-paced speech synthesis.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.speech_settings_service = speech_settings_service
    app.state.event_broadcaster = broadcaster
    app.state.pipeline_controller = controller
    app.state.transcript_poller = poller
    app.state.webhook_secret = (
        settings.webhook_secret.get_secret_value() if settings.webhook_secret else None
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(pipeline_router)
    app.include_router(settings_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str | int | None]:
        status = controller.status()
        return {
            "status": "ok",
            "connection": status["connection"],
            "scheduler_state": status["scheduler_state"],
            "queue_length": status["queue_length"],
        }

    return app


__all__ = ["create_app"]
