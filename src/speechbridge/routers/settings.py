"""Speech settings endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from speechbridge.schemas.speech_settings import (
    GEMINI_VOICES,
    SpeechSettings,
    SpeechSettingsUpdate,
)
from speechbridge.services.speech_settings import SpeechSettingsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["Settings"])


def get_speech_settings_service(request: Request) -> SpeechSettingsService:
    service = getattr(request.app.state, "speech_settings_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Speech settings are not initialized")
    return service


@router.get("/speech", response_model=SpeechSettings)
async def read_speech_settings(
    service: SpeechSettingsService = Depends(get_speech_settings_service),
) -> SpeechSettings:
    return service.get_settings()


@router.put("/speech", response_model=SpeechSettings)
async def update_speech_settings(
    payload: SpeechSettingsUpdate,
    service: SpeechSettingsService = Depends(get_speech_settings_service),
) -> SpeechSettings:
    unknown = [
        voice
        for voice in (payload.speaker_voices or {}).values()
        if voice not in GEMINI_VOICES
    ]
    if payload.fallback_voice and payload.fallback_voice not in GEMINI_VOICES:
        unknown.append(payload.fallback_voice)
    if unknown:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown voice(s): {', '.join(sorted(set(unknown)))}",
        )
    return service.update_settings(payload)


@router.post("/speech/reset", response_model=SpeechSettings)
async def reset_speech_settings(
    service: SpeechSettingsService = Depends(get_speech_settings_service),
) -> SpeechSettings:
    return service.reset_to_defaults()


@router.get("/speech/voices", response_model=list[str])
async def list_voices() -> list[str]:
    return list(GEMINI_VOICES)
