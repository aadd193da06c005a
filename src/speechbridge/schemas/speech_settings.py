"""Speech settings schema for synthesis and script preparation."""

from enum import Enum

from pydantic import BaseModel, Field, field_validator


# Prebuilt Gemini TTS voices
GEMINI_VOICES = [
    "Zephyr",   # Bright
    "Puck",     # Upbeat
    "Charon",   # Informative, male
    "Kore",     # Firm, female
    "Fenrir",   # Excitable
    "Leda",     # Youthful
    "Orus",     # Firm, male
    "Aoede",    # Breezy, female
    "Callirrhoe",
    "Autonoe",
    "Enceladus",  # Breathy
    "Iapetus",
    "Umbriel",
    "Algieba",
    "Despina",
    "Erinome",
    "Algenib",
    "Rasalgethi",
    "Laomedeia",
    "Achernar",
    "Alnilam",
    "Schedar",
    "Gacrux",
    "Pulcherrima",
    "Achird",
    "Zubenelgenubi",
    "Vindemiatrix",
    "Sadachbia",
    "Sadaltager",
    "Sulafat",
]

# Speaker labels produced by script preparation, in assignment order
SPEAKER_LABELS = ["Male 1", "Female 1", "Male 2", "Female 2"]

MAX_SPEAKERS = 4

DEFAULT_SPEAKER_VOICES = {
    "Male 1": "Charon",
    "Female 1": "Aoede",
    "Male 2": "Orus",
    "Female 2": "Kore",
}


class VoiceStyle(str, Enum):
    NATURAL = "natural"
    BREATHY = "breathy"
    DRAMATIC = "dramatic"


def _check_speaker_table(value: dict[str, str]) -> dict[str, str]:
    if len(value) > MAX_SPEAKERS:
        raise ValueError(f"At most {MAX_SPEAKERS} speakers are supported, got {len(value)}")
    cleaned: dict[str, str] = {}
    for label, voice in value.items():
        label = label.strip()
        voice = voice.strip()
        if not label or not voice:
            raise ValueError("Speaker labels and voice names must be non-empty")
        cleaned[label] = voice
    return cleaned


class SynthesisOptions(BaseModel):
    """Explicit provider options passed to the synthesis adapters."""

    voice_style: VoiceStyle = Field(default=VoiceStyle.BREATHY)
    speaker_voices: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_SPEAKER_VOICES),
        description="Speaker label to prebuilt voice name (max 4 speakers).",
    )
    language: str = Field(default="Taglish (Philippines)")
    fallback_voice: str = Field(default="Charon")
    translate: bool = Field(default=True)

    @field_validator("speaker_voices")
    @classmethod
    def _validate_speakers(cls, value: dict[str, str]) -> dict[str, str]:
        return _check_speaker_table(value)


class SpeechSettings(BaseModel):
    """Persisted user-facing speech settings."""

    voice_style: VoiceStyle = Field(
        default=VoiceStyle.BREATHY,
        description="Delivery style applied by the segmenter: natural, breathy or dramatic.",
    )

    language: str = Field(
        default="Taglish (Philippines)",
        description="Target language the transcript is translated into before reading.",
    )

    speaker_voices: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_SPEAKER_VOICES),
        description="Speaker label to prebuilt voice name (max 4 speakers).",
    )

    fallback_voice: str = Field(
        default="Charon",
        description="Single voice used by the fallback channel.",
    )

    translate: bool = Field(
        default=True,
        description="Translate and diarize incoming text before segmentation.",
    )

    @field_validator("speaker_voices")
    @classmethod
    def _validate_speakers(cls, value: dict[str, str]) -> dict[str, str]:
        return _check_speaker_table(value)

    def synthesis_options(self) -> SynthesisOptions:
        return SynthesisOptions(
            voice_style=self.voice_style,
            speaker_voices=self.speaker_voices,
            language=self.language,
            fallback_voice=self.fallback_voice,
            translate=self.translate,
        )


class SpeechSettingsUpdate(BaseModel):
    """Partial update schema - all fields optional."""

    voice_style: VoiceStyle | None = Field(default=None)
    language: str | None = Field(default=None, min_length=1)
    speaker_voices: dict[str, str] | None = Field(default=None)
    fallback_voice: str | None = Field(default=None, min_length=1)
    translate: bool | None = Field(default=None)

    @field_validator("speaker_voices")
    @classmethod
    def _validate_speakers(cls, value: dict[str, str] | None) -> dict[str, str] | None:
        if value is None:
            return None
        return _check_speaker_table(value)
