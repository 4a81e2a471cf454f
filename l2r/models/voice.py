from typing import Literal, Optional, Union

from pydantic import Field

from l2r.models.base import CamelModel

# Child-friendly default voice stored per child
DEFAULT_SETTINGS_VOICE_ID = "pMsXgVXv3BLzUgSXRplE"
# Voice used by /tts when the caller names none
DEFAULT_TTS_VOICE_ID = "EXAVITQu4vr4xnSDxMaL"
DEFAULT_TTS_MODEL_ID = "eleven_multilingual_v2"
DEFAULT_OUTPUT_FORMAT = "mp3_44100_128"

VOICE_SETTINGS_RANGES: dict[str, tuple[float, float]] = {
    "stability": (0.0, 1.0),
    "similarity_boost": (0.0, 1.0),
    "style": (0.0, 1.0),
    "speed": (0.5, 2.0),
}


class VoiceSettings(CamelModel):
    voice_id: str = DEFAULT_SETTINGS_VOICE_ID
    stability: float = 0.5
    similarity_boost: float = 0.75
    style: float = 0.0
    speed: float = 1.0
    use_speaker_boost: bool = True


class VoiceSettingsPayload(CamelModel):
    voice_id: Optional[str] = None
    stability: Optional[float] = None
    similarity_boost: Optional[float] = None
    style: Optional[float] = None
    speed: Optional[float] = None
    use_speaker_boost: Optional[bool] = None


class AcousticSettings(CamelModel):
    """Per-request synthesis parameters; unset fields take the defaults."""

    stability: float = 0.5
    similarity_boost: float = 0.75
    style: float = 0.0
    speed: float = 1.0
    use_speaker_boost: bool = True


class TTSRequest(CamelModel):
    text: Optional[str] = None
    voice_id: Optional[str] = None
    model_id: Optional[str] = None
    voice_settings: Optional[AcousticSettings] = None
    output_format: Optional[str] = None


class Voice(CamelModel):
    voice_id: str
    name: str = "Unknown"
    category: Optional[str] = None
    description: Optional[str] = None
    preview_url: Optional[str] = None
    labels: Optional[dict[str, str]] = None


# ── Transcription ──────────────────────────────────────────────────────
# The vendor answers either with one flat transcript or, for multichannel
# audio, with a list of them. Both are parsed into tagged variants.

class VendorWord(CamelModel):
    text: str
    start: Optional[float] = None
    end: Optional[float] = None
    type: str = "word"
    speaker_id: Optional[str] = None
    logprob: float = 0.0


class ChannelTranscript(CamelModel):
    text: str = ""
    words: list[VendorWord] = []
    language_code: str = ""
    language_probability: float = 0.0


class SingleChannelResult(CamelModel):
    kind: Literal["single"] = "single"
    transcript: ChannelTranscript


class MultiChannelResult(CamelModel):
    kind: Literal["multichannel"] = "multichannel"
    transcripts: list[ChannelTranscript]


TranscriptionResult = Union[SingleChannelResult, MultiChannelResult]


class TranscriptWord(CamelModel):
    text: str
    start: Optional[float] = None
    end: Optional[float] = None
    type: str
    speaker_id: Optional[str] = None
    confidence: float


class Transcript(CamelModel):
    text: str
    words: list[TranscriptWord] = Field(default_factory=list)
    language_code: str = ""
    language_confidence: float = 0.0


class PronunciationResult(CamelModel):
    is_correct: bool
    transcribed: str
    expected: str
    confidence: float
    feedback: str
