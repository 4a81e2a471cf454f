"""ElevenLabs REST client used by the voice routes.

Usage:
    from l2r.services.voice_client import get_voice_client

    client = get_voice_client()          # raises VoiceServiceUnavailable without a key
    audio = await client.text_to_speech("Hello!", voice_id=None, model_id=None,
                                        acoustic=None, output_format=None)
    async for chunk in await client.text_to_speech_stream("Hello!"):
        ...
    result = await client.speech_to_text("word.webm", data, "audio/webm")
    transcript = to_transcript(first_channel(result))

Every request opens its own ``httpx.AsyncClient``. Transport failures are
retried a few times; anything the vendor still cannot answer surfaces as
``VoiceServiceUnavailable`` and a vendor 404 as ``VoiceNotFound``.
"""

import logging
import math
from typing import Any, AsyncIterator, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from l2r.config import settings
from l2r.models.voice import (
    DEFAULT_OUTPUT_FORMAT,
    DEFAULT_TTS_MODEL_ID,
    DEFAULT_TTS_VOICE_ID,
    AcousticSettings,
    ChannelTranscript,
    MultiChannelResult,
    SingleChannelResult,
    Transcript,
    TranscriptionResult,
    TranscriptWord,
    Voice,
)

logger = logging.getLogger(__name__)

STT_MODEL_ID = "scribe_v2"


class VoiceServiceUnavailable(Exception):
    """The vendor is not configured, unreachable, or answered with an error."""


class VoiceNotFound(Exception):
    """The vendor does not know the requested voice."""


# ── Transcript parsing ────────────────────────────────────────────────

def parse_transcription(payload: dict[str, Any]) -> TranscriptionResult:
    """Resolve the vendor's two response shapes into a tagged variant."""
    if isinstance(payload.get("transcripts"), list):
        return MultiChannelResult(
            transcripts=[ChannelTranscript.model_validate(t) for t in payload["transcripts"]]
        )
    return SingleChannelResult(transcript=ChannelTranscript.model_validate(payload))


def first_channel(result: TranscriptionResult) -> ChannelTranscript:
    if isinstance(result, MultiChannelResult):
        # Only the first channel is ever reported
        return result.transcripts[0] if result.transcripts else ChannelTranscript()
    return result.transcript


def to_transcript(channel: ChannelTranscript) -> Transcript:
    return Transcript(
        text=channel.text,
        words=[
            TranscriptWord(
                text=w.text,
                start=w.start,
                end=w.end,
                type=w.type,
                speaker_id=w.speaker_id,
                confidence=math.exp(w.logprob),
            )
            for w in channel.words
        ],
        language_code=channel.language_code,
        language_confidence=channel.language_probability,
    )


def _voice_from_vendor(data: dict[str, Any]) -> Voice:
    return Voice(
        voice_id=data.get("voice_id", ""),
        name=data.get("name") or "Unknown",
        category=data.get("category"),
        description=data.get("description"),
        preview_url=data.get("preview_url"),
        labels=data.get("labels"),
    )


# ── Client ────────────────────────────────────────────────────────────

class VoiceClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.elevenlabs.io",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(httpx.TransportError),
        before_sleep=lambda retry_state: logger.warning(
            "Voice vendor call failed (attempt %d), retrying: %s",
            retry_state.attempt_number,
            retry_state.outcome.exception(),
        ),
        reraise=True,
    )
    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers={"xi-api-key": self.api_key},
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            return await client.request(method, path, **kwargs)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = await self._send(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.error("Voice vendor unreachable: %s %s: %s", method, path, e)
            raise VoiceServiceUnavailable(str(e)) from e

        if response.status_code == 404:
            raise VoiceNotFound(path)
        if response.status_code >= 400:
            logger.error(
                "Voice vendor error %d on %s %s: %.200s",
                response.status_code, method, path, response.text,
            )
            raise VoiceServiceUnavailable(f"vendor returned {response.status_code}")
        return response

    async def list_voices(self) -> list[Voice]:
        response = await self._request("GET", "/v1/voices")
        return [_voice_from_vendor(v) for v in response.json().get("voices", [])]

    async def get_voice(self, voice_id: str) -> Voice:
        response = await self._request("GET", f"/v1/voices/{voice_id}")
        return _voice_from_vendor(response.json())

    async def delete_voice(self, voice_id: str) -> None:
        await self._request("DELETE", f"/v1/voices/{voice_id}")

    def _tts_request(
        self,
        text: str,
        voice_id: Optional[str],
        model_id: Optional[str],
        acoustic: Optional[AcousticSettings],
        output_format: Optional[str],
        stream: bool = False,
    ) -> dict[str, Any]:
        acoustic = acoustic or AcousticSettings()
        path = f"/v1/text-to-speech/{voice_id or DEFAULT_TTS_VOICE_ID}"
        return {
            "url": f"{path}/stream" if stream else path,
            "params": {"output_format": output_format or DEFAULT_OUTPUT_FORMAT},
            "json": {
                "text": text,
                "model_id": model_id or DEFAULT_TTS_MODEL_ID,
                "voice_settings": {
                    "stability": acoustic.stability,
                    "similarity_boost": acoustic.similarity_boost,
                    "style": acoustic.style,
                    "use_speaker_boost": acoustic.use_speaker_boost,
                    "speed": acoustic.speed,
                },
            },
        }

    async def text_to_speech(
        self,
        text: str,
        voice_id: Optional[str] = None,
        model_id: Optional[str] = None,
        acoustic: Optional[AcousticSettings] = None,
        output_format: Optional[str] = None,
    ) -> bytes:
        request = self._tts_request(text, voice_id, model_id, acoustic, output_format)
        response = await self._request("POST", request.pop("url"), **request)
        return response.content

    async def text_to_speech_stream(
        self,
        text: str,
        voice_id: Optional[str] = None,
        model_id: Optional[str] = None,
        acoustic: Optional[AcousticSettings] = None,
        output_format: Optional[str] = None,
    ) -> AsyncIterator[bytes]:
        """Open a streaming synthesis and return an iterator over its audio chunks.

        The vendor status is checked before this returns. Not retried.
        """
        request = self._tts_request(text, voice_id, model_id, acoustic, output_format, stream=True)
        path = request.pop("url")
        client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"xi-api-key": self.api_key},
            timeout=self.timeout,
            transport=self._transport,
        )
        try:
            response = await client.send(client.build_request("POST", path, **request), stream=True)
        except httpx.TransportError as e:
            await client.aclose()
            logger.error("Voice vendor unreachable: POST %s: %s", path, e)
            raise VoiceServiceUnavailable(str(e)) from e

        if response.status_code >= 400:
            body = await response.aread()
            await response.aclose()
            await client.aclose()
            if response.status_code == 404:
                raise VoiceNotFound(path)
            logger.error(
                "Voice vendor error %d on POST %s: %.200s",
                response.status_code, path, body.decode(errors="replace"),
            )
            raise VoiceServiceUnavailable(f"vendor returned {response.status_code}")

        async def chunks() -> AsyncIterator[bytes]:
            try:
                async for chunk in response.aiter_bytes():
                    yield chunk
            finally:
                await response.aclose()
                await client.aclose()

        return chunks()

    async def speech_to_text(
        self, filename: str, content: bytes, content_type: str = "application/octet-stream"
    ) -> TranscriptionResult:
        response = await self._request(
            "POST",
            "/v1/speech-to-text",
            files={"file": (filename, content, content_type)},
            data={
                "model_id": STT_MODEL_ID,
                "timestamps_granularity": "word",
                "tag_audio_events": "true",
            },
        )
        return parse_transcription(response.json())


def get_voice_client() -> VoiceClient:
    """FastAPI dependency; 503s every voice route while no key is configured."""
    if not settings.elevenlabs_api_key:
        raise VoiceServiceUnavailable("ELEVENLABS_API_KEY is not set")
    return VoiceClient(
        settings.elevenlabs_api_key,
        base_url=settings.elevenlabs_base_url,
        timeout=settings.elevenlabs_timeout,
    )
