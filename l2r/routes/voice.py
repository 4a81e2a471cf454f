"""
voice.py - Text-to-speech, speech-to-text and pronunciation checks

Thin pass-through to the vendor client. Vendor failures are raised as
VoiceServiceUnavailable / VoiceNotFound and rendered by the app-level
exception handlers (503 / 404).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile
from fastapi.responses import StreamingResponse

from l2r.models.voice import TTSRequest
from l2r.routes.auth import AuthUser, require_user
from l2r.services.pronunciation import check_pronunciation
from l2r.services.voice_client import VoiceClient, first_channel, get_voice_client, to_transcript

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/voice", tags=["voice"])


async def _read_audio(audio: Optional[UploadFile]) -> tuple[str, bytes, str]:
    if audio is None:
        raise HTTPException(status_code=400, detail="audio file is required")
    content = await audio.read()
    if not content:
        raise HTTPException(status_code=400, detail="audio file is required")
    return audio.filename or "audio", content, audio.content_type or "application/octet-stream"


@router.get("/voices")
async def list_voices(
    auth: AuthUser = Depends(require_user),
    client: VoiceClient = Depends(get_voice_client),
):
    voices = await client.list_voices()
    return {"voices": [v.model_dump(by_alias=True, exclude_none=True) for v in voices]}


@router.get("/voices/{voice_id}")
async def get_voice(
    voice_id: str,
    auth: AuthUser = Depends(require_user),
    client: VoiceClient = Depends(get_voice_client),
):
    voice = await client.get_voice(voice_id)
    return voice.model_dump(by_alias=True, exclude_none=True)


@router.delete("/voices/{voice_id}")
async def delete_voice(
    voice_id: str,
    auth: AuthUser = Depends(require_user),
    client: VoiceClient = Depends(get_voice_client),
):
    await client.delete_voice(voice_id)
    logger.info("User %s deleted voice %s", auth.user_id, voice_id)
    return {"success": True}


@router.post("/tts")
async def text_to_speech(
    body: TTSRequest,
    auth: AuthUser = Depends(require_user),
    client: VoiceClient = Depends(get_voice_client),
):
    if not body.text:
        raise HTTPException(status_code=400, detail="text is required")

    audio = await client.text_to_speech(
        body.text,
        voice_id=body.voice_id,
        model_id=body.model_id,
        acoustic=body.voice_settings,
        output_format=body.output_format,
    )
    return Response(content=audio, media_type="audio/mpeg")


@router.post("/tts/stream")
async def text_to_speech_stream(
    body: TTSRequest,
    auth: AuthUser = Depends(require_user),
    client: VoiceClient = Depends(get_voice_client),
):
    if not body.voice_id or not body.text:
        raise HTTPException(status_code=400, detail="voiceId and text are required")

    chunks = await client.text_to_speech_stream(
        body.text,
        voice_id=body.voice_id,
        model_id=body.model_id,
        acoustic=body.voice_settings,
        output_format=body.output_format,
    )
    return StreamingResponse(chunks, media_type="audio/mpeg")


@router.post("/stt")
async def speech_to_text(
    audio: Optional[UploadFile] = File(None),
    auth: AuthUser = Depends(require_user),
    client: VoiceClient = Depends(get_voice_client),
):
    filename, content, content_type = await _read_audio(audio)
    result = await client.speech_to_text(filename, content, content_type)
    return to_transcript(first_channel(result)).model_dump(by_alias=True)


@router.post("/pronunciation-check")
async def pronunciation_check(
    audio: Optional[UploadFile] = File(None),
    expected_word: Optional[str] = Form(None, alias="expectedWord"),
    auth: AuthUser = Depends(require_user),
    client: VoiceClient = Depends(get_voice_client),
):
    filename, content, content_type = await _read_audio(audio)
    if not expected_word:
        raise HTTPException(status_code=400, detail="expectedWord is required")

    result = await client.speech_to_text(filename, content, content_type)
    transcript = to_transcript(first_channel(result))
    return check_pronunciation(transcript, expected_word).model_dump(by_alias=True)
