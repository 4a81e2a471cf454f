"""Tests for the voice routes, transcript parsing and the vendor client."""

import asyncio
import json
import math

import httpx
import pytest

from l2r.models.voice import AcousticSettings, SingleChannelResult, MultiChannelResult, Voice
from l2r.services.voice_client import (
    STT_MODEL_ID,
    VoiceClient,
    VoiceNotFound,
    VoiceServiceUnavailable,
    first_channel,
    get_voice_client,
    parse_transcription,
    to_transcript,
)

SINGLE_PAYLOAD = {
    "text": "cat",
    "language_code": "en",
    "language_probability": 0.98,
    "words": [
        {"text": "cat", "start": 0.1, "end": 0.4, "type": "word", "logprob": -0.1},
        {"text": "(cough)", "start": 0.5, "end": 0.7, "type": "audio_event", "logprob": -2.0},
    ],
}


class FakeVoiceClient:
    def __init__(self, transcript_payload=None, missing_voice=None):
        self.transcript_payload = transcript_payload or SINGLE_PAYLOAD
        self.missing_voice = missing_voice
        self.tts_calls = []
        self.stt_calls = []

    async def list_voices(self):
        return [Voice(voice_id="v1", name="Bella", category="premade")]

    async def get_voice(self, voice_id):
        if voice_id == self.missing_voice:
            raise VoiceNotFound(voice_id)
        return Voice(voice_id=voice_id, name="Bella")

    async def delete_voice(self, voice_id):
        if voice_id == self.missing_voice:
            raise VoiceNotFound(voice_id)

    async def text_to_speech(self, text, voice_id=None, model_id=None, acoustic=None, output_format=None):
        self.tts_calls.append({"text": text, "voice_id": voice_id, "acoustic": acoustic})
        return b"ID3-fake-mp3"

    async def text_to_speech_stream(self, text, voice_id=None, model_id=None, acoustic=None, output_format=None):
        if voice_id == self.missing_voice:
            raise VoiceNotFound(voice_id)
        self.tts_calls.append({"text": text, "voice_id": voice_id, "acoustic": acoustic})

        async def chunks():
            for chunk in (b"ID3-", b"fake-", b"mp3"):
                yield chunk

        return chunks()

    async def speech_to_text(self, filename, content, content_type="application/octet-stream"):
        self.stt_calls.append((filename, content, content_type))
        return parse_transcription(self.transcript_payload)


@pytest.fixture
def fake_voice(client):
    from l2r.server import app

    fake = FakeVoiceClient()
    app.dependency_overrides[get_voice_client] = lambda: fake
    return fake


class TestVoiceRoutes:
    def test_unconfigured_vendor_is_503(self, client, auth_headers):
        res = client.get("/api/voice/voices", headers=auth_headers)
        assert res.status_code == 503
        assert res.json() == {"error": "Voice service unavailable"}

    def test_requires_auth(self, client):
        assert client.post("/api/voice/tts", json={"text": "hi"}).status_code == 401

    def test_list_and_get_voices(self, client, auth_headers, fake_voice):
        voices = client.get("/api/voice/voices", headers=auth_headers).json()["voices"]
        assert voices == [{"voiceId": "v1", "name": "Bella", "category": "premade"}]

        voice = client.get("/api/voice/voices/v9", headers=auth_headers).json()
        assert voice["voiceId"] == "v9"

    def test_unknown_voice_is_404(self, client, auth_headers, fake_voice):
        fake_voice.missing_voice = "gone"
        res = client.get("/api/voice/voices/gone", headers=auth_headers)
        assert res.status_code == 404
        assert res.json() == {"error": "Voice not found"}
        assert client.delete("/api/voice/voices/gone", headers=auth_headers).status_code == 404

    def test_delete_voice(self, client, auth_headers, fake_voice):
        res = client.delete("/api/voice/voices/v1", headers=auth_headers)
        assert res.json() == {"success": True}

    def test_tts_returns_audio(self, client, auth_headers, fake_voice):
        res = client.post(
            "/api/voice/tts",
            json={"text": "Hello", "voiceId": "abc", "voiceSettings": {"speed": 0.8}},
            headers=auth_headers,
        )
        assert res.status_code == 200
        assert res.headers["content-type"] == "audio/mpeg"
        assert res.content == b"ID3-fake-mp3"

        call = fake_voice.tts_calls[0]
        assert call["voice_id"] == "abc"
        assert call["acoustic"].speed == 0.8
        assert call["acoustic"].stability == 0.5

    def test_tts_requires_text(self, client, auth_headers, fake_voice):
        res = client.post("/api/voice/tts", json={}, headers=auth_headers)
        assert res.status_code == 400
        assert res.json() == {"error": "text is required"}

    def test_tts_stream_returns_chunked_audio(self, client, auth_headers, fake_voice):
        res = client.post(
            "/api/voice/tts/stream",
            json={"text": "Hello", "voiceId": "abc"},
            headers=auth_headers,
        )
        assert res.status_code == 200
        assert res.headers["content-type"] == "audio/mpeg"
        assert res.content == b"ID3-fake-mp3"
        assert fake_voice.tts_calls[0]["voice_id"] == "abc"

    @pytest.mark.parametrize("body", [{"text": "Hello"}, {"voiceId": "abc"}, {"voiceId": "abc", "text": ""}])
    def test_tts_stream_requires_voice_and_text(self, client, auth_headers, fake_voice, body):
        res = client.post("/api/voice/tts/stream", json=body, headers=auth_headers)
        assert res.status_code == 400
        assert res.json() == {"error": "voiceId and text are required"}
        assert fake_voice.tts_calls == []

    def test_tts_stream_unknown_voice_is_404(self, client, auth_headers, fake_voice):
        fake_voice.missing_voice = "gone"
        res = client.post(
            "/api/voice/tts/stream",
            json={"text": "Hello", "voiceId": "gone"},
            headers=auth_headers,
        )
        assert res.status_code == 404
        assert res.json() == {"error": "Voice not found"}

    def test_stt_returns_camel_case_transcript(self, client, auth_headers, fake_voice):
        res = client.post(
            "/api/voice/stt",
            files={"audio": ("word.webm", b"\x1a\x45\xdf\xa3", "audio/webm")},
            headers=auth_headers,
        )
        assert res.status_code == 200
        body = res.json()
        assert body["text"] == "cat"
        assert body["languageCode"] == "en"
        assert body["languageConfidence"] == pytest.approx(0.98)
        assert body["words"][0]["confidence"] == pytest.approx(math.exp(-0.1))
        assert fake_voice.stt_calls == [("word.webm", b"\x1a\x45\xdf\xa3", "audio/webm")]

    def test_stt_requires_audio(self, client, auth_headers, fake_voice):
        res = client.post("/api/voice/stt", data={"x": "y"}, headers=auth_headers)
        assert res.status_code == 400
        assert res.json() == {"error": "audio file is required"}

    def test_pronunciation_check(self, client, auth_headers, fake_voice):
        res = client.post(
            "/api/voice/pronunciation-check",
            files={"audio": ("word.webm", b"audio", "audio/webm")},
            data={"expectedWord": "Cat"},
            headers=auth_headers,
        )
        assert res.status_code == 200
        body = res.json()
        assert body["isCorrect"] is True
        assert body["transcribed"] == "cat"
        assert body["expected"] == "Cat"
        # Only the real word counts towards confidence
        assert body["confidence"] == pytest.approx(math.exp(-0.1))
        assert body["feedback"]

    def test_pronunciation_check_requires_expected_word(self, client, auth_headers, fake_voice):
        res = client.post(
            "/api/voice/pronunciation-check",
            files={"audio": ("word.webm", b"audio", "audio/webm")},
            headers=auth_headers,
        )
        assert res.status_code == 400
        assert res.json() == {"error": "expectedWord is required"}


class TestTranscriptParsing:
    def test_single_channel(self):
        result = parse_transcription(SINGLE_PAYLOAD)
        assert isinstance(result, SingleChannelResult)
        assert first_channel(result).text == "cat"

    def test_multichannel_reports_first_channel(self):
        payload = {"transcripts": [{"text": "left", "words": []}, {"text": "right", "words": []}]}
        result = parse_transcription(payload)
        assert isinstance(result, MultiChannelResult)
        assert len(result.transcripts) == 2
        assert to_transcript(first_channel(result)).text == "left"

    def test_empty_multichannel(self):
        result = parse_transcription({"transcripts": []})
        assert first_channel(result).text == ""

    def test_confidence_is_exp_logprob(self):
        transcript = to_transcript(first_channel(parse_transcription(SINGLE_PAYLOAD)))
        assert transcript.words[0].confidence == pytest.approx(math.exp(-0.1))
        assert transcript.words[1].type == "audio_event"


class TestPronunciation:
    def _transcript(self, text, logprobs=()):
        payload = {"text": text, "words": [{"text": text, "type": "word", "logprob": lp} for lp in logprobs]}
        return to_transcript(first_channel(parse_transcription(payload)))

    def test_match_is_case_and_whitespace_insensitive(self):
        from l2r.services.pronunciation import is_match

        assert is_match("  CAT ", "cat")
        assert is_match("the cat sat", "cat")
        assert not is_match("dog", "cat")

    def test_wrong_word_gets_encouraging_feedback(self):
        from l2r.services.pronunciation import ENCOURAGING_FEEDBACK, check_pronunciation

        result = check_pronunciation(self._transcript("dog", [0.0]), "cat")
        assert result.is_correct is False
        assert result.feedback in [f.format(word="cat") for f in ENCOURAGING_FEEDBACK]

    def test_right_word_gets_positive_feedback(self):
        from l2r.services.pronunciation import POSITIVE_FEEDBACK, check_pronunciation

        result = check_pronunciation(self._transcript("cat", [0.0]), "cat")
        assert result.is_correct is True
        assert result.feedback in POSITIVE_FEEDBACK
        assert result.confidence == pytest.approx(1.0)

    def test_no_words_means_zero_confidence(self):
        from l2r.services.pronunciation import check_pronunciation

        assert check_pronunciation(self._transcript(""), "cat").confidence == 0.0


class TestVoiceClient:
    def _client(self, handler):
        return VoiceClient("test-key", base_url="https://vendor.test", transport=httpx.MockTransport(handler))

    def test_tts_request_shape(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["key"] = request.headers["xi-api-key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=b"mp3-bytes")

        audio = asyncio.run(self._client(handler).text_to_speech(
            "Hi", acoustic=AcousticSettings(speed=1.2)
        ))
        assert audio == b"mp3-bytes"
        assert seen["key"] == "test-key"
        assert seen["url"].startswith("https://vendor.test/v1/text-to-speech/")
        assert "output_format=mp3_44100_128" in seen["url"]
        assert seen["body"]["text"] == "Hi"
        assert seen["body"]["model_id"] == "eleven_multilingual_v2"
        assert seen["body"]["voice_settings"]["speed"] == 1.2
        assert seen["body"]["voice_settings"]["stability"] == 0.5

    def test_tts_stream_yields_vendor_chunks(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, content=b"chunk-one|chunk-two")

        async def collect():
            chunks = await self._client(handler).text_to_speech_stream("Hi", voice_id="v9")
            return b"".join([chunk async for chunk in chunks])

        assert asyncio.run(collect()) == b"chunk-one|chunk-two"
        assert seen["path"] == "/v1/text-to-speech/v9/stream"
        assert seen["body"]["text"] == "Hi"
        assert seen["body"]["voice_settings"]["stability"] == 0.5

    @pytest.mark.parametrize("status, error", [(404, VoiceNotFound), (500, VoiceServiceUnavailable)])
    def test_tts_stream_vendor_errors_raise_before_streaming(self, status, error):
        client = self._client(lambda request: httpx.Response(status, text="nope"))
        with pytest.raises(error):
            asyncio.run(client.text_to_speech_stream("Hi", voice_id="v9"))

    def test_tts_stream_transport_error_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(VoiceServiceUnavailable):
            asyncio.run(self._client(handler).text_to_speech_stream("Hi"))

    def test_stt_sends_multipart_with_model(self):
        seen = {}

        def handler(request):
            seen["content_type"] = request.headers["content-type"]
            seen["body"] = request.content
            return httpx.Response(200, json=SINGLE_PAYLOAD)

        result = asyncio.run(self._client(handler).speech_to_text("w.webm", b"abc", "audio/webm"))
        assert isinstance(result, SingleChannelResult)
        assert seen["content_type"].startswith("multipart/form-data")
        assert STT_MODEL_ID.encode() in seen["body"]
        assert b'name="timestamps_granularity"' in seen["body"]

    def test_vendor_404_is_voice_not_found(self):
        client = self._client(lambda request: httpx.Response(404, json={"detail": "missing"}))
        with pytest.raises(VoiceNotFound):
            asyncio.run(client.get_voice("nope"))

    def test_vendor_error_is_unavailable(self):
        client = self._client(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(VoiceServiceUnavailable):
            asyncio.run(client.list_voices())

    def test_transport_errors_are_retried_then_unavailable(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(VoiceServiceUnavailable):
            asyncio.run(self._client(handler).list_voices())
        assert calls["n"] == 3

    def test_list_voices_maps_fields(self):
        def handler(request):
            return httpx.Response(200, json={"voices": [
                {"voice_id": "a", "name": "Rachel", "labels": {"accent": "american"}},
                {"voice_id": "b"},
            ]})

        voices = asyncio.run(self._client(handler).list_voices())
        assert [v.voice_id for v in voices] == ["a", "b"]
        assert voices[0].labels == {"accent": "american"}
        assert voices[1].name == "Unknown"
