"""Tests for HTTP-based adapters."""

import asyncio
import json

import httpx
import pytest

from assessment_engine.adapters.openai_language_client import OpenAILanguageClient
from assessment_engine.adapters.openai_speech_client import OpenAISpeechClient
from assessment_engine.client.api_client import HttpxAssessmentApiClient


class _FakeResponses:
    def __init__(self, output_text: str) -> None:
        self.output_text = output_text
        self.last_payload: dict[str, object] | None = None

    async def create(self, **kwargs):  # type: ignore[no-untyped-def]
        self.last_payload = kwargs
        return type("Resp", (), {"output_text": self.output_text})()


class _FakeSpeech:
    def __init__(self, content: bytes) -> None:
        self.content = content
        self.last_payload: dict[str, object] | None = None

    async def create(self, **kwargs):  # type: ignore[no-untyped-def]
        self.last_payload = kwargs
        return type("Resp", (), {"content": self.content})()


class _FakeOpenAI:
    def __init__(self, output_text: str = "", audio: bytes = b"") -> None:
        self.responses = _FakeResponses(output_text)
        self.audio = type("Audio", (), {"speech": _FakeSpeech(audio)})()


def test_openai_language_client_parses_output() -> None:
    fake = _FakeOpenAI(output_text=json.dumps({"question": "Why?"}))
    client = OpenAILanguageClient(client=fake)

    result = asyncio.run(
        client.complete_json(
            model="gpt-4o-mini",
            instructions="Write one question.",
            prompt="Topic: travel",
            schema={"type": "object"},
            schema_name="question",
        )
    )

    assert result == {"question": "Why?"}
    payload = fake.responses.last_payload
    assert payload is not None
    assert payload["text"]["format"]["name"] == "question"
    assert payload["text"]["format"]["strict"] is True
    assert payload["store"] is False


def test_openai_language_client_rejects_empty_output() -> None:
    client = OpenAILanguageClient(client=_FakeOpenAI(output_text=""))

    with pytest.raises(RuntimeError):
        asyncio.run(
            client.complete_json(
                model="gpt-4o-mini",
                instructions="",
                prompt="",
                schema={"type": "object"},
                schema_name="question",
            )
        )


def test_openai_speech_client_returns_audio() -> None:
    fake = _FakeOpenAI(audio=b"mp3-bytes")
    client = OpenAISpeechClient(client=fake)

    audio = asyncio.run(client.synthesize(model="tts-1", voice="alloy", text="Hi"))

    assert audio == b"mp3-bytes"
    assert fake.audio.speech.last_payload == {
        "model": "tts-1",
        "voice": "alloy",
        "input": "Hi",
        "response_format": "mp3",
    }


def test_openai_speech_client_rejects_empty_audio() -> None:
    client = OpenAISpeechClient(client=_FakeOpenAI(audio=b""))

    with pytest.raises(RuntimeError):
        asyncio.run(client.synthesize(model="tts-1", voice="alloy", text="Hi"))


def test_assessment_api_client_sends_owner_header() -> None:
    seen: list[tuple[str, str, str | None]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(
            (request.method, request.url.path, request.headers.get("X-Owner-Id"))
        )
        if request.url.path.startswith("/audio/"):
            return httpx.Response(200, content=b"mp3")
        if request.url.path.endswith("/force-submit"):
            payload = json.loads(request.content.decode())
            assert payload == {"reason": "client_unload"}
        return httpx.Response(200, json={"session_id": "s1"})

    async def scenario() -> tuple[dict[str, object], bytes]:
        client = HttpxAssessmentApiClient(
            base_url="https://assess.example",
            owner_id="owner-1",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        created = await client.create_session()
        await client.force_submit("s1", "client_unload")
        await client.get_results("s1")
        await client.get_feedback("s1")
        audio = await client.get_audio("a1")
        await client.close()
        return created, audio

    created, audio = asyncio.run(scenario())

    assert created == {"session_id": "s1"}
    assert audio == b"mp3"
    assert seen == [
        ("POST", "/sessions", "owner-1"),
        ("POST", "/sessions/s1/force-submit", "owner-1"),
        ("GET", "/sessions/s1/results", "owner-1"),
        ("GET", "/sessions/s1/feedback", "owner-1"),
        ("GET", "/audio/a1", "owner-1"),
    ]


def test_assessment_api_client_raises_on_error_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(410, json={"error": "SESSION_EXPIRED"})

    async def scenario() -> None:
        client = HttpxAssessmentApiClient(
            base_url="https://assess.example/",
            owner_id="owner-1",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        try:
            await client.complete_stage("s1", "reading", 80)
        finally:
            await client.close()

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(scenario())
