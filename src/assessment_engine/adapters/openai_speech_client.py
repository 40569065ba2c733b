"""OpenAI text-to-speech client for stage audio."""

from dataclasses import dataclass

from openai import AsyncOpenAI

from assessment_engine.services.collaborators import SpeechClient


@dataclass
class OpenAISpeechClient(SpeechClient):
    """Speech client backed by the OpenAI audio API."""

    client: AsyncOpenAI

    @classmethod
    def create(cls, api_key: str) -> "OpenAISpeechClient":
        """Create an OpenAI speech client."""
        return cls(client=AsyncOpenAI(api_key=api_key))

    async def synthesize(self, *, model: str, voice: str, text: str) -> bytes:
        """Return MP3 audio for ``text``."""
        response = await self.client.audio.speech.create(
            model=model,
            voice=voice,
            input=text,
            response_format="mp3",
        )
        audio = response.content
        if not audio:
            raise RuntimeError("OpenAI returned empty audio")
        return audio

    async def close(self) -> None:
        await self.client.close()
