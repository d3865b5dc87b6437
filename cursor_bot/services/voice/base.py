"""Abstract voice provider interface for STT."""

from abc import ABC, abstractmethod

from pydantic import BaseModel


class Transcription(BaseModel):
    text: str
    tldr: str | None = None  # only for long messages


class BaseSTTProvider(ABC):
    @abstractmethod
    async def transcribe(self, audio_data: bytes, mime_type: str = "audio/ogg") -> Transcription:
        """Transcribe audio data to text."""
        ...
