"""Gemini speech-to-text provider using a multimodal generate call."""

import asyncio
import logging

from google import genai
from google.genai import types

from cursor_bot.core.config import settings
from cursor_bot.services.voice.base import BaseSTTProvider, Transcription

logger = logging.getLogger(__name__)

TRANSCRIPTION_TIMEOUT = 60.0  # seconds

TRANSCRIPTION_PROMPT = """You are an audio transcription robot. Convert the spoken audio of a Telegram voice message into written text.

Rules:
- Transcribe in the exact language spoken. Do not translate.
- Capture all spoken words. Apply standard punctuation, capitalization and paragraphs.
- Remove filler words ("um", "uh", "like" and their equivalents in other languages).
- Format spoken lists as numbered lists and spoken numbers as digits.
- Output only the transcription. No introductions, summaries or disclaimers in the text field.

If the transcription is longer than 300 characters, also fill "tldr" with a single sentence of 20-30 words
in the same language, perspective and voice as the speaker. Otherwise leave "tldr" null."""


class GeminiSTTProvider(BaseSTTProvider):
    def __init__(self, api_key: str | None = None, model: str | None = None):
        self.client = genai.Client(api_key=api_key or settings.stt_api_key)
        self.model = model or settings.transcription_model

    async def transcribe(self, audio_data: bytes, mime_type: str = "audio/ogg") -> Transcription:
        logger.info(f"Transcribing {len(audio_data)} bytes of {mime_type} audio")
        response = await asyncio.wait_for(
            self.client.aio.models.generate_content(
                model=self.model,
                contents=[
                    types.Part.from_bytes(data=audio_data, mime_type=mime_type),
                    "Transcribe this audio.",
                ],
                config=types.GenerateContentConfig(
                    system_instruction=TRANSCRIPTION_PROMPT,
                    response_mime_type="application/json",
                    response_schema=Transcription,
                ),
            ),
            timeout=TRANSCRIPTION_TIMEOUT,
        )

        if isinstance(response.parsed, Transcription):
            return response.parsed
        return Transcription.model_validate_json(response.text or "{}")
