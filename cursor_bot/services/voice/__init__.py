"""Voice provider factory."""

from cursor_bot.core.config import settings
from cursor_bot.services.voice.base import BaseSTTProvider


def get_stt_provider() -> BaseSTTProvider | None:
    """Returns the Gemini transcription provider, or None without a credential."""
    if not settings.stt_api_key:
        return None
    from cursor_bot.services.voice.gemini_stt import GeminiSTTProvider
    return GeminiSTTProvider()
