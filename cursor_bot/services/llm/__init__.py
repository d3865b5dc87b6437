"""LLM provider factory."""

from cursor_bot.services.llm.base import BaseLLMProvider


def get_llm_provider() -> BaseLLMProvider:
    """Factory function that returns the configured LLM provider."""
    from cursor_bot.services.llm.gemini import GeminiProvider
    return GeminiProvider()
