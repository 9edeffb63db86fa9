"""LLM provider factory."""

from projectchat.core.config import settings
from projectchat.services.llm.base import BaseLLMProvider, ChatTurn

__all__ = ["BaseLLMProvider", "ChatTurn", "get_llm_provider"]


def get_llm_provider() -> BaseLLMProvider:
    """Factory function that returns the configured LLM provider."""
    if settings.llm_provider == "gemini":
        from projectchat.services.llm.gemini import GeminiProvider
        return GeminiProvider()
    else:
        raise ValueError(f"Unknown LLM provider: {settings.llm_provider}")
