"""AI providers."""

from pathprep.domain.ai.providers.base import CompletionProvider, ProviderError
from pathprep.domain.ai.providers.groq import GroqProvider

__all__ = ["CompletionProvider", "GroqProvider", "ProviderError"]
