"""
Providers — embedding and chat-completion backends.

- :class:`EmbeddingProvider`, :class:`CompletionProvider` — abstract interfaces.
- :class:`OpenAICompatibleProvider` — both, over any OpenAI-compatible ``/v1`` API.
"""

from docchat_rag.providers.base import CompletionOptions, CompletionProvider, EmbeddingProvider
from docchat_rag.providers.openai_compat import OpenAICompatibleProvider

__all__ = [
    "CompletionOptions",
    "CompletionProvider",
    "EmbeddingProvider",
    "OpenAICompatibleProvider",
]
