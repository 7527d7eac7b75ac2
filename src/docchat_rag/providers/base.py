"""Provider interfaces for embeddings and chat completions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from langchain_core.messages import BaseMessage


@dataclass(frozen=True)
class CompletionOptions:
    temperature: float = 0.7
    top_p: float = 0.9
    max_tokens: int = 2000


class EmbeddingProvider(ABC):
    """Text → fixed-length vector.

    Parameters
    ----------
    max_concurrency:
        Upper bound on parallel :meth:`embed` calls made by the default
        :meth:`embed_batch`.
    """

    def __init__(self, max_concurrency: int = 4) -> None:
        self.max_concurrency = max(1, max_concurrency)

    @abstractmethod
    def embed(self, text: str) -> list[float]: ...

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed every text; the result is positionally aligned with *texts*.

        The first failure propagates and the remaining results are discarded.
        """
        if not texts:
            return []
        if len(texts) == 1 or self.max_concurrency == 1:
            return [self.embed(t) for t in texts]

        workers = min(self.max_concurrency, len(texts))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="embed") as pool:
            return list(pool.map(self.embed, texts))

    @abstractmethod
    def health_check(self) -> bool: ...


class CompletionProvider(ABC):
    """Message list → generated text."""

    @abstractmethod
    def complete(
        self,
        messages: list[BaseMessage],
        options: CompletionOptions | None = None,
    ) -> str: ...

    @abstractmethod
    def health_check(self) -> bool: ...
