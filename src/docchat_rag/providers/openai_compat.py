"""OpenAI-compatible provider — single place to swap model endpoints.

Works against anything that speaks the OpenAI ``/v1`` API:

1. **OpenAI cloud** — set ``OPENAI_API_KEY`` and ``LLM_BASE_URL``.
2. **Ollama** (default) — ``http://localhost:11434/v1``.
3. **vLLM / other gateways** — point ``LLM_BASE_URL`` (and optionally
   ``EMBEDDING_BASE_URL``) at the server.

Clients are built with ``max_retries=0``: every failure surfaces within
one request timeout as :class:`~docchat_rag.errors.UpstreamUnavailableError`.
"""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.messages import BaseMessage
from langchain_openai import ChatOpenAI, OpenAIEmbeddings
from openai import OpenAI

from docchat_rag.errors import UpstreamUnavailableError
from docchat_rag.providers.base import CompletionOptions, CompletionProvider, EmbeddingProvider

logger = logging.getLogger(__name__)


def _content_to_text(content: Any) -> str:
    """Normalise a LangChain message ``content`` (str or list of parts) to text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return str(content or "")


def _has_model(available: set[str], wanted: str) -> bool:
    # Ollama reports tagged names ("llama3.2:latest"), so match on substring.
    return any(wanted in name for name in available)


class OpenAICompatibleProvider(EmbeddingProvider, CompletionProvider):
    """Embedding and completion provider over an OpenAI-compatible API.

    Parameters
    ----------
    base_url:
        Chat completions endpoint root (``…/v1``).
    chat_model:
        Model id used for completions.
    embedding_model:
        Model id used for embeddings.
    api_key:
        API key; a blank key is sent as ``"EMPTY"``.
    embedding_base_url:
        Separate endpoint for embeddings; defaults to *base_url*.
    timeout:
        Per-request timeout in seconds.
    max_concurrency:
        Parallel embedding calls made by :meth:`embed_batch`.
    chat_client, embeddings_client, models_client:
        Pre-built clients; mainly for tests.
    """

    def __init__(
        self,
        *,
        base_url: str,
        chat_model: str,
        embedding_model: str,
        api_key: str = "",
        embedding_base_url: str | None = None,
        timeout: float = 60.0,
        max_concurrency: int = 4,
        chat_client: Any | None = None,
        embeddings_client: Any | None = None,
        models_client: Any | None = None,
    ) -> None:
        EmbeddingProvider.__init__(self, max_concurrency=max_concurrency)
        self.base_url = base_url
        self.embedding_base_url = embedding_base_url or base_url
        self.chat_model = chat_model
        self.embedding_model = embedding_model
        # Local servers don't need a real key; the clients require a non-empty value.
        self._api_key = api_key or "EMPTY"
        self._timeout = timeout

        self._chat = chat_client or ChatOpenAI(
            model=chat_model,
            base_url=base_url,
            api_key=self._api_key,
            timeout=timeout,
            max_retries=0,
        )
        self._embeddings = embeddings_client or OpenAIEmbeddings(
            model=embedding_model,
            base_url=self.embedding_base_url,
            api_key=self._api_key,
            request_timeout=timeout,
            max_retries=0,
            check_embedding_ctx_length=False,
        )
        self._models_client = models_client
        logger.info(
            "Using OpenAI-compatible endpoint %s (chat=%s, embeddings=%s @ %s)",
            base_url,
            chat_model,
            embedding_model,
            self.embedding_base_url,
        )

    # -- EmbeddingProvider ----------------------------------------------------

    def embed(self, text: str) -> list[float]:
        try:
            vector = self._embeddings.embed_query(text)
        except Exception as exc:
            raise UpstreamUnavailableError(f"Embedding request failed: {exc}") from exc
        if not vector:
            raise UpstreamUnavailableError("Embedding service returned an empty vector")
        return [float(v) for v in vector]

    # -- CompletionProvider ---------------------------------------------------

    def complete(
        self,
        messages: list[BaseMessage],
        options: CompletionOptions | None = None,
    ) -> str:
        options = options or CompletionOptions()
        try:
            response = self._chat.invoke(
                messages,
                temperature=options.temperature,
                top_p=options.top_p,
                max_tokens=options.max_tokens,
            )
        except Exception as exc:
            raise UpstreamUnavailableError(f"Completion request failed: {exc}") from exc
        return _content_to_text(getattr(response, "content", response))

    # -- model listing / health -----------------------------------------------

    def _client_for(self, base_url: str) -> Any:
        if self._models_client is not None:
            return self._models_client
        return OpenAI(base_url=base_url, api_key=self._api_key, timeout=self._timeout, max_retries=0)

    def list_models(self) -> list[str]:
        """Model ids served by the chat endpoint (and the embedding endpoint if separate)."""
        urls = [self.base_url]
        if self.embedding_base_url != self.base_url:
            urls.append(self.embedding_base_url)

        names: list[str] = []
        try:
            for url in urls:
                for model in self._client_for(url).models.list():
                    if model.id not in names:
                        names.append(model.id)
        except Exception as exc:
            raise UpstreamUnavailableError(f"Model listing failed: {exc}") from exc
        return names

    def health_check(self) -> bool:
        """``True`` when reachable and both configured models are served."""
        try:
            available = set(self.list_models())
        except UpstreamUnavailableError:
            logger.warning("LLM provider health-check failed", exc_info=True)
            return False

        missing = [
            m for m in (self.chat_model, self.embedding_model) if not _has_model(available, m)
        ]
        if missing:
            logger.warning("LLM provider is missing models: %s", ", ".join(missing))
            return False
        return True
