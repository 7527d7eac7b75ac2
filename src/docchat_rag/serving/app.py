"""FastAPI application exposing document ingestion and RAG chat as a REST API.

The caller's identity arrives in the ``X-Owner-Id`` header; authentication
happens upstream of this service.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, File, Header, Request, UploadFile
from fastapi.responses import JSONResponse

from docchat_rag.bootstrap import Container, build_container
from docchat_rag.config import configure_logging, get_settings
from docchat_rag.errors import (
    AccessDeniedError,
    DocChatError,
    GenerationFailure,
    IllegalTransitionError,
    NotFoundError,
    ProcessingFailure,
    UpstreamUnavailableError,
    ValidationError,
)
from docchat_rag.retrieval.models import MetadataFilter
from docchat_rag.serving.schemas import (
    ChatDetailOut,
    ChatOut,
    CreateChatRequest,
    DocumentOut,
    MessageOut,
    ReprocessResponse,
    SendMessageRequest,
    SendMessageResponse,
    UploadResponse,
    VectorInfoResponse,
)

logger = logging.getLogger(__name__)

# Checked in order; subclasses before their bases.
_STATUS_BY_ERROR: list[tuple[type[DocChatError], int]] = [
    (ValidationError, 400),
    (AccessDeniedError, 403),
    (NotFoundError, 404),
    (IllegalTransitionError, 409),
    (ProcessingFailure, 422),
    (GenerationFailure, 502),
    (UpstreamUnavailableError, 503),
]


def status_for(exc: DocChatError) -> int:
    for error_cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status
    return 500


def create_app(container: Container | None = None) -> FastAPI:
    """Build the API.

    Parameters
    ----------
    container:
        Pre-built components.  When omitted they are built from
        :func:`~docchat_rag.config.get_settings` at startup (or on first
        use when the app runs without its lifespan) and closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.container is None:
            app.state.container = build_container(get_settings())
        yield
        if app.state.owns_container and app.state.container is not None:
            app.state.container.close()

    app = FastAPI(
        title="DocChat RAG API",
        version="0.1.0",
        description="Document ingestion and retrieval-augmented chat.",
        lifespan=lifespan,
    )
    app.state.container = container
    app.state.owns_container = container is None

    @app.exception_handler(DocChatError)
    async def _domain_error(_request: Request, exc: DocChatError) -> JSONResponse:
        status = status_for(exc)
        if status >= 500:
            logger.error("%s: %s", type(exc).__name__, exc)
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    def get_container(request: Request) -> Container:
        if request.app.state.container is None:
            request.app.state.container = build_container(get_settings())
        return request.app.state.container

    # ── Diagnostics ───────────────────────────────────────────────────

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "ok"}

    @app.get("/health/ready")
    def ready(c: Container = Depends(get_container)) -> JSONResponse:
        """Readiness: the model provider and the vector store must both be healthy."""
        checks = {
            "llm": c.llm.health_check(),
            "embeddings": c.embedder.health_check() if c.embedder is not c.llm else None,
            "vector_store": c.vector_store.health_check(),
        }
        healthy = all(v for v in checks.values() if v is not None)
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={"status": "ok" if healthy else "degraded", "checks": checks},
        )

    @app.get("/vectors/info", response_model=VectorInfoResponse)
    def vector_info(
        owner_id: str = Header(alias="X-Owner-Id"),
        c: Container = Depends(get_container),
    ) -> VectorInfoResponse:
        return VectorInfoResponse(
            collection=c.vector_store.get_info(),
            owner_vectors=c.vector_store.count([MetadataFilter.equals("owner_id", owner_id)]),
        )

    @app.get("/models")
    def models(c: Container = Depends(get_container)) -> dict[str, Any]:
        list_models = getattr(c.llm, "list_models", None)
        return {"models": list_models() if list_models else []}

    # ── Documents ─────────────────────────────────────────────────────

    @app.post("/documents", response_model=UploadResponse, status_code=201)
    def upload_document(
        file: UploadFile = File(...),
        owner_id: str = Header(alias="X-Owner-Id"),
        c: Container = Depends(get_container),
    ) -> UploadResponse:
        data = file.file.read()
        document, _ = c.document_service.upload(owner_id, file.filename, file.content_type, data)
        return UploadResponse(document=DocumentOut.from_row(document))

    @app.get("/documents", response_model=list[DocumentOut])
    def list_documents(
        owner_id: str = Header(alias="X-Owner-Id"),
        c: Container = Depends(get_container),
    ) -> list[DocumentOut]:
        return [
            DocumentOut.from_row(doc, count)
            for doc, count in c.document_service.list_documents(owner_id)
        ]

    @app.get("/documents/{document_id}", response_model=DocumentOut)
    def get_document(
        document_id: str,
        owner_id: str = Header(alias="X-Owner-Id"),
        c: Container = Depends(get_container),
    ) -> DocumentOut:
        document, count = c.document_service.get_document(owner_id, document_id)
        return DocumentOut.from_row(document, count)

    @app.delete("/documents/{document_id}", status_code=204)
    def delete_document(
        document_id: str,
        owner_id: str = Header(alias="X-Owner-Id"),
        c: Container = Depends(get_container),
    ) -> None:
        c.document_service.delete_document(owner_id, document_id)

    @app.post("/documents/{document_id}/reprocess", response_model=ReprocessResponse, status_code=202)
    def reprocess_document(
        document_id: str,
        owner_id: str = Header(alias="X-Owner-Id"),
        c: Container = Depends(get_container),
    ) -> ReprocessResponse:
        c.document_service.reprocess_document(owner_id, document_id)
        return ReprocessResponse(document_id=document_id)

    # ── Chats ─────────────────────────────────────────────────────────

    @app.post("/chats", response_model=ChatOut, status_code=201)
    def create_chat(
        request: CreateChatRequest | None = None,
        owner_id: str = Header(alias="X-Owner-Id"),
        c: Container = Depends(get_container),
    ) -> ChatOut:
        title = request.title if request else None
        return ChatOut.from_row(c.chat_service.create_chat(owner_id, title))

    @app.get("/chats", response_model=list[ChatOut])
    def list_chats(
        owner_id: str = Header(alias="X-Owner-Id"),
        c: Container = Depends(get_container),
    ) -> list[ChatOut]:
        return [ChatOut.from_row(chat) for chat in c.chat_service.list_chats(owner_id)]

    @app.get("/chats/{chat_id}", response_model=ChatDetailOut)
    def get_chat(
        chat_id: str,
        owner_id: str = Header(alias="X-Owner-Id"),
        c: Container = Depends(get_container),
    ) -> ChatDetailOut:
        chat, messages = c.chat_service.get_chat(owner_id, chat_id)
        return ChatDetailOut(
            **ChatOut.from_row(chat).model_dump(),
            messages=[MessageOut.from_row(m) for m in messages],
        )

    @app.delete("/chats/{chat_id}", status_code=204)
    def delete_chat(
        chat_id: str,
        owner_id: str = Header(alias="X-Owner-Id"),
        c: Container = Depends(get_container),
    ) -> None:
        c.chat_service.delete_chat(owner_id, chat_id)

    @app.post("/chats/{chat_id}/messages", response_model=SendMessageResponse)
    def send_message(
        chat_id: str,
        request: SendMessageRequest,
        owner_id: str = Header(alias="X-Owner-Id"),
        c: Container = Depends(get_container),
    ) -> SendMessageResponse:
        result = c.chat_service.send_message(owner_id, chat_id, request.content)
        return SendMessageResponse.from_result(result)

    return app


app = create_app()


def main() -> None:
    """Run the API under uvicorn."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
