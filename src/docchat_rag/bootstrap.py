"""Wire settings into concrete components.

:func:`build_container` is the only place that turns a
:class:`~docchat_rag.config.Settings` into objects; everything below it
receives plain constructor arguments.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine

from docchat_rag.chat.engine import TITLE_OPTIONS, RagQueryEngine
from docchat_rag.config import PLACEHOLDER_CHAT_TITLE, Settings
from docchat_rag.ingestion.extractors import ExtractorRegistry
from docchat_rag.ingestion.pipeline import IngestionPipeline
from docchat_rag.ingestion.worker import IngestionWorker
from docchat_rag.providers.base import CompletionOptions, CompletionProvider, EmbeddingProvider
from docchat_rag.providers.openai_compat import OpenAICompatibleProvider
from docchat_rag.retrieval.base import VectorStoreBase
from docchat_rag.retrieval.chroma_store import ChromaVectorStore
from docchat_rag.retrieval.retriever import SemanticRetriever
from docchat_rag.services.chats import ChatService
from docchat_rag.services.documents import DocumentService
from docchat_rag.storage.database import create_db_engine, create_session_factory, init_schema
from docchat_rag.storage.files import LocalFileStore
from docchat_rag.storage.sql import SqlChatRepository, SqlDocumentRepository

logger = logging.getLogger(__name__)


@dataclass
class Container:
    settings: Settings
    db_engine: Engine
    documents: SqlDocumentRepository
    chats: SqlChatRepository
    files: LocalFileStore
    vector_store: VectorStoreBase
    embedder: EmbeddingProvider
    llm: CompletionProvider
    pipeline: IngestionPipeline
    worker: IngestionWorker
    retriever: SemanticRetriever
    query_engine: RagQueryEngine
    document_service: DocumentService
    chat_service: ChatService

    def close(self) -> None:
        self.worker.shutdown(wait=True)
        self.db_engine.dispose()
        logger.info("Container closed")


def build_container(
    settings: Settings,
    *,
    vector_store: VectorStoreBase | None = None,
    embedder: EmbeddingProvider | None = None,
    llm: CompletionProvider | None = None,
) -> Container:
    """Build every component from *settings*.

    Parameters
    ----------
    settings:
        Validated configuration.
    vector_store / embedder / llm:
        Replacements for the Chroma store and the OpenAI-compatible
        provider (tests inject in-memory fakes here).

    Raises
    ------
    ValidationError
        The vector collection exists with a different dimension.
    UpstreamUnavailableError
        The vector store cannot be reached.
    """
    if vector_store is None:
        vector_store = ChromaVectorStore(
            settings.chroma_collection,
            dimension=settings.embedding_dimension,
            host=settings.chroma_host,
            port=settings.chroma_port,
        )
    # A collection recorded with another dimension fails start-up here.
    vector_store.ensure_collection()

    db_engine = create_db_engine(settings.database_url)
    init_schema(db_engine)
    session_factory = create_session_factory(db_engine)

    documents = SqlDocumentRepository(session_factory)
    chats = SqlChatRepository(session_factory)
    files = LocalFileStore(settings.upload_dir)

    if embedder is None or llm is None:
        provider = OpenAICompatibleProvider(
            base_url=settings.llm_base_url,
            chat_model=settings.llm_model_name,
            embedding_model=settings.embedding_model,
            api_key=settings.openai_api_key,
            embedding_base_url=settings.resolved_embedding_base_url,
            timeout=settings.request_timeout,
            max_concurrency=settings.embedding_concurrency,
        )
        embedder = embedder or provider
        llm = llm or provider

    pipeline = IngestionPipeline(
        documents,
        vector_store,
        embedder,
        files,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
        extractors=ExtractorRegistry(),
    )
    worker = IngestionWorker(pipeline, documents, max_workers=settings.ingestion_workers)
    retriever = SemanticRetriever(vector_store, embedder, default_k=settings.retrieval_top_k)
    query_engine = RagQueryEngine(
        chats,
        retriever,
        llm,
        top_k=settings.retrieval_top_k,
        history_window=settings.history_window,
        generation_options=CompletionOptions(
            temperature=settings.chat_temperature,
            top_p=settings.chat_top_p,
            max_tokens=settings.chat_max_tokens,
        ),
        title_options=TITLE_OPTIONS,
        placeholder_title=PLACEHOLDER_CHAT_TITLE,
    )

    logger.info(
        "Container ready (db=%s, collection=%s, model=%s)",
        db_engine.url.render_as_string(hide_password=True),
        vector_store.collection_name,
        settings.llm_model_name,
    )
    return Container(
        settings=settings,
        db_engine=db_engine,
        documents=documents,
        chats=chats,
        files=files,
        vector_store=vector_store,
        embedder=embedder,
        llm=llm,
        pipeline=pipeline,
        worker=worker,
        retriever=retriever,
        query_engine=query_engine,
        document_service=DocumentService(
            documents, files, worker, max_file_size=settings.max_file_size
        ),
        chat_service=ChatService(chats, query_engine, placeholder_title=PLACEHOLDER_CHAT_TITLE),
    )
