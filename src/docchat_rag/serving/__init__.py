"""
Serving — FastAPI application exposing document upload and RAG chat.

Run with ``docchat-rag`` (see :func:`docchat_rag.serving.app.main`) or
``uvicorn docchat_rag.serving.app:app``.
"""
