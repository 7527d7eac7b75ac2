"""
Ingestion — text extraction, chunking, embedding and persistence of
uploaded documents.

The pipeline turns one stored upload into chunk rows plus vectors and
drives the document through its status state machine; the worker runs
it in the background.
"""
