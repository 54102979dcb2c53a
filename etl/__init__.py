"""
Ingestion pipeline for the Course Tutor RAG service
Provides file fetching, text chunking and embedding capabilities
"""

from .text_chunker import (
    chunk_text,
    DEFAULT_MAX_CHARS
)

from .vector_embedder import (
    VectorEmbedder,
    EmbeddingCache
)

from .file_fetcher import StorageFileFetcher

__all__ = [
    # Chunking
    'chunk_text',
    'DEFAULT_MAX_CHARS',

    # Vector embedding
    'VectorEmbedder',
    'EmbeddingCache',

    # Storage
    'StorageFileFetcher'
]
