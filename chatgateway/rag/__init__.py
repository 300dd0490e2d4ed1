"""Retrieval over the owner's ingested document chunks."""

from chatgateway.rag.assembler import (
    CONTEXT_PREAMBLE,
    RagContextAssembler,
    RagResult,
    render_context,
)
from chatgateway.rag.embeddings import EmbeddingService, OpenAIEmbeddingService
from chatgateway.rag.vector_store import (
    AttachmentRecord,
    AttachmentStatus,
    ChunkRecord,
    InMemoryVectorStore,
    ScoredChunk,
    VectorStore,
)

__all__ = [
    "AttachmentRecord",
    "AttachmentStatus",
    "CONTEXT_PREAMBLE",
    "ChunkRecord",
    "EmbeddingService",
    "InMemoryVectorStore",
    "OpenAIEmbeddingService",
    "RagContextAssembler",
    "RagResult",
    "ScoredChunk",
    "VectorStore",
    "render_context",
]
