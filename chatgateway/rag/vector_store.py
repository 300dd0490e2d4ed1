"""Chunk index contract and an in-memory implementation.

Chunks are produced by an external ingestion worker. The gateway only reads
them, and only once their owning attachment is ``ready``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from math import sqrt
from typing import Optional, Protocol, Sequence


class AttachmentStatus(str, Enum):
    """Ingestion state of an uploaded document."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class AttachmentRecord:
    """An uploaded document owned by one user."""

    id: str
    owner_id: str
    filename: str
    status: AttachmentStatus = AttachmentStatus.READY
    mime_type: str = "text/plain"


@dataclass(frozen=True)
class ChunkRecord:
    """A slice of an attachment with its embedding vector."""

    attachment_id: str
    chunk_index: int
    content: str
    embedding: tuple[float, ...] = field(default=(), repr=False)


@dataclass(frozen=True)
class ScoredChunk:
    """A chunk paired with its attachment's filename and similarity."""

    chunk: ChunkRecord
    filename: str
    similarity: float


class VectorStore(Protocol):
    """Minimal chunk index contract for retrieval."""

    async def ready_attachment_ids(
        self, owner_id: str, attachment_ids: Optional[Sequence[str]] = None
    ) -> list[str]:
        """Attachments in scope: the given ids, or all, filtered to the owner's ready ones."""

    async def similarity_search(
        self, query_embedding: Sequence[float], attachment_ids: Sequence[str], k: int
    ) -> list[ScoredChunk]:
        """Top-k chunks from the given attachments, most similar first."""

    async def get_attachment(self, attachment_id: str, owner_id: str) -> Optional[AttachmentRecord]:
        """Fetch an attachment if the owner has access to it."""

    async def get_chunks(self, attachment_id: str, limit: int) -> list[ChunkRecord]:
        """First ``limit`` chunks of an attachment in index order."""


class InMemoryVectorStore:
    """Deterministic vector store used for tests and local prototyping."""

    def __init__(self) -> None:
        self._attachments: dict[str, AttachmentRecord] = {}
        self._chunks: dict[tuple[str, int], ChunkRecord] = {}

    def add_attachment(self, attachment: AttachmentRecord) -> None:
        self._attachments[attachment.id] = attachment

    def add_chunks(self, chunks: Sequence[ChunkRecord]) -> None:
        for chunk in chunks:
            if chunk.attachment_id not in self._attachments:
                raise ValueError(f"Unknown attachment: {chunk.attachment_id}")
            self._chunks[(chunk.attachment_id, chunk.chunk_index)] = chunk

    def set_status(self, attachment_id: str, status: AttachmentStatus) -> None:
        record = self._attachments[attachment_id]
        self._attachments[attachment_id] = AttachmentRecord(
            id=record.id,
            owner_id=record.owner_id,
            filename=record.filename,
            status=status,
            mime_type=record.mime_type,
        )

    async def ready_attachment_ids(
        self, owner_id: str, attachment_ids: Optional[Sequence[str]] = None
    ) -> list[str]:
        candidates = (
            [self._attachments[a] for a in attachment_ids if a in self._attachments]
            if attachment_ids
            else list(self._attachments.values())
        )
        return [
            a.id
            for a in candidates
            if a.owner_id == owner_id and a.status == AttachmentStatus.READY
        ]

    async def similarity_search(
        self, query_embedding: Sequence[float], attachment_ids: Sequence[str], k: int
    ) -> list[ScoredChunk]:
        scope = set(attachment_ids)
        ranked = sorted(
            (
                ScoredChunk(
                    chunk=chunk,
                    filename=self._attachments[chunk.attachment_id].filename,
                    similarity=_cosine_similarity(query_embedding, chunk.embedding),
                )
                for chunk in self._chunks.values()
                if chunk.attachment_id in scope and chunk.embedding
            ),
            key=lambda item: item.similarity,
            reverse=True,
        )
        return ranked[:k]

    async def get_attachment(self, attachment_id: str, owner_id: str) -> Optional[AttachmentRecord]:
        record = self._attachments.get(attachment_id)
        if record is None or record.owner_id != owner_id:
            return None
        return record

    async def get_chunks(self, attachment_id: str, limit: int) -> list[ChunkRecord]:
        chunks = sorted(
            (c for c in self._chunks.values() if c.attachment_id == attachment_id),
            key=lambda c: c.chunk_index,
        )
        return chunks[:limit]


def _cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
