"""Embedding service contract and the OpenAI implementation."""

from __future__ import annotations

from typing import Protocol, Sequence

import openai


class EmbeddingService(Protocol):
    """Turns texts into vectors, one per input, in input order."""

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        ...


class OpenAIEmbeddingService:
    """Embeds texts with the OpenAI embeddings endpoint."""

    def __init__(
        self,
        client: "openai.AsyncOpenAI",
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
    ):
        self.client = client
        self.model = model
        self.dimensions = dimensions

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []
        response = await self.client.embeddings.create(
            model=self.model,
            input=list(texts),
            dimensions=self.dimensions,
        )
        return [item.embedding for item in sorted(response.data, key=lambda d: d.index)]
