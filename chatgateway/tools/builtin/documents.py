"""Document tools backed by the owner's ingested attachments.

Both tools read only the calling owner's attachments; the owner and the
attachment scope come from the turn's ``ToolContext``, never from the model.
"""

from __future__ import annotations

import logging
from typing import Any

from chatgateway.models.tools import ToolParameter
from chatgateway.rag.assembler import RagContextAssembler, render_context, to_citation
from chatgateway.rag.vector_store import AttachmentStatus, VectorStore
from chatgateway.tools.context import ToolContext
from chatgateway.tools.registry import Tool, create_tool

logger = logging.getLogger(__name__)

SUMMARY_CHUNK_LIMIT = 20
SUMMARY_EXCERPT_LENGTH = 2000


def create_retrieve_docs_tool(assembler: RagContextAssembler) -> Tool:
    """Create a tool that searches the caller's documents.

    Args:
        assembler: Assembler used for embedding and similarity search.

    Returns:
        Configured Tool instance.
    """

    async def handler(args: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        matches = await assembler.search(
            args["query"],
            context.owner_id,
            attachment_ids=context.attachment_ids or None,
            top_k=args["topK"],
        )

        if not matches:
            return {
                "found": False,
                "message": "No relevant documents found for this query.",
                "results": [],
            }

        results = []
        for match in matches:
            citation = to_citation(match)
            results.append(
                {
                    "filename": citation.filename,
                    "chunkIndex": citation.chunk_index,
                    "excerpt": citation.excerpt,
                    "similarity": citation.similarity,
                }
            )

        return {"found": True, "results": results, "context": render_context(matches)}

    return create_tool(
        name="retrieve_docs",
        description=(
            "Search the user's uploaded documents for passages relevant to a query. "
            "Use this when the user asks about content in their files."
        ),
        parameters=[
            ToolParameter(
                name="query",
                type="string",
                description="What to search for in the user's documents",
                min_length=1,
                max_length=1000,
            ),
            ToolParameter(
                name="topK",
                type="integer",
                description="Maximum number of passages to return",
                required=False,
                minimum=1,
                maximum=20,
                default=5,
            ),
        ],
        handler=handler,
        category="retrieval",
    )


def create_summarize_attachment_tool(store: VectorStore) -> Tool:
    """Create a tool that loads the opening chunks of one attachment."""

    async def handler(args: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        attachment_id = args["attachmentId"]
        attachment = await store.get_attachment(attachment_id, context.owner_id)
        if attachment is None:
            raise ValueError("Attachment not found or access denied")

        if attachment.status != AttachmentStatus.READY:
            return {"status": "not_ready", "message": "Attachment is still being processed"}

        chunks = await store.get_chunks(attachment_id, SUMMARY_CHUNK_LIMIT)
        content = "\n\n".join(c.content for c in chunks)
        logger.debug(f"Loaded {len(chunks)} chunks of {attachment.filename}")

        return {
            "attachmentId": attachment.id,
            "filename": attachment.filename,
            "mimeType": attachment.mime_type,
            "chunksLoaded": len(chunks),
            "excerpt": content[:SUMMARY_EXCERPT_LENGTH],
            "message": "Use the excerpt above to answer questions about this document.",
        }

    return create_tool(
        name="summarize_attachment",
        description=(
            "Load the beginning of one of the user's uploaded documents so it can be "
            "summarized or described."
        ),
        parameters=[
            ToolParameter(
                name="attachmentId",
                type="string",
                description="Id of the attachment to load",
                min_length=1,
            ),
        ],
        handler=handler,
        category="retrieval",
    )
