"""RAG query endpoints.

Answer questions from a user's own notes, buffered or streamed, and let
the document backend drop a user's cached index after their notes change.
"""

import json
import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from noterag.api.deps import RAG
from noterag.core.exceptions import GenerationError, NoteRAGError, RetrievalError

logger = logging.getLogger(__name__)

router = APIRouter()


class RAGRequest(BaseModel):
    """RAG query request."""

    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(..., min_length=1, description="User question")
    user_id: str = Field(..., min_length=1, alias="userId", description="Owner of the notes")


class RAGResponse(BaseModel):
    """RAG query response."""

    answer: str


class InvalidateResponse(BaseModel):
    """Cache invalidation result."""

    user_id: str
    invalidated: bool


@router.post("/rag", response_model=RAGResponse)
async def rag_query(body: RAGRequest, rag: RAG):
    """Answer a question using the user's notes as context."""
    try:
        answer = await rag.answer(body.user_id, body.query)
    except (RetrievalError, GenerationError) as e:
        logger.exception(f"Error in RAG API: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"RAG query failed: {e!s}",
        ) from None

    return RAGResponse(answer=answer)


@router.post("/rag/stream")
async def rag_query_stream(body: RAGRequest, rag: RAG):
    """Stream an answer using Server-Sent Events (SSE).

    Event format:
    - data: {"content": "chunk"} - Content fragment
    - data: {"error": "message"} - Query failed; fragments already sent stand
    - data: [DONE] - Stream complete
    """

    async def generate():
        stream = rag.stream_answer(body.user_id, body.query)
        try:
            async for fragment in stream:
                yield f"data: {json.dumps({'content': fragment})}\n\n"
        except NoteRAGError as e:
            logger.exception(f"Error in rag_query_stream: {e}")
            yield f"data: {json.dumps({'error': str(e)})}\n\n"
        finally:
            await stream.aclose()

        yield "data: [DONE]\n\n"

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.delete("/rag/cache/{user_id}", response_model=InvalidateResponse)
async def invalidate_cache(user_id: str, rag: RAG):
    """Drop a user's cached vector store so the next query rebuilds it.

    Call this whenever one of the user's notes is created, edited or removed.
    """
    invalidated = rag.invalidate(user_id)
    return InvalidateResponse(user_id=user_id, invalidated=invalidated)
