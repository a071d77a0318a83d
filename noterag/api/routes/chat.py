"""Chat completion and embedding endpoints.

These expose the LLM provider to clients that only speak HTTP, and are
also what the HTTP embedding/generation backends of the RAG pipeline
talk to when configured that way.
"""

import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from noterag.api.deps import Runtime
from noterag.core.exceptions import EmbeddingProviderError, GenerationError
from noterag.rag.generator import ChatMessage

logger = logging.getLogger(__name__)

router = APIRouter()


class ChatMessageInput(BaseModel):
    """A single chat message for input."""

    role: str = Field(..., pattern="^(system|user|assistant)$", description="Message role")
    content: str = Field(..., description="Message content")


class ChatRequest(BaseModel):
    """Chat completion request."""

    messages: list[ChatMessageInput] = Field(..., min_length=1)
    stream: bool = Field(True, description="Stream the answer as plain text")


class ChatResponse(BaseModel):
    """Buffered chat completion response."""

    content: str


class EmbeddingRequest(BaseModel):
    """Embedding request."""

    input: str = Field(..., min_length=1, description="Text to embed")


class EmbeddingResponse(BaseModel):
    """Embedding response."""

    embedding: list[float]


async def _prime(stream: AsyncIterator[str]) -> AsyncIterator[str]:
    """Pull the first fragment eagerly so request failures surface as HTTP errors."""
    try:
        first = await anext(stream)
    except StopAsyncIteration:
        first = None

    async def relay() -> AsyncIterator[str]:
        try:
            if first is not None:
                yield first
            async for fragment in stream:
                yield fragment
        except GenerationError as e:
            # Headers are already sent, so the client just sees the body end
            logger.error(f"Chat stream failed: {e}")
        finally:
            await stream.aclose()

    return relay()


@router.post("/chat")
async def chat(body: ChatRequest, runtime: Runtime):
    """Generate an answer for a list of chat messages.

    Streams plain-text fragments by default; with ``stream: false`` the
    whole answer is returned as ``{"content": ...}``.
    """
    messages = [ChatMessage(role=m.role, content=m.content) for m in body.messages]

    if not body.stream:
        try:
            content = await runtime.complete(messages)
        except GenerationError as e:
            logger.exception(f"Error in chat API: {e}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"Chat completion failed: {e!s}",
            ) from None
        return ChatResponse(content=content)

    stream = runtime.stream(messages)
    try:
        body_iter = await _prime(stream)
    except GenerationError as e:
        logger.exception(f"Error in chat API: {e}")
        await stream.aclose()
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Chat completion failed: {e!s}",
        ) from None

    return StreamingResponse(body_iter, media_type="text/plain; charset=utf-8")


@router.post("/embeddings", response_model=EmbeddingResponse)
async def embeddings(body: EmbeddingRequest, runtime: Runtime):
    """Embed one text with the configured embedding model."""
    if not body.input.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing input")

    try:
        embedding = await runtime.embed(body.input)
    except EmbeddingProviderError as e:
        logger.exception(f"Error in embeddings API: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Embedding failed: {e!s}",
        ) from None

    return EmbeddingResponse(embedding=embedding)
