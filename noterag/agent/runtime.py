"""Agent runtime for LLM interactions.

Wraps an OpenAI-compatible endpoint and serves both as the embedding
provider and the generation provider for the RAG pipeline. Includes
optional Langfuse tracing.
"""

import logging
import time
from collections.abc import AsyncIterator

from langfuse import Langfuse
from openai import AsyncOpenAI, OpenAIError

from noterag.core.config import Settings, get_settings
from noterag.core.exceptions import EmbeddingProviderError, GenerationError
from noterag.rag.embedder import EmbeddingProvider
from noterag.rag.generator import ChatMessage, GenerationProvider

logger = logging.getLogger(__name__)


class AgentRuntime(EmbeddingProvider, GenerationProvider):
    """Runtime for LLM calls.

    Provides:
    - Embeddings
    - Buffered and streaming chat completions
    - Langfuse tracing
    """

    def __init__(self, settings: Settings | None = None, client: AsyncOpenAI | None = None):
        self.settings = settings or get_settings()
        self.client = client or AsyncOpenAI(
            base_url=self.settings.llm_base_url,
            api_key=self.settings.llm_api_key or "unset",
            timeout=self.settings.http_timeout_seconds,
        )
        self._langfuse: Langfuse | None = None
        self._init_langfuse()

    def _init_langfuse(self) -> None:
        """Initialize Langfuse for observability."""
        if self.settings.langfuse_public_key and self.settings.langfuse_secret_key:
            self._langfuse = Langfuse(
                public_key=self.settings.langfuse_public_key,
                secret_key=self.settings.langfuse_secret_key,
                host=self.settings.langfuse_host,
            )

    def _start_generation(self, name: str, messages: list[dict], streaming: bool):
        if not self._langfuse:
            return None
        try:
            return self._langfuse.start_generation(
                name=name,
                model=self.settings.llm_chat_model,
                input=messages,
                metadata={"streaming": streaming},
            )
        except Exception as e:
            # Langfuse errors shouldn't break the chat flow
            logger.warning(f"Langfuse generation start failed: {e}")
            return None

    @staticmethod
    def _end_generation(generation, **update) -> None:
        if not generation:
            return
        try:
            generation.update(**update)
            generation.end()
        except Exception as e:
            logger.warning(f"Langfuse generation update failed: {e}")

    async def embed(self, text: str) -> list[float]:
        """Embed a single text with the configured embedding model."""
        try:
            response = await self.client.embeddings.create(
                input=text,
                model=self.settings.embedding_model,
            )
        except OpenAIError as e:
            raise EmbeddingProviderError(f"Failed to get embedding: {e}") from e

        if not response.data:
            raise EmbeddingProviderError("Embedding response contained no data")

        return list(response.data[0].embedding)

    async def complete(self, messages: list[ChatMessage]) -> str:
        """Send a chat completion request and return the answer text."""
        api_messages = [m.to_dict() for m in messages]
        generation = self._start_generation("llm-call", api_messages, streaming=False)
        start_time = time.perf_counter()

        try:
            response = await self.client.chat.completions.create(
                model=self.settings.llm_chat_model,
                messages=api_messages,
                temperature=self.settings.llm_temperature,
            )
        except OpenAIError as e:
            self._end_generation(generation, level="ERROR", status_message=str(e))
            raise GenerationError(
                f"Chat completion failed: {e}", status_code=getattr(e, "status_code", None)
            ) from e

        if not response.choices:
            self._end_generation(generation, level="ERROR", status_message="no choices")
            raise GenerationError("Chat completion returned no choices")

        content = response.choices[0].message.content or ""
        latency_ms = (time.perf_counter() - start_time) * 1000

        update = {"output": content, "metadata": {"latency_ms": latency_ms}}
        if response.usage:
            update["usage_details"] = {
                "input": response.usage.prompt_tokens,
                "output": response.usage.completion_tokens,
                "total": response.usage.total_tokens,
            }
        self._end_generation(generation, **update)
        logger.debug(f"[Runtime] Chat completion took {latency_ms:.0f}ms")
        return content

    async def stream(self, messages: list[ChatMessage]) -> AsyncIterator[str]:
        """Stream a chat completion, yielding non-empty content deltas."""
        api_messages = [m.to_dict() for m in messages]
        generation = self._start_generation("llm-call-stream", api_messages, streaming=True)
        start_time = time.perf_counter()
        full_content = ""

        try:
            stream = await self.client.chat.completions.create(
                model=self.settings.llm_chat_model,
                messages=api_messages,
                temperature=self.settings.llm_temperature,
                stream=True,
            )
        except OpenAIError as e:
            self._end_generation(generation, level="ERROR", status_message=str(e))
            raise GenerationError(
                f"Chat completion failed: {e}", status_code=getattr(e, "status_code", None)
            ) from e

        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    full_content += content
                    yield content
        except OpenAIError as e:
            self._end_generation(generation, level="ERROR", status_message=str(e))
            raise GenerationError(f"Chat stream interrupted: {e}") from e
        finally:
            await stream.close()

        latency_ms = (time.perf_counter() - start_time) * 1000
        self._end_generation(
            generation,
            output=full_content,
            metadata={"latency_ms": latency_ms, "streaming": True},
        )

    async def shutdown(self) -> None:
        """Cleanup resources."""
        if self._langfuse:
            self._langfuse.flush()
        await self.client.close()


# Global runtime instance
_runtime: AgentRuntime | None = None


def get_runtime() -> AgentRuntime:
    """Get or create the global agent runtime."""
    global _runtime
    if _runtime is None:
        _runtime = AgentRuntime()
    return _runtime


async def shutdown_runtime() -> None:
    """Shutdown the global runtime."""
    global _runtime
    if _runtime:
        await _runtime.shutdown()
        _runtime = None
