"""Answer generation providers.

A generation request is a list of chat messages; the answer comes back
either as one string or as a stream of text fragments.
"""

import codecs
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass

import httpx

from noterag.core.config import get_settings
from noterag.core.exceptions import GenerationError

logger = logging.getLogger(__name__)


@dataclass
class ChatMessage:
    """A message in a generation request."""

    role: str  # system, user, assistant
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


class GenerationProvider(ABC):
    """Produces answers for a list of chat messages."""

    @abstractmethod
    async def complete(self, messages: list[ChatMessage]) -> str:
        """Generate the full answer.

        Raises:
            GenerationError: If the provider call fails
        """

    @abstractmethod
    def stream(self, messages: list[ChatMessage]) -> AsyncIterator[str]:
        """Generate the answer as text fragments in arrival order.

        Raises:
            GenerationError: If the request fails or the stream breaks
        """

    async def aclose(self) -> None:
        """Release any connections held by the provider."""


class HttpGenerationProvider(GenerationProvider):
    """Generation endpoint reached over HTTP.

    Request body is ``{"messages": [...], "stream": bool}``. A buffered
    response is ``{"content": str}``; a streamed response is a chunked
    plain-text body.
    """

    def __init__(self, client: httpx.AsyncClient, url: str):
        self.client = client
        self.url = url

    async def aclose(self) -> None:
        await self.client.aclose()

    def _payload(self, messages: list[ChatMessage], stream: bool) -> dict:
        return {"messages": [m.to_dict() for m in messages], "stream": stream}

    async def complete(self, messages: list[ChatMessage]) -> str:
        try:
            response = await self.client.post(self.url, json=self._payload(messages, False))
        except httpx.HTTPError as e:
            raise GenerationError(f"Chat request failed: {e}") from e

        if not response.is_success:
            raise GenerationError(
                f"Failed to get chat response: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            content = response.json()["content"]
        except (ValueError, KeyError, TypeError) as e:
            raise GenerationError(f"Malformed chat response: {e}") from e

        if not isinstance(content, str):
            raise GenerationError("Malformed chat response: content is not a string")
        return content

    async def stream(self, messages: list[ChatMessage]) -> AsyncIterator[str]:
        request = self.client.build_request("POST", self.url, json=self._payload(messages, True))

        try:
            response = await self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise GenerationError(f"Chat request failed: {e}") from e

        try:
            if not response.is_success:
                raise GenerationError(
                    f"Failed to get chat response: {response.status_code} {response.reason_phrase}",
                    status_code=response.status_code,
                )

            # Multi-byte characters may be split across network chunks
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            try:
                async for raw in response.aiter_bytes():
                    text = decoder.decode(raw)
                    if text:
                        yield text
            except httpx.HTTPError as e:
                raise GenerationError(f"Chat stream interrupted: {e}") from e

            tail = decoder.decode(b"", final=True)
            if tail:
                yield tail
        finally:
            await response.aclose()


def create_generation_provider() -> GenerationProvider:
    """Build the generation provider selected by configuration."""
    settings = get_settings()

    if settings.generation_backend == "http":
        logger.info(f"Initializing HTTP generation provider at '{settings.generation_url}'")
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.http_timeout_seconds, connect=30.0)
        )
        return HttpGenerationProvider(client, settings.generation_url)

    from noterag.agent.runtime import get_runtime

    return get_runtime()
