"""Tests for the HTTP API."""

import json

import pytest
from fastapi.testclient import TestClient

from noterag.agent.runtime import get_runtime
from noterag.api.main import app
from noterag.core.exceptions import EmbeddingProviderError
from noterag.rag.retriever import get_rag_service
from tests.conftest import FakeGenerator, server_error


class FakeRuntime(FakeGenerator):
    """Generation fake that can also embed."""

    def __init__(self, *args, embedding=None, embed_error=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.embedding = embedding or [0.5, 0.25]
        self.embed_error = embed_error

    async def embed(self, text):
        if self.embed_error:
            raise self.embed_error
        return self.embedding


def sse_events(body: str) -> list:
    events = []
    for line in body.splitlines():
        if line.startswith("data: "):
            payload = line[len("data: ") :]
            events.append(payload if payload == "[DONE]" else json.loads(payload))
    return events


@pytest.fixture
def api(make_service):
    """Return a function that installs fakes and yields a TestClient."""
    clients = []

    def factory(runtime: FakeRuntime | None = None, generator: FakeGenerator | None = None):
        runtime = runtime or FakeRuntime()
        service = make_service(generator or FakeGenerator())
        app.dependency_overrides[get_runtime] = lambda: runtime
        app.dependency_overrides[get_rag_service] = lambda: service
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client, service

    yield factory

    for client in clients:
        client.__exit__(None, None, None)
    app.dependency_overrides.clear()


class TestEmbeddings:
    def test_returns_embedding(self, api):
        client, _ = api(runtime=FakeRuntime(embedding=[1.0, 2.0]))

        response = client.post("/api/embeddings", json={"input": "hello"})

        assert response.status_code == 200
        assert response.json() == {"embedding": [1.0, 2.0]}

    @pytest.mark.parametrize("body", [{}, {"input": ""}, {"input": "   "}])
    def test_missing_input(self, api, body):
        client, _ = api()
        assert client.post("/api/embeddings", json=body).status_code == 400

    def test_provider_failure(self, api):
        client, _ = api(runtime=FakeRuntime(embed_error=EmbeddingProviderError("down")))
        assert client.post("/api/embeddings", json={"input": "hello"}).status_code == 502


class TestChat:
    MESSAGES = [{"role": "system", "content": "ctx"}, {"role": "user", "content": "hi"}]

    def test_streams_plain_text_by_default(self, api):
        client, _ = api(runtime=FakeRuntime(fragments=("Hel", "lo wo", "rld")))

        response = client.post("/api/chat", json={"messages": self.MESSAGES})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.text == "Hello world"

    def test_buffered(self, api):
        client, _ = api(runtime=FakeRuntime(answer="Hello"))

        response = client.post("/api/chat", json={"messages": self.MESSAGES, "stream": False})

        assert response.status_code == 200
        assert response.json() == {"content": "Hello"}

    @pytest.mark.parametrize(
        "body",
        [{}, {"messages": []}, {"messages": "hi"}, {"messages": [{"role": "robot", "content": "x"}]}],
    )
    def test_invalid_messages(self, api, body):
        client, _ = api()
        assert client.post("/api/chat", json=body).status_code == 400

    def test_stream_failure_before_first_chunk(self, api):
        client, _ = api(runtime=FakeRuntime(error=server_error()))

        response = client.post("/api/chat", json={"messages": self.MESSAGES})

        assert response.status_code == 502

    def test_buffered_failure(self, api):
        client, _ = api(runtime=FakeRuntime(error=server_error()))

        response = client.post("/api/chat", json={"messages": self.MESSAGES, "stream": False})

        assert response.status_code == 502


class TestRAG:
    def test_answer(self, api):
        generator = FakeGenerator(answer="The sky is blue.")
        client, _ = api(generator=generator)

        response = client.post("/api/rag", json={"query": "What color is the sky?", "userId": "u1"})

        assert response.status_code == 200
        assert response.json() == {"answer": "The sky is blue."}
        system, user = generator.requests[0]
        assert system.content.index("The sky is blue.") < system.content.index("Grass is green.")
        assert user.content == "What color is the sky?"

    @pytest.mark.parametrize("body", [{"query": "sky?"}, {"userId": "u1"}, {"query": "", "userId": "u1"}])
    def test_missing_fields(self, api, body):
        client, _ = api()
        assert client.post("/api/rag", json=body).status_code == 400

    def test_generation_failure(self, api):
        client, _ = api(generator=FakeGenerator(error=server_error()))

        response = client.post("/api/rag", json={"query": "sky?", "userId": "u1"})

        assert response.status_code == 502

    def test_stream(self, api):
        client, _ = api(generator=FakeGenerator(fragments=("Hel", "lo wo", "rld")))

        response = client.post("/api/rag/stream", json={"query": "sky?", "userId": "u1"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert sse_events(response.text) == [
            {"content": "Hel"},
            {"content": "lo wo"},
            {"content": "rld"},
            "[DONE]",
        ]

    def test_stream_error_event(self, api):
        generator = FakeGenerator(fragments=("partial", "lost"), error=server_error(), error_at=1)
        client, _ = api(generator=generator)

        response = client.post("/api/rag/stream", json={"query": "sky?", "userId": "u1"})

        events = sse_events(response.text)
        assert events[0] == {"content": "partial"}
        assert "error" in events[1]
        assert events[-1] == "[DONE]"
        assert len(events) == 3

    def test_invalidate_cache(self, api):
        client, service = api()

        client.post("/api/rag", json={"query": "sky?", "userId": "u1"})
        assert service.cache.get("u1") is not None

        response = client.delete("/api/rag/cache/u1")

        assert response.status_code == 200
        assert response.json() == {"user_id": "u1", "invalidated": True}
        assert service.cache.get("u1") is None
        assert client.delete("/api/rag/cache/u1").json()["invalidated"] is False


class TestHealth:
    def test_live(self, api):
        client, _ = api()
        assert client.get("/health/live").json()["status"] == "alive"

    def test_ready_reports_cache(self, api):
        client, _ = api()
        client.post("/api/rag", json={"query": "sky?", "userId": "u1"})

        body = client.get("/health/ready").json()

        assert body["status"] == "ready"
        assert body["checks"]["cached_stores"] == 1

    def test_metrics(self, api):
        client, _ = api()
        client.post("/api/rag", json={"query": "sky?", "userId": "u1"})

        response = client.get("/metrics/")

        assert response.status_code == 200
        assert "rag_store_builds_total" in response.text
