from types import SimpleNamespace

import httpx
import pytest

from app.services.gemini import GeminiService
from app.services.memory import Mem0Client


def mem0_with(handler) -> Mem0Client:
    client = Mem0Client(api_key="m0-key", base_url="https://mem0.test")
    client._client = httpx.AsyncClient(
        base_url=client.base_url, headers=client.headers, transport=httpx.MockTransport(handler)
    )
    return client


async def test_mem0_reads_memory_strings():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["user_id"] = request.url.params["user_id"]
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json=[{"memory": "Likes AI"}, {"memory": None}, {"id": "x"}])

    memories = await mem0_with(handler).get_all_memories("user-1")

    assert memories == ["Likes AI"]
    assert seen == {"path": "/v1/memories/", "user_id": "user-1", "auth": "Token m0-key"}


async def test_mem0_accepts_paginated_results():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"results": [{"memory": "Follows OpenAI"}]})

    assert await mem0_with(handler).get_all_memories("user-1") == ["Follows OpenAI"]


async def test_mem0_errors_propagate():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"detail": "down"})

    with pytest.raises(httpx.HTTPStatusError):
        await mem0_with(handler).get_all_memories("user-1")


async def test_mem0_without_key_refuses():
    with pytest.raises(RuntimeError):
        await Mem0Client(api_key=None).get_all_memories("user-1")


def test_gemini_without_client_refuses():
    service = GeminiService()
    service.client = None

    with pytest.raises(RuntimeError):
        service.generate_content("hello")


def test_gemini_citations_borrow_supported_segments():
    metadata = SimpleNamespace(
        grounding_chunks=[
            SimpleNamespace(web=SimpleNamespace(uri="https://techcrunch.com/a", title="Story A")),
            SimpleNamespace(web=None),
            SimpleNamespace(web=SimpleNamespace(uri="https://wired.com/b", title=None)),
        ],
        grounding_supports=[
            SimpleNamespace(segment=SimpleNamespace(text="A summary."), grounding_chunk_indices=[0]),
            SimpleNamespace(segment=SimpleNamespace(text="Later text."), grounding_chunk_indices=[0, 2]),
        ],
    )
    response = SimpleNamespace(candidates=[SimpleNamespace(grounding_metadata=metadata)])

    citations = GeminiService._extract_citations(response)

    assert [(c.title, c.uri, c.snippet) for c in citations] == [
        ("Story A", "https://techcrunch.com/a", "A summary."),
        ("Untitled", "https://wired.com/b", "Later text."),
    ]


def test_gemini_citations_without_grounding():
    assert GeminiService._extract_citations(SimpleNamespace(candidates=[])) == []
    assert GeminiService._extract_citations(SimpleNamespace(candidates=[SimpleNamespace()])) == []
