import json

import httpx
import pytest

from shopquery.core.errors import EmbeddingError
from shopquery.services.embeddings import EmbeddingProvider, parse_embedding
from shopquery.services.vector_search import to_pgvector_literal


def make_provider(handler, dimension=3):
    http = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://ollama.test"
    )
    return EmbeddingProvider(http, model="nomic-embed-text", dimension=dimension)


def test_parse_ollama_shape():
    assert parse_embedding({"embedding": [1, 2.5, -3]}) == [1.0, 2.5, -3.0]


def test_parse_openai_shape():
    assert parse_embedding({"data": [{"embedding": [0.1, 0.2]}]}) == [0.1, 0.2]


@pytest.mark.parametrize("data", [{}, {"data": []}, {"data": [{}]}, [], None, {"embedding": "x"}])
def test_parse_rejects_unknown_shapes(data):
    with pytest.raises(EmbeddingError):
        parse_embedding(data)


@pytest.mark.asyncio
async def test_embed_posts_model_and_prompt():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"embedding": [0.1, 0.2, 0.3]})

    vector = await make_provider(handler).embed("dino onesie")

    assert vector == [0.1, 0.2, 0.3]
    assert seen["path"] == "/api/embeddings"
    assert seen["body"] == {"model": "nomic-embed-text", "prompt": "dino onesie"}


@pytest.mark.asyncio
async def test_embed_raises_on_http_error():
    provider = make_provider(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(EmbeddingError, match="Embedding service failed"):
        await provider.embed("x")


@pytest.mark.asyncio
async def test_embed_raises_on_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(EmbeddingError):
        await make_provider(handler).embed("x")


@pytest.mark.asyncio
async def test_embed_raises_on_non_json():
    provider = make_provider(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(EmbeddingError, match="not JSON"):
        await provider.embed("x")


@pytest.mark.asyncio
async def test_embed_checks_dimension():
    provider = make_provider(lambda request: httpx.Response(200, json={"embedding": [0.1, 0.2]}))
    with pytest.raises(EmbeddingError, match="expected 3"):
        await provider.embed("x")


def test_pgvector_literal():
    assert to_pgvector_literal([1, 0.5, -2]) == "[1.0,0.5,-2.0]"
