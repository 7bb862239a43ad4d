import asyncio
import json

import httpx
import pytest

from shopquery.core.errors import CompletionUnavailableError
from shopquery.services.llm import ChatLlm


def _completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def make_llm(handler, enabled=True, timeout=5.0):
    http = httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url="http://llm.test/v1/"
    )
    return ChatLlm(http, model="test-model", enabled=enabled, timeout=timeout)


@pytest.mark.asyncio
async def test_request_shape():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion('{"plan": []}'))

    llm = make_llm(handler)
    await llm.complete_json("system prompt", "user prompt")

    assert seen["path"] == "/v1/chat/completions"
    body = seen["body"]
    assert body["model"] == "test-model"
    assert body["messages"] == [
        {"role": "system", "content": "system prompt"},
        {"role": "user", "content": "user prompt"},
    ]
    assert body["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
async def test_chat_returns_content():
    llm = make_llm(lambda request: httpx.Response(200, json=_completion("Hi! How can I help?")))
    assert await llm.chat("sys", "hello") == "Hi! How can I help?"


@pytest.mark.asyncio
async def test_disabled_client_makes_no_requests():
    def handler(request):
        raise AssertionError("no request expected")

    llm = make_llm(handler, enabled=False)

    assert await llm.chat("sys", "hello") == "[llm-disabled] hello"
    assert await llm.classify("sys", "anything") == "chitchat"
    with pytest.raises(CompletionUnavailableError):
        await llm.complete_json("sys", "plan this")


@pytest.mark.asyncio
async def test_http_error_degrades():
    llm = make_llm(lambda request: httpx.Response(503, text="overloaded"))

    assert (await llm.chat("sys", "hello")).startswith("[llm-error] HTTP 503")
    assert await llm.classify("sys", "x") == "chitchat"
    with pytest.raises(CompletionUnavailableError, match="503"):
        await llm.complete_json("sys", "x")


@pytest.mark.asyncio
async def test_transport_error_degrades():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    llm = make_llm(handler)
    outcome = await llm.complete("sys", "x")

    assert not outcome.ok
    assert "transport error" in outcome.failure


@pytest.mark.asyncio
async def test_timeout_degrades():
    async def handler(request):
        await asyncio.sleep(1)
        return httpx.Response(200, json=_completion("late"))

    llm = make_llm(handler, timeout=0.01)
    outcome = await llm.complete("sys", "x")

    assert not outcome.ok
    assert "timed out" in outcome.failure


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"choices": []},
        {"unexpected": True},
        _completion(""),
        _completion(None),
    ],
)
async def test_malformed_body_degrades(body):
    llm = make_llm(lambda request: httpx.Response(200, json=body))
    assert await llm.classify("sys", "x") == "chitchat"


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["not json at all", "[1, 2, 3]", '"just a string"'])
async def test_complete_json_requires_an_object(content):
    llm = make_llm(lambda request: httpx.Response(200, json=_completion(content)))
    with pytest.raises(CompletionUnavailableError):
        await llm.complete_json("sys", "x")


@pytest.mark.asyncio
async def test_complete_json_parses_object():
    llm = make_llm(lambda request: httpx.Response(200, json=_completion('{"route": "Semantic"}')))
    assert await llm.complete_json("sys", "x") == {"route": "Semantic"}
