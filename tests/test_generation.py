from __future__ import annotations

import asyncio
import base64
import json
from typing import Any

import httpx
import pytest

from lifequest import generation
from lifequest.errors import ExternalServiceError
from lifequest.generation import GenerationConfig, HttpGenerationClient, parse_json_payload

CONFIG = GenerationConfig(
    base_url="https://gen.example/v1/",
    api_key="secret",
    model="text-model",
    image_model="image-model",
)


def _patch_client(monkeypatch, handler) -> list[httpx.Request]:
    seen: list[httpx.Request] = []
    real_client = httpx.AsyncClient

    def recording(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    def factory(*args: Any, **kwargs: Any) -> httpx.AsyncClient:
        kwargs["transport"] = httpx.MockTransport(recording)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(generation.httpx, "AsyncClient", factory)
    return seen


def test_generate_text_posts_chat_completion(monkeypatch) -> None:
    seen = _patch_client(
        monkeypatch,
        lambda _r: httpx.Response(200, json={"choices": [{"message": {"content": "  hello  "}}]}),
    )
    text = asyncio.run(HttpGenerationClient(CONFIG).generate_text("hi", schema={"type": "object"}))

    assert text == "hello"
    assert str(seen[0].url) == "https://gen.example/v1/chat/completions"
    assert seen[0].headers["Authorization"] == "Bearer secret"
    body = json.loads(seen[0].content)
    assert body["model"] == "text-model"
    assert body["response_format"]["type"] == "json_schema"


def test_generate_text_accepts_content_parts(monkeypatch) -> None:
    content = [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]
    _patch_client(monkeypatch, lambda _r: httpx.Response(200, json={"choices": [{"message": {"content": content}}]}))
    assert asyncio.run(HttpGenerationClient(CONFIG).generate_text("hi")) == "a\nb"


def test_generate_image_decodes_base64(monkeypatch) -> None:
    encoded = base64.b64encode(b"\x89PNG").decode()
    seen = _patch_client(monkeypatch, lambda _r: httpx.Response(200, json={"data": [{"b64_json": encoded}]}))
    assert asyncio.run(HttpGenerationClient(CONFIG).generate_image("castle")) == b"\x89PNG"
    assert seen[0].url.path == "/v1/images/generations"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, json={"error": "boom"}),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json=["unexpected"]),
        httpx.Response(200, json={"choices": []}),
    ],
)
def test_bad_responses_raise_external_error(monkeypatch, response: httpx.Response) -> None:
    _patch_client(monkeypatch, lambda _r: response)
    with pytest.raises(ExternalServiceError):
        asyncio.run(HttpGenerationClient(CONFIG).generate_text("hi"))


def test_transport_error_is_wrapped(monkeypatch) -> None:
    def fail(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    _patch_client(monkeypatch, fail)
    with pytest.raises(ExternalServiceError):
        asyncio.run(HttpGenerationClient(CONFIG).generate_image("castle"))


def test_parse_json_payload_variants() -> None:
    assert parse_json_payload('{"a": 1}') == {"a": 1}
    assert parse_json_payload('Sure!\n```json\n{"a": 2}\n```') == {"a": 2}
    assert parse_json_payload("Here you go: [1, 2] enjoy") == [1, 2]
    with pytest.raises(ExternalServiceError):
        parse_json_payload("no json here")
    with pytest.raises(ExternalServiceError):
        parse_json_payload("   ")
