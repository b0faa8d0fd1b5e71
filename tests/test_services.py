"""Tests for FunctionsClient and StorageBucketClient."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from errors import (
    AUTH_FAILED,
    INFERENCE_ERROR,
    SEARCH_ERROR,
    TRANSLATION_ERROR,
    UPLOAD_ERROR,
    WEATHER_ERROR,
    ServiceError,
)
from services import FunctionsClient
from storage import StorageBucketClient

BASE = "https://project.example"


def _client(handler, cls=FunctionsClient, **kwargs):  # noqa: ANN001, ANN202
    transport = httpx.MockTransport(handler)
    return cls(BASE, client=httpx.AsyncClient(transport=transport), **kwargs)


def _json(request: httpx.Request) -> dict:
    return json.loads(request.content)


# ---------------------------------------------------------------
# Functions
# ---------------------------------------------------------------

def test_chat_posts_prompt_and_images() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "response": "See https://docs.python.org",
                "sources": [
                    {"title": "docs.python.org", "url": "https://docs.python.org", "domain": "docs.python.org"}
                ],
            },
        )

    reply = asyncio.run(_client(handler).chat("hi", ["https://cdn/1.png"]))

    assert seen[0].url.path == "/functions/v1/chat-with-gemini"
    assert _json(seen[0]) == {"prompt": "hi", "imageUrls": ["https://cdn/1.png"]}
    assert reply.response == "See https://docs.python.org"
    assert reply.sources[0].domain == "docs.python.org"
    assert reply.sources[0].icon == ""


def test_chat_without_images_omits_field() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(_json(request))
        return httpx.Response(200, json={"response": "ok"})

    reply = asyncio.run(_client(handler).chat("hi"))

    assert bodies == [{"prompt": "hi"}]
    assert reply.sources == []


def test_error_status_raises_branch_code() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "GEMINI_API_KEY is not set"})

    with pytest.raises(ServiceError) as info:
        asyncio.run(_client(handler).chat("hi"))

    assert info.value.code == INFERENCE_ERROR
    assert "GEMINI_API_KEY" in info.value.message
    assert info.value.retryable is False


def test_error_field_in_success_payload_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": "Query is required"})

    with pytest.raises(ServiceError) as info:
        asyncio.run(_client(handler).web_search(""))

    assert info.value.code == SEARCH_ERROR


def test_unauthorized_maps_to_auth_failed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"msg": "invalid JWT"})

    with pytest.raises(ServiceError) as info:
        asyncio.run(_client(handler).get_weather("London"))

    assert info.value.code == AUTH_FAILED


def test_transport_error_is_retryable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ServiceError) as info:
        asyncio.run(_client(handler).translate("hello", "hi"))

    assert info.value.code == TRANSLATION_ERROR
    assert info.value.retryable is True


def test_unavailable_translation_is_retryable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "Translation service is temporarily unavailable."})

    with pytest.raises(ServiceError) as info:
        asyncio.run(_client(handler).translate("hello", "mr"))

    assert info.value.retryable is True


def test_web_search_parses_results() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert _json(request) == {"query": "fastapi"}
        return httpx.Response(
            200,
            json={"results": [{"title": "FastAPI", "url": "https://fastapi.tiangolo.com", "snippet": None}]},
        )

    results = asyncio.run(_client(handler).web_search("fastapi"))

    assert len(results) == 1
    assert results[0].title == "FastAPI"
    assert results[0].snippet == ""


def test_weather_parses_message_and_coordinates() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"message": "Weather in Pune", "coordinates": {"lat": 18.5, "lon": 73.8}})

    report = asyncio.run(_client(handler).get_weather("Pune"))

    assert report.message == "Weather in Pune"
    assert report.coordinates is not None
    assert (report.coordinates.lat, report.coordinates.lon) == (18.5, 73.8)


def test_weather_without_message_is_an_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"coordinates": {"lat": 1, "lon": 2}})

    with pytest.raises(ServiceError) as info:
        asyncio.run(_client(handler).get_weather("Nowhere"))

    assert info.value.code == WEATHER_ERROR


def test_translate_and_generate_image() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/translate"):
            assert _json(request) == {"text": "hello", "targetLanguage": "sa"}
            return httpx.Response(200, json={"translatedText": "नमः"})
        return httpx.Response(200, json={"imageUrl": "https://cdn/gen.png"})

    client = _client(handler)

    assert asyncio.run(client.translate("hello", "sa")) == "नमः"
    assert asyncio.run(client.generate_image("a fox")) == "https://cdn/gen.png"


def test_api_key_sent_as_headers() -> None:
    client = FunctionsClient(BASE, api_key="anon-key")
    headers = client._client.headers

    assert headers["Authorization"] == "Bearer anon-key"
    assert headers["apikey"] == "anon-key"
    asyncio.run(client.aclose())


# ---------------------------------------------------------------
# Storage
# ---------------------------------------------------------------

def test_upload_returns_public_url() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"Key": "images/chat/1-abc.png"})

    url = asyncio.run(
        _client(handler, StorageBucketClient, bucket="images").upload(b"\x89PNG", "image/png", "chat/1-abc.png")
    )

    assert url == f"{BASE}/storage/v1/object/public/images/chat/1-abc.png"
    assert seen[0].url.path == "/storage/v1/object/images/chat/1-abc.png"
    assert seen[0].headers["content-type"] == "image/png"
    assert seen[0].headers["x-upsert"] == "false"
    assert seen[0].content == b"\x89PNG"


def test_upload_failure_raises_upload_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"error": "Duplicate"})

    with pytest.raises(ServiceError) as info:
        asyncio.run(_client(handler, StorageBucketClient).upload(b"x", "image/png", "chat/a.png"))

    assert info.value.code == UPLOAD_ERROR
