"""HTTP client for the serverless proxy functions.

Every function is invoked as ``POST {backend_url}/functions/v1/{name}`` with a
JSON body.  A non-2xx status, an ``error`` field in the payload or a transport
failure is raised as ``ServiceError`` tagged with the caller's error code.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import httpx

from errors import (
    AUTH_FAILED,
    GENERATION_ERROR,
    INFERENCE_ERROR,
    SEARCH_ERROR,
    TRANSLATION_ERROR,
    WEATHER_ERROR,
    ServiceError,
)
from models import ChatReply, Coordinates, SearchResult, Source, WeatherReport

logger = logging.getLogger(__name__)

CHAT_FUNCTION = "chat-with-gemini"
SEARCH_FUNCTION = "web-search"
WEATHER_FUNCTION = "get-weather"
TRANSLATE_FUNCTION = "translate"
GENERATE_IMAGE_FUNCTION = "generate-image"


def auth_headers(api_key: str) -> dict[str, str]:
    if not api_key:
        return {}
    return {"Authorization": f"Bearer {api_key}", "apikey": api_key}


class FunctionsClient:
    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout_s: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s, connect=10.0),
            headers=auth_headers(api_key),
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def chat(self, prompt: str, image_urls: Optional[Sequence[str]] = None) -> ChatReply:
        body: dict[str, Any] = {"prompt": prompt}
        if image_urls:
            body["imageUrls"] = list(image_urls)
        data = await self._invoke(CHAT_FUNCTION, body, INFERENCE_ERROR)
        response = data.get("response")
        if not isinstance(response, str):
            raise ServiceError(INFERENCE_ERROR, "response missing from chat reply")
        sources = [
            Source(
                title=str(item.get("title", "")),
                url=str(item.get("url", "")),
                domain=str(item.get("domain", "")),
                icon=str(item.get("icon", "") or ""),
            )
            for item in data.get("sources") or []
            if isinstance(item, dict)
        ]
        return ChatReply(response=response, sources=sources)

    async def web_search(self, query: str) -> list[SearchResult]:
        data = await self._invoke(SEARCH_FUNCTION, {"query": query}, SEARCH_ERROR)
        return [
            SearchResult(
                title=str(item.get("title", "")),
                url=str(item.get("url", "")),
                snippet=str(item.get("snippet", "") or ""),
            )
            for item in data.get("results") or []
            if isinstance(item, dict)
        ]

    async def get_weather(self, location: str) -> WeatherReport:
        data = await self._invoke(WEATHER_FUNCTION, {"location": location}, WEATHER_ERROR)
        message = data.get("message")
        if not message:
            raise ServiceError(WEATHER_ERROR, "weather message missing")
        coordinates = None
        raw = data.get("coordinates")
        if isinstance(raw, dict) and "lat" in raw and "lon" in raw:
            coordinates = Coordinates(lat=float(raw["lat"]), lon=float(raw["lon"]))
        return WeatherReport(message=str(message), coordinates=coordinates)

    async def translate(self, text: str, target_language: str) -> str:
        data = await self._invoke(
            TRANSLATE_FUNCTION,
            {"text": text, "targetLanguage": target_language},
            TRANSLATION_ERROR,
        )
        translated = data.get("translatedText")
        if not isinstance(translated, str):
            raise ServiceError(TRANSLATION_ERROR, "translatedText missing")
        return translated

    async def generate_image(self, prompt: str) -> str:
        data = await self._invoke(GENERATE_IMAGE_FUNCTION, {"prompt": prompt}, GENERATION_ERROR)
        return str(data.get("imageUrl") or "")

    async def _invoke(self, name: str, body: dict[str, Any], code: str) -> dict[str, Any]:
        url = f"{self._base_url}/functions/v1/{name}"
        try:
            response = await self._client.post(url, json=body)
        except httpx.HTTPError as exc:
            logger.warning("%s request failed: %s", name, exc)
            raise ServiceError(code, f"{name}: {exc}", retryable=True) from exc

        if response.status_code in (401, 403):
            raise ServiceError(AUTH_FAILED, f"{name}: not authorized ({response.status_code})")
        try:
            data = response.json()
        except ValueError:
            data = None
        if response.is_error:
            detail = data.get("error") if isinstance(data, dict) else response.text
            logger.warning("%s returned %d: %s", name, response.status_code, detail)
            raise ServiceError(
                code,
                f"{name}: {detail or response.reason_phrase} ({response.status_code})",
                retryable=response.status_code in (429, 503),
            )
        if not isinstance(data, dict):
            raise ServiceError(code, f"{name}: invalid response format")
        if data.get("error"):
            raise ServiceError(code, f"{name}: {data['error']}")
        return data
