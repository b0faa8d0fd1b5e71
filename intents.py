"""Ordered intent classification for user utterances.

Rules are evaluated top to bottom and the first match wins.  Plain chat is the
fallback when nothing else matches.
"""

from __future__ import annotations

import re
from typing import Callable, Optional, Sequence
from urllib.parse import quote

from models import DispatchIntent, Navigation, PendingAttachment, PlainChat, WeatherQuery

MAPS_DIRECTIONS_URL = "https://www.google.com/maps/dir/?api=1&origin={origin}&destination={destination}"

WEATHER_KEYWORDS = ("weather", "temperature", "forecast")

_NAVIGATION_RE = re.compile(r"from:\s*(?P<origin>.+?)\s*to:\s*(?P<destination>.+)", re.IGNORECASE | re.DOTALL)
_LOCATION_RE = re.compile(r"(?:weather|temperature|forecast)\s+(?:in|at|for)\s+([^?.,!;\n]+)", re.IGNORECASE)

# Characters encodeURIComponent leaves alone.
_URI_COMPONENT_SAFE = "-_.!~*'()"

Predicate = Callable[[str], bool]
Extractor = Callable[[str, Sequence[PendingAttachment]], DispatchIntent]


def encode_component(value: str) -> str:
    return quote(value, safe=_URI_COMPONENT_SAFE)


def directions_url(origin: str, destination: str) -> str:
    return MAPS_DIRECTIONS_URL.format(
        origin=encode_component(origin),
        destination=encode_component(destination),
    )


def extract_location(text: str) -> Optional[str]:
    match = _LOCATION_RE.search(text)
    if not match:
        return None
    location = match.group(1).strip()
    return location or None


def _is_navigation(text: str) -> bool:
    match = _NAVIGATION_RE.search(text)
    return bool(match and match.group("destination").strip())


def _navigation(text: str, attachments: Sequence[PendingAttachment]) -> DispatchIntent:
    match = _NAVIGATION_RE.search(text)
    assert match is not None
    return Navigation(
        origin=match.group("origin").strip(),
        destination=match.group("destination").strip(),
    )


def _is_weather(text: str) -> bool:
    low = text.lower()
    return any(keyword in low for keyword in WEATHER_KEYWORDS)


def _weather(text: str, attachments: Sequence[PendingAttachment]) -> DispatchIntent:
    return WeatherQuery(location=extract_location(text))


def _plain_chat(text: str, attachments: Sequence[PendingAttachment]) -> DispatchIntent:
    return PlainChat(text=text, attachments=tuple(attachments))


RULES: list[tuple[str, Predicate, Extractor]] = [
    ("navigation", _is_navigation, _navigation),
    ("weather", _is_weather, _weather),
    ("chat", lambda text: True, _plain_chat),
]


def classify(
    text: str,
    attachments: Sequence[PendingAttachment] = (),
    rules: Sequence[tuple[str, Predicate, Extractor]] = RULES,
) -> DispatchIntent:
    utterance = text.strip()
    for _name, predicate, extractor in rules:
        if predicate(utterance):
            return extractor(utterance, attachments)
    return _plain_chat(utterance, attachments)
