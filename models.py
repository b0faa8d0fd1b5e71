"""Core data models for the chat assistant."""

from __future__ import annotations

import base64
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


class DictationState(str, Enum):
    IDLE = "IDLE"
    LISTENING = "LISTENING"
    ERRORING = "ERRORING"


class RecognitionKind(str, Enum):
    START = "start"
    PARTIAL = "partial"
    FINAL = "final"
    ERROR = "error"
    END = "end"


class DispatchPhase(str, Enum):
    IDLE = "IDLE"
    UPLOADING = "UPLOADING"
    INFERRING = "INFERRING"
    DONE = "DONE"
    FAILED = "FAILED"


class TargetLanguage(str, Enum):
    HINDI = "hi"
    MARATHI = "mr"
    SANSKRIT = "sa"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass
class RecognitionEvent:
    kind: str
    text: str = ""
    code: str = ""
    message: str = ""
    retryable: bool = False


@dataclass
class ErrorInfo:
    code: str
    message: str


@dataclass
class PendingAttachment:
    name: str
    data: bytes
    media_type: str
    preview_data_uri: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        if "." in self.name:
            return self.name.rsplit(".", 1)[1].lower()
        return self.media_type.split("/")[-1]

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.media_type};base64,{encoded}"


# Dispatch intents. Exactly one is selected per dispatch call.


@dataclass(frozen=True)
class Navigation:
    origin: str
    destination: str


@dataclass(frozen=True)
class WeatherQuery:
    location: Optional[str]


@dataclass(frozen=True)
class WebSearchTrigger:
    query: str


@dataclass(frozen=True)
class PlainChat:
    text: str
    attachments: tuple[PendingAttachment, ...] = ()


DispatchIntent = Union[Navigation, WeatherQuery, WebSearchTrigger, PlainChat]


@dataclass
class Source:
    title: str
    url: str
    domain: str
    icon: str = ""


@dataclass
class SearchResult:
    title: str
    url: str
    snippet: str = ""


@dataclass
class Coordinates:
    lat: float
    lon: float


@dataclass
class ChatReply:
    response: str
    sources: list[Source] = field(default_factory=list)


@dataclass
class WeatherReport:
    message: str
    coordinates: Optional[Coordinates] = None


@dataclass
class OutboundMessage:
    content: str
    is_from_bot: bool = False
    is_processing_placeholder: bool = False
    sources: Optional[list[Source]] = None
    coordinates: Optional[Coordinates] = None
    message_id: str = field(default_factory=lambda: uuid.uuid4().hex)
