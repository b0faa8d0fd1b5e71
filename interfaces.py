"""Protocol interfaces used by DictationSession and MessageDispatcher."""

from __future__ import annotations

from queue import Queue
from typing import Callable, Optional, Protocol, Sequence

from models import (
    AudioFrame,
    ChatReply,
    OutboundMessage,
    RecognitionEvent,
    SearchResult,
    WeatherReport,
)


class CaptureEngine(Protocol):
    def is_available(self) -> bool: ...

    def start(self, locale: str, on_event: Callable[[RecognitionEvent], None]) -> None: ...

    def stop(self) -> None: ...


class Recorder(Protocol):
    def start(self, audio_queue: Queue[AudioFrame | None]) -> None: ...

    def stop(self) -> None: ...


class RecognizerAdapter(Protocol):
    def start(
        self,
        audio_queue: Queue[AudioFrame | None],
        on_event: Callable[[RecognitionEvent], None],
        language: str = "en",
    ) -> None: ...

    def stop(self) -> None: ...


class ConversationSink(Protocol):
    def append_message(self, message: OutboundMessage) -> None: ...

    def replace_message(self, message_id: str, message: OutboundMessage) -> None: ...

    def remove_message(self, message_id: str) -> None: ...


class Notifier(Protocol):
    def notify(self, code: str, description: str) -> None: ...


class ObjectStorage(Protocol):
    async def upload(self, data: bytes, content_type: str, path: str) -> str: ...


class AssistantServices(Protocol):
    async def chat(self, prompt: str, image_urls: Optional[Sequence[str]] = None) -> ChatReply: ...

    async def web_search(self, query: str) -> list[SearchResult]: ...

    async def get_weather(self, location: str) -> WeatherReport: ...

    async def translate(self, text: str, target_language: str) -> str: ...

    async def generate_image(self, prompt: str) -> str: ...


class ConfigStore(Protocol):
    def get_backend_url(self) -> str: ...

    def get_backend_key(self) -> str: ...

    def get_speech_api_key(self) -> str: ...

    def get_locale(self) -> str: ...

    def get_storage_bucket(self) -> str: ...

    def get_hotkey(self) -> str: ...
