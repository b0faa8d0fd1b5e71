"""In-memory conversation log."""

from __future__ import annotations

import threading
from typing import Callable, Optional

from models import OutboundMessage

ChangeCallback = Callable[[str, OutboundMessage], None]


class ConversationLog:
    """Ordered message list addressed by message id.

    ``on_change`` receives ``("append" | "replace" | "remove", message)``.
    """

    def __init__(self, on_change: Optional[ChangeCallback] = None) -> None:
        self._messages: list[OutboundMessage] = []
        self._lock = threading.Lock()
        self._on_change = on_change

    @property
    def messages(self) -> list[OutboundMessage]:
        with self._lock:
            return list(self._messages)

    def get(self, message_id: str) -> Optional[OutboundMessage]:
        with self._lock:
            index = self._index(message_id)
            return self._messages[index] if index is not None else None

    def append_message(self, message: OutboundMessage) -> None:
        with self._lock:
            self._messages.append(message)
        self._emit("append", message)

    def replace_message(self, message_id: str, message: OutboundMessage) -> None:
        with self._lock:
            index = self._index(message_id)
            if index is None:
                raise KeyError(message_id)
            message.message_id = message_id
            self._messages[index] = message
        self._emit("replace", message)

    def remove_message(self, message_id: str) -> None:
        with self._lock:
            index = self._index(message_id)
            if index is None:
                return
            message = self._messages.pop(index)
        self._emit("remove", message)

    def pending_placeholders(self) -> list[OutboundMessage]:
        with self._lock:
            return [m for m in self._messages if m.is_processing_placeholder]

    def _index(self, message_id: str) -> Optional[int]:
        for index, message in enumerate(self._messages):
            if message.message_id == message_id:
                return index
        return None

    def _emit(self, action: str, message: OutboundMessage) -> None:
        if self._on_change:
            self._on_change(action, message)
