"""Simple JSON-based config store with environment fallbacks."""

from __future__ import annotations

import json
import os
from pathlib import Path

DEFAULT_BACKEND_URL = "http://localhost:54321"
DEFAULT_LOCALE = "en-US"
DEFAULT_BUCKET = "images"
DEFAULT_HOTKEY = "Key.f8"


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "chat_assistant" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_backend_url(self) -> str:
        data = self._read_all()
        value = data.get("backend_url") or os.getenv("CHAT_BACKEND_URL", "")
        return str(value or DEFAULT_BACKEND_URL).rstrip("/")

    def set_backend_url(self, url: str) -> None:
        self._set("backend_url", url)

    def get_backend_key(self) -> str:
        data = self._read_all()
        return str(data.get("backend_key") or os.getenv("CHAT_BACKEND_KEY", ""))

    def set_backend_key(self, key: str) -> None:
        self._set("backend_key", key)

    def get_speech_api_key(self) -> str:
        data = self._read_all()
        return str(data.get("speech_api_key") or os.getenv("DASHSCOPE_API_KEY", ""))

    def set_speech_api_key(self, key: str) -> None:
        self._set("speech_api_key", key)

    def get_locale(self) -> str:
        data = self._read_all()
        return str(data.get("locale", DEFAULT_LOCALE))

    def set_locale(self, locale: str) -> None:
        self._set("locale", locale)

    def get_storage_bucket(self) -> str:
        data = self._read_all()
        return str(data.get("storage_bucket", DEFAULT_BUCKET))

    def set_storage_bucket(self, bucket: str) -> None:
        self._set("storage_bucket", bucket)

    def get_hotkey(self) -> str:
        data = self._read_all()
        return str(data.get("hotkey", DEFAULT_HOTKEY))

    def set_hotkey(self, hotkey: str) -> None:
        self._set("hotkey", hotkey)

    def _set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
