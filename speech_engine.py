"""Microphone + DashScope capture engine behind the CaptureEngine protocol."""

from __future__ import annotations

import logging
import threading
from queue import Queue
from typing import Callable, Optional

from interfaces import Recorder, RecognizerAdapter
from models import AudioFrame, RecognitionEvent, RecognitionKind

logger = logging.getLogger(__name__)


def language_from_locale(locale: str) -> str:
    """``en-US`` -> ``en``."""
    return locale.replace("_", "-").split("-", 1)[0].lower() or "en"


class MicrophoneSpeechEngine:
    def __init__(
        self,
        recorder: Recorder,
        recognizer: RecognizerAdapter,
        queue_maxsize: int = 50,
    ) -> None:
        self._recorder = recorder
        self._recognizer = recognizer
        self._queue_maxsize = queue_maxsize
        self._lock = threading.Lock()
        self._active = False
        self._on_event: Optional[Callable[[RecognitionEvent], None]] = None

    def is_available(self) -> bool:
        checks = [
            getattr(self._recorder, "is_available", None),
            getattr(self._recognizer, "is_available", None),
        ]
        return all(check() for check in checks if check is not None)

    def start(self, locale: str, on_event: Callable[[RecognitionEvent], None]) -> None:
        with self._lock:
            if self._active:
                return
            audio_queue: Queue[AudioFrame | None] = Queue(maxsize=self._queue_maxsize)
            self._on_event = on_event
            self._recognizer.start(audio_queue, on_event, language_from_locale(locale))
            try:
                self._recorder.start(audio_queue)
            except Exception:
                self._recognizer.stop()
                raise
            self._active = True
        logger.info("capture started (%s)", locale)
        on_event(RecognitionEvent(kind=RecognitionKind.START.value))

    def stop(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
            on_event = self._on_event
            self._on_event = None
        self._safe_stop(self._recorder)
        self._safe_stop(self._recognizer)
        logger.info("capture ended")
        if on_event is not None:
            on_event(RecognitionEvent(kind=RecognitionKind.END.value))

    @staticmethod
    def _safe_stop(component: Recorder | RecognizerAdapter) -> None:
        try:
            component.stop()
        except Exception as exc:
            logger.warning("failed to stop %s: %s", type(component).__name__, exc)
