"""Continuous speech recognizer adapter using DashScope real-time ASR.

PCM frames are pulled from the audio queue on a worker thread and streamed to
``paraformer-realtime-v2``.  Each recognition callback is turned into a
``RecognitionEvent``: sentences still in progress become ``partial`` events,
sentences the service has closed become ``final`` events.
"""

from __future__ import annotations

import logging
import os
import threading
from queue import Empty, Queue
from typing import Any, Callable, Optional

from errors import AUTH_FAILED, NETWORK_ERROR, RECOGNITION_ERROR
from models import AudioFrame, RecognitionEvent, RecognitionKind

try:
    import dashscope
    from dashscope.audio.asr import Recognition, RecognitionCallback
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore
    Recognition = None  # type: ignore
    RecognitionCallback = object  # type: ignore

logger = logging.getLogger(__name__)

EventCallback = Callable[[RecognitionEvent], None]


def _is_sentence_end(sentence: dict) -> bool:
    if "sentence_end" in sentence:
        return bool(sentence["sentence_end"])
    return sentence.get("end_time") is not None


def to_error_event(exc: Exception) -> RecognitionEvent:
    """Map an SDK/network exception to a standard error event."""
    message = str(exc)
    low = message.lower()
    if "401" in low or "auth" in low or "api key" in low:
        code = AUTH_FAILED
        retryable = False
    elif "timeout" in low or "network" in low or "connection" in low:
        code = NETWORK_ERROR
        retryable = True
    else:
        code = RECOGNITION_ERROR
        retryable = True
    return RecognitionEvent(
        kind=RecognitionKind.ERROR.value,
        code=code,
        message=message,
        retryable=retryable,
    )


class _SentenceCallback(RecognitionCallback):
    def __init__(self, on_event: EventCallback) -> None:
        super().__init__()
        self._on_event = on_event

    def on_open(self) -> None:
        logger.debug("recognition stream opened")

    def on_close(self) -> None:
        logger.debug("recognition stream closed")

    def on_complete(self) -> None:
        logger.debug("recognition complete")

    def on_error(self, result: Any) -> None:
        message = str(getattr(result, "message", "") or result)
        self._on_event(to_error_event(RuntimeError(message)))

    def on_event(self, result: Any) -> None:
        sentence = result.get_sentence()
        if isinstance(sentence, list):
            sentence = sentence[-1] if sentence else {}
        if not isinstance(sentence, dict):
            return
        text = str(sentence.get("text", ""))
        if not text:
            return
        kind = RecognitionKind.FINAL if _is_sentence_end(sentence) else RecognitionKind.PARTIAL
        self._on_event(RecognitionEvent(kind=kind.value, text=text))


class DashscopeRecognizerAdapter:
    def __init__(
        self,
        api_key: str,
        model: str = "paraformer-realtime-v2",
        sample_rate: int = 16000,
        finalize_timeout_s: float = 3.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._sample_rate = sample_rate
        self._finalize_timeout_s = finalize_timeout_s
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._audio_queue: Optional[Queue[AudioFrame | None]] = None
        self._on_event: Optional[EventCallback] = None
        self._language = "en"

    def is_available(self) -> bool:
        return dashscope is not None and Recognition is not None

    def start(
        self,
        audio_queue: Queue[AudioFrame | None],
        on_event: EventCallback,
        language: str = "en",
    ) -> None:
        if self._thread and self._thread.is_alive():
            raise RuntimeError("previous recognition is still finalizing")
        self._audio_queue = audio_queue
        self._on_event = on_event
        self._language = language
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._worker, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Wait for the worker to drain the queue, then cancel what is left."""
        thread = self._thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=self._finalize_timeout_s)
        self._stop_event.set()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _emit(self, event: RecognitionEvent) -> None:
        if self._on_event is not None:
            self._on_event(event)

    def _worker(self) -> None:
        if self._audio_queue is None:
            return
        if not self.is_available():
            self._emit(
                RecognitionEvent(
                    kind=RecognitionKind.ERROR.value,
                    code=RECOGNITION_ERROR,
                    message="dashscope is not installed",
                    retryable=False,
                )
            )
            return

        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            self._emit(
                RecognitionEvent(
                    kind=RecognitionKind.ERROR.value,
                    code=AUTH_FAILED,
                    message="No API key configured",
                    retryable=False,
                )
            )
            return

        dashscope.api_key = api_key
        recognition = Recognition(
            model=self._model,
            format="pcm",
            sample_rate=self._sample_rate,
            language_hints=[self._language],
            callback=_SentenceCallback(self._emit),
        )
        try:
            recognition.start()
        except Exception as exc:
            logger.warning("recognition start failed: %s", exc)
            self._emit(to_error_event(exc))
            return

        try:
            self._pump(recognition)
        except Exception as exc:
            logger.warning("recognition stream failed: %s", exc)
            self._emit(to_error_event(exc))
        finally:
            try:
                recognition.stop()
            except Exception as exc:
                logger.debug("recognition stop failed: %s", exc)

    def _pump(self, recognition: Any) -> None:
        assert self._audio_queue is not None
        while not self._stop_event.is_set():
            try:
                frame = self._audio_queue.get(timeout=0.2)
            except Empty:
                continue
            if frame is None:
                return
            recognition.send_audio_frame(frame.pcm16_bytes)
