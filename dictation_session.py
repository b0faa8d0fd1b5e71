"""State-machine based dictation session."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from errors import CAPABILITY_UNAVAILABLE, ERROR_MESSAGES, RECOGNITION_ERROR
from interfaces import CaptureEngine
from models import DictationState, ErrorInfo, RecognitionEvent, RecognitionKind

logger = logging.getLogger(__name__)

StateCallback = Callable[[DictationState, DictationState], None]
TextCallback = Callable[[str], None]
ErrorCallback = Callable[[str, str], None]


class DictationSession:
    """Restartable voice-to-text capture session.

    ``final_transcript`` accumulates final results for the current listening
    period and is cleared when a new one begins.  ``interim_transcript`` holds
    the latest in-progress hypothesis only.  Every newly finalized segment is
    pushed to ``on_transcript``.
    """

    def __init__(
        self,
        engine: CaptureEngine,
        locale: str = "en-US",
        on_state_change: Optional[StateCallback] = None,
        on_transcript: Optional[TextCallback] = None,
        on_interim: Optional[TextCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._engine = engine
        self._locale = locale
        self._on_state_change = on_state_change
        self._on_transcript = on_transcript
        self._on_interim = on_interim
        self._on_error = on_error

        self._lock = threading.RLock()
        self._state = DictationState.IDLE
        self._session_id = 0
        self._handle_open = False
        self._closed = False
        self._final_transcript = ""
        self._interim_transcript = ""
        self._last_error: Optional[ErrorInfo] = None

        self._available = self._probe_capability()
        if not self._available:
            self._fail(CAPABILITY_UNAVAILABLE, ERROR_MESSAGES[CAPABILITY_UNAVAILABLE])

    @property
    def state(self) -> DictationState:
        return self._state

    @property
    def is_available(self) -> bool:
        return self._available

    @property
    def is_listening(self) -> bool:
        return self._state == DictationState.LISTENING

    @property
    def is_error(self) -> bool:
        return self._state == DictationState.ERRORING

    @property
    def error_message(self) -> str:
        return self._last_error.message if self._last_error else ""

    @property
    def last_error(self) -> Optional[ErrorInfo]:
        return self._last_error

    @property
    def final_transcript(self) -> str:
        return self._final_transcript

    transcript = final_transcript

    @property
    def interim_transcript(self) -> str:
        return self._interim_transcript

    def start(self) -> None:
        with self._lock:
            if self._closed or not self._available:
                return
            if self._state == DictationState.LISTENING:
                return
            self._session_id += 1
            session_id = self._session_id
            self._final_transcript = ""
            self._interim_transcript = ""
            self._last_error = None
            try:
                self._engine.start(
                    self._locale,
                    lambda event: self._handle_event(session_id, event),
                )
            except Exception as exc:
                logger.warning("capture start failed: %s", exc)
                self._fail(RECOGNITION_ERROR, f"start failed: {exc}")
                return
            if self._last_error is not None:
                # failed synchronously while opening
                return
            self._handle_open = True
            self._transition(DictationState.LISTENING)

    def stop(self) -> None:
        with self._lock:
            if self._state != DictationState.LISTENING:
                return
        # The engine confirms with an END event, possibly from its own thread.
        self._safe_stop_engine()

    def close(self) -> None:
        """Release the capture handle when the host view goes away."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._session_id += 1
            handle_open = self._handle_open
            self._handle_open = False
        if handle_open:
            self._safe_stop_engine()

    def _handle_event(self, session_id: int, event: RecognitionEvent) -> None:
        with self._lock:
            if self._closed or session_id != self._session_id:
                return
            kind = event.kind
            if kind == RecognitionKind.START.value:
                self._handle_open = True
                return
            if kind == RecognitionKind.PARTIAL.value:
                self._interim_transcript = event.text
                if self._on_interim:
                    self._on_interim(event.text)
                return
            if kind == RecognitionKind.FINAL.value:
                self._append_final(event.text)
                return
            if kind == RecognitionKind.ERROR.value:
                logger.warning("recognition error %s: %s", event.code, event.message)
                self._fail(RECOGNITION_ERROR, event.message or ERROR_MESSAGES[RECOGNITION_ERROR])
                return
            if kind == RecognitionKind.END.value:
                # the handle is gone; late callbacks from it are stale
                self._session_id += 1
                self._handle_open = False
                self._interim_transcript = ""
                if self._state == DictationState.LISTENING:
                    self._transition(DictationState.IDLE)

    def _append_final(self, text: str) -> None:
        segment = text.strip()
        self._interim_transcript = ""
        if not segment:
            return
        if self._final_transcript:
            self._final_transcript = f"{self._final_transcript} {segment}"
        else:
            self._final_transcript = segment
        if self._on_transcript:
            self._on_transcript(segment)

    def _probe_capability(self) -> bool:
        try:
            return bool(self._engine.is_available())
        except Exception as exc:
            logger.warning("capability probe failed: %s", exc)
            return False

    def _fail(self, code: str, message: str) -> None:
        self._last_error = ErrorInfo(code=code, message=message)
        self._interim_transcript = ""
        self._transition(DictationState.ERRORING)
        if self._on_error:
            self._on_error(code, message)
        if self._handle_open:
            self._handle_open = False
            self._safe_stop_engine()

    def _safe_stop_engine(self) -> None:
        try:
            self._engine.stop()
        except Exception as exc:
            logger.warning("capture stop failed: %s", exc)

    def _transition(self, to_state: DictationState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
