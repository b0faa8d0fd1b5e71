"""Tests for DashscopeRecognizerAdapter."""

from __future__ import annotations

import threading
from queue import Queue
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from errors import AUTH_FAILED, NETWORK_ERROR, RECOGNITION_ERROR
from models import AudioFrame, RecognitionEvent, RecognitionKind
from recognizer import DashscopeRecognizerAdapter, to_error_event


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

def _make_frame(n_samples: int = 1600) -> AudioFrame:
    return AudioFrame(pcm16_bytes=b"\x00\x00" * n_samples)


class _FakeResult:
    def __init__(self, sentence) -> None:  # noqa: ANN001
        self._sentence = sentence

    def get_sentence(self):  # noqa: ANN201
        return self._sentence


class FakeRecognition:
    """Stands in for dashscope.audio.asr.Recognition."""

    instances: list["FakeRecognition"] = []
    fail_on_start: Exception | None = None

    def __init__(self, **kwargs) -> None:  # noqa: ANN003
        self.kwargs = kwargs
        self.callback = kwargs["callback"]
        self.frames: list[bytes] = []
        self.stopped = False
        FakeRecognition.instances.append(self)

    def start(self) -> None:
        if FakeRecognition.fail_on_start is not None:
            raise FakeRecognition.fail_on_start
        self.callback.on_open()

    def send_audio_frame(self, data: bytes) -> None:
        self.frames.append(data)
        if len(self.frames) == 1:
            self.callback.on_event(_FakeResult({"text": "hello", "end_time": None}))

    def stop(self) -> None:
        self.stopped = True
        self.callback.on_event(_FakeResult({"text": "hello world", "end_time": 1200}))
        self.callback.on_complete()


def _reset_fake() -> None:
    FakeRecognition.instances = []
    FakeRecognition.fail_on_start = None


def _run(adapter: DashscopeRecognizerAdapter, frames: int = 1, language: str = "en") -> list[RecognitionEvent]:
    events: list[RecognitionEvent] = []
    q: Queue[AudioFrame | None] = Queue()
    for _ in range(frames):
        q.put(_make_frame())
    q.put(None)
    adapter.start(q, events.append, language)
    adapter.stop()
    return events


# ---------------------------------------------------------------
# Streaming results
# ---------------------------------------------------------------

@patch("recognizer.Recognition", FakeRecognition)
@patch("recognizer.dashscope", MagicMock())
def test_streaming_emits_partial_then_final() -> None:
    _reset_fake()
    adapter = DashscopeRecognizerAdapter(api_key="test-key")

    events = _run(adapter, frames=2)

    assert [(e.kind, e.text) for e in events] == [
        (RecognitionKind.PARTIAL.value, "hello"),
        (RecognitionKind.FINAL.value, "hello world"),
    ]
    recognition = FakeRecognition.instances[0]
    assert len(recognition.frames) == 2
    assert recognition.stopped is True
    assert recognition.kwargs["format"] == "pcm"
    assert recognition.kwargs["sample_rate"] == 16000


@patch("recognizer.Recognition", FakeRecognition)
@patch("recognizer.dashscope", MagicMock())
def test_language_hint_is_forwarded() -> None:
    _reset_fake()
    adapter = DashscopeRecognizerAdapter(api_key="test-key")

    _run(adapter, language="zh")

    assert FakeRecognition.instances[0].kwargs["language_hints"] == ["zh"]


@patch("recognizer.Recognition", FakeRecognition)
@patch("recognizer.dashscope", MagicMock())
def test_sentence_end_flag_marks_final() -> None:
    _reset_fake()
    events: list[RecognitionEvent] = []
    adapter = DashscopeRecognizerAdapter(api_key="test-key")
    q: Queue[AudioFrame | None] = Queue()
    q.put(None)
    adapter.start(q, events.append)
    adapter.stop()

    callback = FakeRecognition.instances[0].callback
    callback.on_event(_FakeResult({"text": "partial", "sentence_end": False}))
    callback.on_event(_FakeResult({"text": "done", "sentence_end": True}))
    callback.on_event(_FakeResult({"text": ""}))

    assert [(e.kind, e.text) for e in events[-2:]] == [
        (RecognitionKind.PARTIAL.value, "partial"),
        (RecognitionKind.FINAL.value, "done"),
    ]


@patch("recognizer.Recognition", FakeRecognition)
@patch("recognizer.dashscope", MagicMock())
def test_service_error_callback_becomes_error_event() -> None:
    _reset_fake()
    events: list[RecognitionEvent] = []
    adapter = DashscopeRecognizerAdapter(api_key="test-key")
    q: Queue[AudioFrame | None] = Queue()
    q.put(None)
    adapter.start(q, events.append)
    adapter.stop()

    FakeRecognition.instances[0].callback.on_error(SimpleNamespace(message="connection reset"))

    assert events[-1].kind == RecognitionKind.ERROR.value
    assert events[-1].code == NETWORK_ERROR
    assert events[-1].message == "connection reset"


# ---------------------------------------------------------------
# Failure paths
# ---------------------------------------------------------------

@patch("recognizer.Recognition", FakeRecognition)
@patch("recognizer.dashscope", MagicMock())
@patch.dict("os.environ", {"DASHSCOPE_API_KEY": ""}, clear=False)
def test_missing_api_key_emits_error() -> None:
    _reset_fake()
    adapter = DashscopeRecognizerAdapter(api_key="")

    events = _run(adapter)

    assert len(events) == 1
    assert events[0].kind == RecognitionKind.ERROR.value
    assert events[0].code == AUTH_FAILED
    assert FakeRecognition.instances == []


@patch("recognizer.dashscope", None)
def test_dashscope_not_installed_emits_error() -> None:
    adapter = DashscopeRecognizerAdapter(api_key="test-key")

    assert adapter.is_available() is False
    events = _run(adapter)

    assert len(events) == 1
    assert "not installed" in events[0].message


@patch("recognizer.Recognition", FakeRecognition)
@patch("recognizer.dashscope", MagicMock())
def test_start_failure_maps_to_network_error() -> None:
    _reset_fake()
    FakeRecognition.fail_on_start = ConnectionError("network timeout")
    adapter = DashscopeRecognizerAdapter(api_key="test-key")

    events = _run(adapter)
    _reset_fake()

    errors = [e for e in events if e.kind == RecognitionKind.ERROR.value]
    assert len(errors) == 1
    assert errors[0].code == NETWORK_ERROR
    assert errors[0].retryable is True


def test_error_mapping() -> None:
    auth = to_error_event(Exception("401 Unauthorized: invalid api key"))
    other = to_error_event(Exception("unexpected payload"))

    assert auth.code == AUTH_FAILED
    assert auth.retryable is False
    assert other.code == RECOGNITION_ERROR
    assert other.retryable is True


class _SlowStopRecognition(FakeRecognition):
    release = threading.Event()

    def stop(self) -> None:
        _SlowStopRecognition.release.wait(timeout=5.0)
        super().stop()


@patch("recognizer.Recognition", _SlowStopRecognition)
@patch("recognizer.dashscope", MagicMock())
def test_start_while_previous_worker_finalizing_raises() -> None:
    _reset_fake()
    _SlowStopRecognition.release.clear()
    adapter = DashscopeRecognizerAdapter(api_key="test-key", finalize_timeout_s=0.05)
    q: Queue[AudioFrame | None] = Queue()
    q.put(None)
    adapter.start(q, lambda event: None)
    adapter.stop()

    try:
        with pytest.raises(RuntimeError, match="still finalizing"):
            adapter.start(Queue(), lambda event: None)
    finally:
        _SlowStopRecognition.release.set()
    adapter.stop()

    assert len(FakeRecognition.instances) == 1

