"""Microphone capture feeding PCM frames to the recognizer.

Blocks of ``chunk_ms`` milliseconds are read from the default (or configured)
input device as 16-bit PCM and pushed onto the frame queue shared with the
recognizer.  A ``None`` sentinel marks the end of the capture so the consumer
can flush and close its stream.
"""

from __future__ import annotations

import logging
import threading
import time
from queue import Full, Queue
from typing import Any, Optional

from models import AudioFrame

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

FrameQueue = Queue[Optional[AudioFrame]]


class MicrophoneRecorder:
    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
        device: Optional[int] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.device = device
        self.dropped_chunks = 0
        self._guard = threading.Lock()
        self._input_stream: Any = None
        self._frames: Optional[FrameQueue] = None
        self._capturing = False

    @staticmethod
    def is_available() -> bool:
        if sd is None or np is None:
            return False
        try:
            sd.query_devices(kind="input")
        except Exception as exc:
            logger.info("no input device: %s", exc)
            return False
        return True

    @property
    def is_running(self) -> bool:
        return self._capturing

    @property
    def block_size(self) -> int:
        return int(self.sample_rate * self.chunk_ms / 1000)

    def start(self, audio_queue: FrameQueue) -> None:
        with self._guard:
            if self._capturing:
                return
            if sd is None:
                raise RuntimeError("sounddevice is not installed")
            self._frames = audio_queue
            self.dropped_chunks = 0
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=self.block_size,
                device=self.device,
                callback=self._enqueue_block,
            )
            stream.start()
            self._input_stream = stream
            self._capturing = True
            logger.debug("microphone opened at %d Hz", self.sample_rate)

    def stop(self) -> None:
        with self._guard:
            stream, self._input_stream = self._input_stream, None
            self._capturing = False
            if stream is not None:
                stream.stop()
                stream.close()
            if self.dropped_chunks:
                logger.warning("dropped %d audio chunks", self.dropped_chunks)
            self._signal_end()

    def _enqueue_block(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        # runs on the PortAudio thread; never block here
        if not self._capturing or self._frames is None or np is None:
            return
        if status:
            logger.debug("input stream status: %s", status)
        try:
            self._frames.put_nowait(self._to_frame(indata))
        except Full:
            self.dropped_chunks += 1

    def _to_frame(self, block: Any) -> AudioFrame:
        return AudioFrame(
            pcm16_bytes=np.asarray(block, dtype=np.int16).tobytes(),
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
        )

    def _signal_end(self) -> None:
        if self._frames is None:
            return
        try:
            self._frames.put_nowait(None)
        except Full:
            logger.debug("frame queue full; end sentinel dropped")
