"""Continuous microphone input via sounddevice."""

import logging
import queue
import threading
from typing import Callable, Optional

import numpy as np
import sounddevice as sd

from ..capture.errors import EngineErrorKind
from ..config import EngineConfig
from ..exceptions import EngineError

logger = logging.getLogger(__name__)

_PERMISSION_MARKERS = ("permission", "not authorized", "access denied", "not permitted")


def classify_stream_error(error: Exception) -> EngineErrorKind:
    """Map a PortAudio failure onto an engine error kind."""
    message = str(error).lower()
    if any(marker in message for marker in _PERMISSION_MARKERS):
        return EngineErrorKind.PERMISSION_DENIED
    return EngineErrorKind.AUDIO_CAPTURE


class MicrophoneStreamError(EngineError):
    """Raised when the input stream cannot be opened."""

    def __init__(self, message: str, kind: EngineErrorKind):
        super().__init__(message)
        self.kind = kind


class MicrophoneStream:
    """Reads fixed-size float32 blocks from an input device.

    Blocks are handed to listeners from a worker thread so the PortAudio
    callback stays short.
    """

    def __init__(self, config: EngineConfig):
        self.config = config
        self.sample_rate = config.sample_rate
        self.channels = config.channels
        self.block_samples = int(config.sample_rate * config.chunk_duration_ms / 1000)

        self._blocks: queue.Queue[np.ndarray] = queue.Queue()
        self._stream: Optional[sd.InputStream] = None
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._listeners: list[Callable[[np.ndarray], None]] = []
        self._on_closed: Optional[Callable[[], None]] = None

    def add_listener(self, listener: Callable[[np.ndarray], None]) -> None:
        self._listeners.append(listener)

    def on_closed(self, callback: Callable[[], None]) -> None:
        """Called when the stream ends without :meth:`close` being asked for."""
        self._on_closed = callback

    def _callback(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        if status:
            logger.warning(f"Microphone status: {status}")
        # Downmix to mono float32
        if indata.ndim > 1 and indata.shape[1] > 1:
            block = indata.mean(axis=1).astype(np.float32)
        else:
            block = indata.copy().flatten().astype(np.float32)
        self._blocks.put(block)

    def _finished(self) -> None:
        if self._running:
            logger.warning("Microphone stream ended unexpectedly")
            self._running = False
            if self._on_closed is not None:
                self._on_closed()

    def _pump(self) -> None:
        while self._running:
            try:
                block = self._blocks.get(timeout=1.0)
            except queue.Empty:
                continue
            for listener in self._listeners:
                try:
                    listener(block)
                except Exception as e:
                    logger.error(f"Microphone listener error: {e}")

    def _resolve_device(self):
        if self.config.device == "default":
            return None
        try:
            return int(self.config.device)
        except ValueError:
            return self.config.device

    def open(self) -> None:
        """Open the input stream.

        Raises:
            MicrophoneStreamError: the device could not be opened
        """
        if self._running:
            logger.warning("Microphone stream already open")
            return

        logger.info(f"Opening microphone: {self.sample_rate}Hz, {self.channels}ch")
        try:
            stream = sd.InputStream(
                device=self._resolve_device(),
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype=np.float32,
                blocksize=self.block_samples,
                callback=self._callback,
                finished_callback=self._finished,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as e:
            kind = classify_stream_error(e)
            raise MicrophoneStreamError(f"Cannot open microphone: {e}", kind) from e

        self._stream = stream
        self._running = True
        self._thread = threading.Thread(target=self._pump, daemon=True)
        self._thread.start()

    def close(self, wait: bool = True) -> None:
        """Close the input stream and discard unread audio."""
        if not self._running and self._stream is None:
            return

        self._running = False
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except sd.PortAudioError as e:
                logger.warning(f"Error closing microphone: {e}")
            self._stream = None

        if wait and self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
        self._thread = None

        while not self._blocks.empty():
            try:
                self._blocks.get_nowait()
            except queue.Empty:
                break

        logger.info("Microphone closed")

    def is_open(self) -> bool:
        return self._running

    @staticmethod
    def list_devices() -> list[dict]:
        """List available audio input devices."""
        devices = []
        for i, device in enumerate(sd.query_devices()):
            if device["max_input_channels"] > 0:
                devices.append({
                    "id": i,
                    "name": device["name"],
                    "channels": device["max_input_channels"],
                    "sample_rate": device["default_samplerate"],
                })
        return devices
