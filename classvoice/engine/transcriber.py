"""Speech-to-text with faster-whisper."""

import logging
import queue
import threading
from typing import Callable, Optional

from faster_whisper import WhisperModel

from ..config import EngineConfig
from .vad import SpeechSegment

logger = logging.getLogger(__name__)


class WhisperTranscriber:
    """Transcribes queued utterances on a worker thread."""

    def __init__(self, config: EngineConfig):
        self.model_name = config.whisper_model
        self.device = config.whisper_device
        self.compute_type = config.whisper_compute_type
        self.language = config.language

        self._model: Optional[WhisperModel] = None
        self._segments: queue.Queue[SpeechSegment] = queue.Queue()
        self._running = False
        self._thread: Optional[threading.Thread] = None

        self._on_text: Optional[Callable[[str], None]] = None
        self.failures = 0

    def on_text(self, callback: Callable[[str], None]) -> None:
        self._on_text = callback

    def load_model(self) -> None:
        """Load the Whisper model once; later calls are no-ops."""
        if self._model is not None:
            return
        logger.info(f"Loading Whisper model: {self.model_name} on {self.device}")
        self._model = WhisperModel(
            self.model_name,
            device=self.device,
            compute_type=self.compute_type,
        )
        logger.info("Whisper model loaded")

    def queue_segment(self, segment: SpeechSegment) -> None:
        self._segments.put(segment)

    def transcribe(self, segment: SpeechSegment) -> str:
        """Transcribe one utterance and return its text."""
        if self._model is None:
            raise RuntimeError("Whisper model not loaded")

        pieces, _info = self._model.transcribe(
            segment.audio,
            beam_size=5,
            language=self.language,
            vad_filter=False,
        )
        return " ".join(p.text.strip() for p in pieces if p.text.strip())

    def _work(self) -> None:
        while self._running:
            try:
                segment = self._segments.get(timeout=1.0)
            except queue.Empty:
                continue
            try:
                text = self.transcribe(segment)
            except Exception as e:
                self.failures += 1
                logger.error(f"Transcription error: {e}")
                continue
            if text and self._on_text is not None:
                logger.debug(f"Transcribed: '{text[:50]}'")
                self._on_text(text)

    def start(self) -> None:
        if self._running:
            return
        self.load_model()
        self._running = True
        self._thread = threading.Thread(target=self._work, daemon=True)
        self._thread.start()

    def stop(self, wait: bool = True) -> None:
        if not self._running:
            return
        self._running = False
        if wait and self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=5.0)
        self._thread = None

        while not self._segments.empty():
            try:
                self._segments.get_nowait()
            except queue.Empty:
                break

    def is_running(self) -> bool:
        return self._running
