"""On-device speech engine: microphone, Silero VAD and faster-whisper."""

import logging
from typing import Optional

import numpy as np

from ..capture.errors import EngineErrorKind
from ..config import EngineConfig
from ..exceptions import EngineError
from .base import ContinuousSpeechEngine
from .microphone import MicrophoneStream, MicrophoneStreamError
from .transcriber import WhisperTranscriber
from .vad import SpeechSegmenter

logger = logging.getLogger(__name__)


class LocalSpeechEngine(ContinuousSpeechEngine):
    """Continuous recognition running entirely on this machine.

    Only final results are produced: each utterance cut by the VAD is
    transcribed once. A ``no-speech`` error is reported after
    ``no_speech_timeout_ms`` without voice, matching hosted recognisers; the
    engine keeps running when it does so.
    """

    def __init__(self, config: EngineConfig):
        super().__init__()
        self.config = config
        self.microphone = MicrophoneStream(config)
        self.transcriber = WhisperTranscriber(config)
        self.segmenter: Optional[SpeechSegmenter] = None

        self._no_speech_samples = int(config.no_speech_timeout_ms * config.sample_rate / 1000)
        self._silent_samples = 0
        self._running = False

        self.microphone.add_listener(self._on_block)
        self.microphone.on_closed(self._on_microphone_closed)
        self.transcriber.on_text(self._on_text)

    def _ensure_models(self) -> None:
        if self.segmenter is None:
            self.segmenter = SpeechSegmenter(self.config)
            self.segmenter.on_segment(self.transcriber.queue_segment)
        self.transcriber.load_model()

    def warm_up(self) -> None:
        """Load the VAD and Whisper models before capture is requested."""
        try:
            self._ensure_models()
        except Exception as e:
            raise EngineError(f"Speech models unavailable: {e}") from e

    def start(self) -> None:
        """Open the microphone and begin recognition.

        Raises:
            EngineError: the models could not be loaded
        """
        if self._running:
            logger.warning("Local speech engine already running")
            return

        self.warm_up()

        self.transcriber.start()
        try:
            self.microphone.open()
        except MicrophoneStreamError as e:
            logger.error(str(e))
            self.transcriber.stop(wait=False)
            self._emit_error(e.kind)
            self._emit_end()
            return

        self._running = True
        self._silent_samples = 0
        logger.info("Local speech engine started")
        self._emit_start()

    def stop(self) -> None:
        if not self._running:
            return

        self._running = False
        self.microphone.close(wait=False)
        if self.segmenter is not None:
            self.segmenter.reset()
        self.transcriber.stop(wait=False)
        logger.info("Local speech engine stopped")
        self._emit_end()

    def is_running(self) -> bool:
        return self._running

    def _on_block(self, block: np.ndarray) -> None:
        if not self._running or self.segmenter is None:
            return

        self.segmenter.process(block)
        if self.segmenter.in_speech:
            self._silent_samples = 0
            return

        self._silent_samples += len(block)
        if self._silent_samples >= self._no_speech_samples:
            self._silent_samples = 0
            self._emit_error(EngineErrorKind.NO_SPEECH)

    def _on_text(self, text: str) -> None:
        if self._running:
            self._emit_result(text, True)

    def _on_microphone_closed(self) -> None:
        if not self._running:
            return
        self._running = False
        self.transcriber.stop(wait=False)
        self._emit_error(EngineErrorKind.AUDIO_CAPTURE)
        self._emit_end()
