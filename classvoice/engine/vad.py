"""Speech segmentation using Silero VAD."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import numpy as np
import torch

from ..config import EngineConfig

logger = logging.getLogger(__name__)

# Silero VAD scores 32 ms windows: 512 samples at 16 kHz.
WINDOW_MS = 32


@dataclass
class SpeechSegment:
    """Audio for one utterance."""
    audio: np.ndarray
    start_time: datetime
    end_time: datetime
    duration_ms: int


class SpeechSegmenter:
    """Cuts a continuous block stream into utterances.

    Silero VAD only accepts fixed windows (512 samples at 16 kHz, 256 at
    8 kHz), so each incoming block is scored window by window and any tail
    shorter than a window is carried over to the next block.

    An utterance opens on the first window whose speech probability reaches
    the threshold and closes after ``vad_min_silence_ms`` of trailing
    silence. Utterances shorter than ``vad_min_speech_ms`` are discarded.
    """

    def __init__(self, config: EngineConfig, model=None):
        self.sample_rate = config.sample_rate
        self.threshold = config.vad_threshold
        self.window_samples = int(self.sample_rate * WINDOW_MS / 1000)
        self.min_speech_samples = int(config.vad_min_speech_ms * self.sample_rate / 1000)
        self.min_silence_samples = int(config.vad_min_silence_ms * self.sample_rate / 1000)

        self._in_speech = False
        self._blocks: list[np.ndarray] = []
        self._trailing_silence = 0
        self._opened_at: Optional[datetime] = None
        self._pending = np.zeros(0, dtype=np.float32)
        self._on_segment: list[Callable[[SpeechSegment], None]] = []

        self._model = model if model is not None else self._load_model()

    @staticmethod
    def _load_model():
        logger.info("Loading Silero VAD model...")
        try:
            model, _ = torch.hub.load(
                repo_or_dir="snakers4/silero-vad",
                model="silero_vad",
                force_reload=False,
                onnx=False,
            )
        except Exception as e:
            logger.error(f"Failed to load Silero VAD: {e}")
            raise
        model.eval()
        logger.info("Silero VAD model loaded")
        return model

    def on_segment(self, callback: Callable[[SpeechSegment], None]) -> None:
        self._on_segment.append(callback)

    def process(self, block: np.ndarray) -> float:
        """Feed one block and return the highest window speech probability.

        Returns 0.0 when the block (plus carried-over samples) is still
        shorter than one window.
        """
        samples = np.concatenate([self._pending, block.astype(np.float32, copy=False)])
        usable = len(samples) - len(samples) % self.window_samples
        self._pending = samples[usable:]

        peak = 0.0
        for start in range(0, usable, self.window_samples):
            window = samples[start:start + self.window_samples]
            peak = max(peak, self._process_window(window))
        return peak

    def _process_window(self, window: np.ndarray) -> float:
        with torch.no_grad():
            prob = float(self._model(torch.from_numpy(window), self.sample_rate).item())

        if prob >= self.threshold:
            if not self._in_speech:
                self._in_speech = True
                self._opened_at = datetime.now()
                self._blocks = []
            self._blocks.append(window)
            self._trailing_silence = 0
        elif self._in_speech:
            self._blocks.append(window)
            self._trailing_silence += len(window)
            if self._trailing_silence >= self.min_silence_samples:
                self._close_segment()

        return prob

    def flush(self) -> None:
        """Close an utterance that is still open."""
        if self._in_speech and self._blocks:
            self._close_segment()

    def reset(self) -> None:
        """Drop any open utterance and carried-over samples."""
        self._clear_utterance()
        self._pending = np.zeros(0, dtype=np.float32)

    def _clear_utterance(self) -> None:
        self._in_speech = False
        self._blocks = []
        self._trailing_silence = 0
        self._opened_at = None
        if hasattr(self._model, "reset_states"):
            self._model.reset_states()

    def _close_segment(self) -> None:
        audio = np.concatenate(self._blocks)
        voiced = len(audio) - self._trailing_silence
        opened_at = self._opened_at or datetime.now()
        self._clear_utterance()

        if voiced < self.min_speech_samples:
            logger.debug("Utterance too short, discarding")
            return

        segment = SpeechSegment(
            audio=audio,
            start_time=opened_at,
            end_time=datetime.now(),
            duration_ms=int(len(audio) * 1000 / self.sample_rate),
        )
        logger.debug(f"Utterance: {segment.duration_ms}ms")

        for callback in self._on_segment:
            try:
                callback(segment)
            except Exception as e:
                logger.error(f"Segment callback error: {e}")

    @property
    def in_speech(self) -> bool:
        return self._in_speech
