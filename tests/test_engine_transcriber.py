"""Tests for the Whisper transcriber."""

import threading
from datetime import datetime
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from classvoice.engine.transcriber import WhisperTranscriber
from classvoice.engine.vad import SpeechSegment


def _segment():
    return SpeechSegment(
        audio=np.zeros(16000, dtype=np.float32),
        start_time=datetime.now(),
        end_time=datetime.now(),
        duration_ms=1000,
    )


class TestWhisperTranscriber:
    """Tests for WhisperTranscriber class."""

    @pytest.fixture
    def transcriber(self, engine_config):
        transcriber = WhisperTranscriber(engine_config)
        yield transcriber
        transcriber.stop()

    def test_init(self, transcriber):
        """Test transcriber initialization."""
        assert transcriber.model_name == "tiny"
        assert transcriber.device == "cpu"
        assert transcriber.language == "en"
        assert not transcriber.is_running()

    @patch("classvoice.engine.transcriber.WhisperModel")
    def test_load_model_once(self, mock_whisper, transcriber):
        """Test the model is loaded a single time."""
        transcriber.load_model()
        transcriber.load_model()

        mock_whisper.assert_called_once_with("tiny", device="cpu", compute_type="float32")

    def test_transcribe_without_model(self, transcriber):
        with pytest.raises(RuntimeError):
            transcriber.transcribe(_segment())

    @patch("classvoice.engine.transcriber.WhisperModel")
    def test_transcribe(self, mock_whisper, transcriber, mock_whisper_model):
        """Test transcribing one segment."""
        mock_whisper.return_value = mock_whisper_model
        transcriber.load_model()

        assert transcriber.transcribe(_segment()) == "Test transcription"
        kwargs = mock_whisper_model.transcribe.call_args.kwargs
        assert kwargs["language"] == "en"

    @patch("classvoice.engine.transcriber.WhisperModel")
    def test_transcribe_joins_pieces(self, mock_whisper, transcriber):
        model = MagicMock()
        model.transcribe.return_value = (
            [MagicMock(text=" first part"), MagicMock(text="  "), MagicMock(text="second part ")],
            MagicMock(),
        )
        mock_whisper.return_value = model
        transcriber.load_model()

        assert transcriber.transcribe(_segment()) == "first part second part"

    @patch("classvoice.engine.transcriber.WhisperModel")
    def test_worker_delivers_text(self, mock_whisper, transcriber, mock_whisper_model):
        """Test queued segments come back through the text callback."""
        mock_whisper.return_value = mock_whisper_model
        received = []
        done = threading.Event()

        def on_text(text):
            received.append(text)
            done.set()

        transcriber.on_text(on_text)
        transcriber.start()
        transcriber.queue_segment(_segment())

        assert done.wait(timeout=3.0)
        assert received == ["Test transcription"]

    @patch("classvoice.engine.transcriber.WhisperModel")
    def test_worker_counts_failures(self, mock_whisper, transcriber, mock_whisper_model):
        """Test a failed transcription does not stop the worker."""
        mock_whisper.return_value = mock_whisper_model
        mock_whisper_model.transcribe.side_effect = [
            RuntimeError("CUDA out of memory"),
            ([MagicMock(text="recovered")], MagicMock()),
        ]
        done = threading.Event()
        transcriber.on_text(lambda text: done.set())

        transcriber.start()
        transcriber.queue_segment(_segment())
        transcriber.queue_segment(_segment())

        assert done.wait(timeout=3.0)
        assert transcriber.failures == 1

    @patch("classvoice.engine.transcriber.WhisperModel")
    def test_start_stop(self, mock_whisper, transcriber):
        transcriber.start()
        assert transcriber.is_running()

        transcriber.stop()
        assert not transcriber.is_running()
