"""Tests for speech segmentation."""

from datetime import datetime
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from classvoice.engine.vad import SpeechSegment, SpeechSegmenter


class _WindowedModel:
    """Silero stand-in: scores loud windows as speech, rejects other sizes."""

    def __init__(self, window=512):
        self.window = window
        self.calls = 0
        self.reset_states = MagicMock()

    def __call__(self, x, sample_rate):
        if x.shape[-1] != self.window:
            raise ValueError(f"Provided number of samples is {x.shape[-1]}")
        self.calls += 1
        prob = 0.9 if float(x.abs().mean()) > 0.05 else 0.1
        return MagicMock(item=MagicMock(return_value=prob))


def _speech(samples=8192):
    return np.full(samples, 0.5, dtype=np.float32)


def _silence(samples=8192):
    return np.zeros(samples, dtype=np.float32)


class TestSpeechSegment:
    """Tests for SpeechSegment dataclass."""

    def test_speech_segment_creation(self, sample_audio_chunk):
        """Test creating a speech segment."""
        segment = SpeechSegment(
            audio=sample_audio_chunk,
            start_time=datetime.now(),
            end_time=datetime.now(),
            duration_ms=512,
        )

        assert segment.duration_ms == 512
        assert len(segment.audio) == len(sample_audio_chunk)


class TestSpeechSegmenter:
    """Tests for SpeechSegmenter class."""

    @pytest.fixture
    def model(self):
        return _WindowedModel()

    @pytest.fixture
    def segmenter(self, engine_config, model):
        return SpeechSegmenter(engine_config, model=model)

    def test_init_loads_model(self, engine_config, mock_vad_model):
        """Test the Silero model is fetched when none is given."""
        with patch("classvoice.engine.vad.torch.hub.load", return_value=(mock_vad_model, None)) as load:
            segmenter = SpeechSegmenter(engine_config)

        load.assert_called_once()
        mock_vad_model.eval.assert_called_once()
        assert segmenter.window_samples == 512
        assert segmenter.min_speech_samples == 4000
        assert segmenter.min_silence_samples == 8000

    def test_init_model_failure(self, engine_config):
        with patch("classvoice.engine.vad.torch.hub.load", side_effect=RuntimeError("offline")):
            with pytest.raises(RuntimeError):
                SpeechSegmenter(engine_config)

    def test_window_size_follows_sample_rate(self, engine_config):
        engine_config.sample_rate = 8000
        segmenter = SpeechSegmenter(engine_config, model=_WindowedModel(window=256))
        assert segmenter.window_samples == 256

    def test_large_block_scored_in_windows(self, segmenter, model):
        """Test a 512 ms block is split into windows the model accepts."""
        prob = segmenter.process(_speech(8192))

        assert prob == pytest.approx(0.9)
        assert model.calls == 16
        assert segmenter.in_speech

    def test_partial_window_carried_over(self, segmenter, model):
        assert segmenter.process(_speech(300)) == 0.0
        assert model.calls == 0

        segmenter.process(_speech(300))
        assert model.calls == 1

        segmenter.process(_speech(424))
        assert model.calls == 2

    def test_process_returns_probability(self, engine_config, mock_vad_model, sample_audio_chunk):
        segmenter = SpeechSegmenter(engine_config, model=mock_vad_model)
        assert segmenter.process(sample_audio_chunk) == pytest.approx(0.8)
        assert segmenter.in_speech

    def test_utterance_closed_after_silence(self, segmenter):
        """Test speech followed by enough silence yields one segment."""
        segments = []
        segmenter.on_segment(segments.append)

        segmenter.process(_speech())
        segmenter.process(_speech())
        segmenter.process(_silence())

        assert len(segments) == 1
        assert len(segments[0].audio) == 3 * 8192
        assert segments[0].duration_ms == 1536
        assert not segmenter.in_speech

    def test_utterance_closed_mid_block(self, segmenter):
        """Test an utterance can end and another begin inside one block."""
        segments = []
        segmenter.on_segment(segments.append)

        block = np.concatenate([_speech(8192), _silence(8192), _speech(1024)])
        segmenter.process(block)

        assert len(segments) == 1
        assert segmenter.in_speech

    def test_short_pause_keeps_utterance_open(self, segmenter):
        segments = []
        segmenter.on_segment(segments.append)

        segmenter.process(_speech(4096))
        segmenter.process(_silence(4096))
        segmenter.process(_speech(4096))

        assert segments == []
        assert segmenter.in_speech

    def test_short_utterance_discarded(self, segmenter):
        segments = []
        segmenter.on_segment(segments.append)

        segmenter.process(_speech(1024))
        segmenter.process(_silence(8192))

        assert segments == []
        assert not segmenter.in_speech

    def test_silence_only(self, segmenter):
        segments = []
        segmenter.on_segment(segments.append)

        segmenter.process(_silence())
        segmenter.process(_silence())

        assert segments == []
        assert not segmenter.in_speech

    def test_flush_closes_open_utterance(self, segmenter):
        segments = []
        segmenter.on_segment(segments.append)

        segmenter.process(_speech())
        segmenter.flush()

        assert len(segments) == 1

    def test_callback_error_contained(self, segmenter):
        good = MagicMock()
        segmenter.on_segment(MagicMock(side_effect=RuntimeError("boom")))
        segmenter.on_segment(good)

        segmenter.process(_speech())
        segmenter.process(_silence())

        good.assert_called_once()

    def test_reset(self, segmenter, model):
        segmenter.process(_speech(8192 + 100))
        segmenter.reset()

        assert not segmenter.in_speech
        model.reset_states.assert_called()

        segmenter.process(_speech(412))
        assert model.calls == 16
