"""Pytest configuration and shared fixtures."""

import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import numpy as np
import pytest

from classvoice.capture import CaptureController, ManualScheduler
from classvoice.config import Config, EngineConfig
from classvoice.engine import ScriptedSpeechEngine
from classvoice.notify import NoticeBoard


# ==================== Path Fixtures ====================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir):
    """Create a temporary config file."""
    config_path = temp_dir / "settings.yaml"
    config_path.write_text("""
capture:
  chunk_duration_s: 5.0
  max_buffer_chars: 500
  allowed_roles: ["professor", "ta"]

restart:
  base_delay_s: 0.5
  max_delay_s: 8.0
  max_attempts: 4

silence:
  poll_interval_s: 10.0

engine:
  backend: scripted
  whisper_model: "tiny"
  whisper_device: "cpu"

ingestion:
  base_url: "https://ingest.example.edu"
  auth_token: "file-token"

logging:
  level: "DEBUG"
  file: null
""")
    return config_path


# ==================== Capture Fixtures ====================

class RecordingSink:
    """Collects chunks handed to it, in hand-off order."""

    def __init__(self):
        self.chunks = []

    def submit(self, chunk):
        self.chunks.append(chunk)

    @property
    def transcripts(self):
        return [c.transcript for c in self.chunks]


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def engine():
    return ScriptedSpeechEngine()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def notices():
    return NoticeBoard()


@pytest.fixture
def config():
    config = Config()
    config.logging.file = None
    return config


@pytest.fixture
def controller(engine, sink, notices, scheduler, config):
    """Controller on a virtual clock with a scripted engine."""
    return CaptureController(engine, sink, notices, scheduler=scheduler, config=config)


# ==================== Engine Fixtures ====================

@pytest.fixture
def engine_config():
    return EngineConfig(
        device="default",
        sample_rate=16000,
        channels=1,
        chunk_duration_ms=512,
        vad_threshold=0.5,
        vad_min_speech_ms=250,
        vad_min_silence_ms=500,
        no_speech_timeout_ms=2000,
        whisper_model="tiny",
        whisper_device="cpu",
        whisper_compute_type="float32",
    )


@pytest.fixture
def sample_audio_chunk():
    """512ms of noise at 16kHz."""
    duration_samples = int(16000 * 0.512)
    return np.random.randn(duration_samples).astype(np.float32) * 0.1


@pytest.fixture
def mock_vad_model():
    """Silero VAD stand-in reporting speech."""
    mock_model = MagicMock()
    mock_model.return_value = MagicMock(item=MagicMock(return_value=0.8))
    mock_model.reset_states = MagicMock()
    return mock_model


@pytest.fixture
def mock_whisper_model():
    mock_model = MagicMock()
    mock_segment = MagicMock()
    mock_segment.text = " Test transcription "
    mock_model.transcribe.return_value = ([mock_segment], MagicMock())
    return mock_model


class RecordingListener:
    """Engine listener that records callbacks as tuples."""

    def __init__(self):
        self.events = []

    def on_start(self):
        self.events.append(("start",))

    def on_result(self, transcript, is_final):
        self.events.append(("result", transcript, is_final))

    def on_error(self, kind):
        self.events.append(("error", kind))

    def on_end(self):
        self.events.append(("end",))


@pytest.fixture
def listener():
    return RecordingListener()
