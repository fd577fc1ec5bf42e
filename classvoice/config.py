"""Configuration management for classvoice."""

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Optional

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class CaptureConfig:
    """Chunking and session admission settings."""
    chunk_duration_s: float = 7.0
    max_buffer_chars: int = 1000
    allowed_roles: list[str] = field(default_factory=lambda: ["professor"])
    speaker_id: Optional[str] = None


@dataclass
class RestartConfig:
    """Engine restart backoff settings."""
    base_delay_s: float = 1.0
    max_delay_s: float = 10.0
    max_attempts: int = 5


@dataclass
class SilenceConfig:
    """Silence monitor thresholds."""
    poll_interval_s: float = 30.0
    notify_after_s: float = 120.0  # 2 minutes
    suggest_pause_after_s: float = 300.0  # 5 minutes


@dataclass
class EngineConfig:
    """Speech engine configuration."""
    backend: str = "local"
    device: str = "default"
    sample_rate: int = 16000
    channels: int = 1
    chunk_duration_ms: int = 512
    vad_threshold: float = 0.5
    vad_min_speech_ms: int = 250
    vad_min_silence_ms: int = 500
    no_speech_timeout_ms: int = 8000
    whisper_model: str = "small.en"
    whisper_device: str = "cuda"
    whisper_compute_type: str = "float16"
    language: str = "en"


@dataclass
class IngestionConfig:
    """Transcript ingestion service configuration."""
    base_url: str = "http://localhost:3000"
    endpoint: str = "/api/transcripts"
    auth_token: Optional[str] = None
    timeout_s: float = 10.0
    max_pending_chunks: int = 500


@dataclass
class NoticeConfig:
    """Notice board configuration."""
    max_notices: int = 50


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: Optional[str] = "./logs/classvoice.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _section(cls, data: Optional[dict], name: str):
    """Build one config section, rejecting unknown keys."""
    data = data or {}
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown key(s) in '{name}' section: {', '.join(sorted(unknown))}"
        )
    return cls(**data)


@dataclass
class Config:
    """Main configuration container."""
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    restart: RestartConfig = field(default_factory=RestartConfig)
    silence: SilenceConfig = field(default_factory=SilenceConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    notices: NoticeConfig = field(default_factory=NoticeConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
            return cls()

        with open(path, "r") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config root must be a mapping: {path}")

        return cls(
            capture=_section(CaptureConfig, data.get("capture"), "capture"),
            restart=_section(RestartConfig, data.get("restart"), "restart"),
            silence=_section(SilenceConfig, data.get("silence"), "silence"),
            engine=_section(EngineConfig, data.get("engine"), "engine"),
            ingestion=_section(IngestionConfig, data.get("ingestion"), "ingestion"),
            notices=_section(NoticeConfig, data.get("notices"), "notices"),
            logging=_section(LoggingConfig, data.get("logging"), "logging"),
        )

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(asdict(self), f, default_flow_style=False, sort_keys=False)

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        log_level = getattr(logging, self.logging.level.upper(), logging.INFO)

        handlers: list[logging.Handler] = [logging.StreamHandler()]

        if self.logging.file:
            log_path = Path(self.logging.file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path))

        logging.basicConfig(
            level=log_level,
            format=self.logging.format,
            handlers=handlers,
        )


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from file or environment."""
    if path is None:
        path = os.environ.get("CLASSVOICE_CONFIG", "config/settings.yaml")
    config = Config.from_yaml(path)

    token = os.environ.get("CLASSVOICE_INGEST_TOKEN")
    if token:
        config.ingestion.auth_token = token

    return config
