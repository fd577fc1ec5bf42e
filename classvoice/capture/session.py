"""Capture session state."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class CaptureState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass
class CaptureSession:
    """One classroom session bound to one capture lifecycle."""
    session_id: str
    role: str
    state: CaptureState = CaptureState.IDLE
    started_at: datetime = field(default_factory=datetime.now)
    last_activity_at: float = 0.0
    restart_attempts: int = 0
    manually_paused: bool = False
    no_speech_count: int = 0
    chunks_emitted: int = 0

    @property
    def active(self) -> bool:
        return self.state in (CaptureState.LISTENING, CaptureState.PAUSED)

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "role": self.role,
            "state": self.state.value,
            "started_at": self.started_at.isoformat(),
            "restart_attempts": self.restart_attempts,
            "manually_paused": self.manually_paused,
            "no_speech_count": self.no_speech_count,
            "chunks_emitted": self.chunks_emitted,
        }
