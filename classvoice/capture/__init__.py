"""Voice-capture control pipeline: state machine, chunking, restarts and silence."""

from .backoff import RestartController, RestartPolicy
from .buffer import ChunkEvent, ChunkScheduler, TranscriptBuffer
from .controller import CaptureController
from .errors import EngineErrorKind, Recovery, classify_engine_error
from .scheduler import ManualScheduler, Scheduler, ThreadingScheduler
from .session import CaptureSession, CaptureState
from .silence import SilenceMonitor, SilenceState, SilenceTier

__all__ = [
    "CaptureController",
    "CaptureSession",
    "CaptureState",
    "ChunkEvent",
    "ChunkScheduler",
    "EngineErrorKind",
    "ManualScheduler",
    "Recovery",
    "RestartController",
    "RestartPolicy",
    "Scheduler",
    "SilenceMonitor",
    "SilenceState",
    "SilenceTier",
    "ThreadingScheduler",
    "TranscriptBuffer",
    "classify_engine_error",
]
