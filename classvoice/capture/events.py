"""Events consumed by the capture state machine.

Every state change in the pipeline is the result of exactly one of these
events being handled by :class:`~classvoice.capture.controller.CaptureController`.
Timer events carry the generation of the timer that produced them so that a
timer which fired after being cancelled can be recognised and ignored.
"""

from dataclasses import dataclass
from typing import Optional

from .errors import EngineErrorKind


@dataclass
class Event:
    """Base class for all capture events."""


@dataclass
class Command(Event):
    """A user action. ``accepted`` is filled in by the handler."""
    accepted: Optional[bool] = None


@dataclass
class StartCommand(Command):
    session_id: str = ""
    role: str = ""


@dataclass
class PauseCommand(Command):
    pass


@dataclass
class ResumeCommand(Command):
    pass


@dataclass
class StopCommand(Command):
    pass


@dataclass
class EngineStarted(Event):
    pass


@dataclass
class EngineResult(Event):
    text: str = ""
    is_final: bool = False


@dataclass
class EngineFailed(Event):
    kind: EngineErrorKind = EngineErrorKind.UNKNOWN


@dataclass
class EngineEnded(Event):
    pass


@dataclass
class FlushDue(Event):
    generation: int = 0


@dataclass
class RestartDue(Event):
    generation: int = 0


@dataclass
class SilenceCheckDue(Event):
    generation: int = 0
